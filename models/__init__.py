"""Pydantic models for the Tidings newsletter workflow.

Article:
    Candidate article extracted from a source page (title, url, source).

Relevance / ScoredArticle:
    Parsed relevance verdict, and an Article annotated with it.

Newsletter / NewsletterArticle:
    The artifact persisted by a completed run.

RunStatus / RunInfo / NewsletterParams:
    Run lifecycle state and submission payload.

Example:
    >>> from models import Article, ScoredArticle, Newsletter
"""

from models.article import Article, Relevance, ScoredArticle
from models.newsletter import Newsletter, NewsletterArticle
from models.run import NewsletterParams, RunInfo, RunStatus, TERMINAL_FAILURES

__all__ = [
    "Article",
    "Relevance",
    "ScoredArticle",
    "Newsletter",
    "NewsletterArticle",
    "NewsletterParams",
    "RunInfo",
    "RunStatus",
    "TERMINAL_FAILURES",
]
