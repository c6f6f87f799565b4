"""Model-backed components of the newsletter workflow.

TextGenerator / ModelTextGenerator:
    Narrow "prompt in, text out" capability over PydanticAI or a local
    OpenAI-compatible server.

RelevanceScorer:
    Batched per-article relevance scoring with safe fallbacks.

NewsletterWriter:
    Intro and per-article summaries for the final newsletter.

Example:
    >>> from agents import ModelTextGenerator, RelevanceScorer, NewsletterWriter
    >>> generator = ModelTextGenerator(config.scorer_model)
    >>> scorer = RelevanceScorer(generator)
"""

from agents.generator import ModelTextGenerator, TextGenerator
from agents.scorer import RelevanceScorer
from agents.writer import NewsletterWriter

__all__ = [
    "ModelTextGenerator",
    "TextGenerator",
    "RelevanceScorer",
    "NewsletterWriter",
]
