"""Deterministic helpers used by the workflow steps.

extract_articles:
    Heuristic link/heading extraction from raw source HTML.

clean_text / normalize_url:
    Headline cleanup and relative URL resolution.

Example:
    >>> from tools import extract_articles
    >>> articles = extract_articles(html, "https://example.com")
"""

from tools.extract import clean_text, extract_articles, normalize_url

__all__ = [
    "clean_text",
    "extract_articles",
    "normalize_url",
]
