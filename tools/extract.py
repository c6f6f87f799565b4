"""Heuristic article extraction from raw source HTML.

Source pages are arbitrary news front pages, so there is no feed to parse.
Candidates are pulled out with two independent regex heuristics that share
one accumulator, one cap and one dedup state:

    1. Links: anchors whose href mentions article/story/post/news
    2. Headings: <h1>-<h3> blocks, optionally wrapping an anchor

Headings without an anchor point at the source page itself.

The extractor is deliberately forgiving: malformed or unexpected markup
simply yields fewer articles. It never raises on bad input.
"""

import logging
import re
from urllib.parse import urljoin, urlparse

from models.article import Article

logger = logging.getLogger(__name__)

MAX_ARTICLES = 20
MIN_TITLE_LENGTH = 20

_LINK_PATTERN = re.compile(
    r"""<a[^>]*href=["']([^"']*(?:article|story|post|news)[^"']*)["'][^>]*>([^<]+)</a>""",
    re.IGNORECASE,
)
_HEADING_PATTERN = re.compile(
    r"""<h[123][^>]*>(?:<a[^>]*href=["']([^"']*)["'][^>]*>)?([^<]+)(?:</a>)?</h[123]>""",
    re.IGNORECASE,
)
_TAG_PATTERN = re.compile(r"<[^>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")

# Only the entities common in headlines are decoded
_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
)


def clean_text(text: str) -> str:
    """Strip tags, decode common entities and collapse whitespace.

    Example:
        >>> clean_text("  Big&nbsp;<b>news</b> &amp; more  ")
        'Big news & more'
    """
    text = _TAG_PATTERN.sub("", text)
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def normalize_url(url: str, base_url: str) -> str:
    """Resolve a possibly-relative URL against the page it was found on.

    Returns the input unchanged if it cannot be resolved.
    """
    try:
        return urljoin(base_url, url.strip())
    except ValueError:
        return url


def source_hostname(url: str) -> str:
    """Hostname of a source URL, or an empty string if it has none."""
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def extract_articles(
    html: str,
    source_url: str,
    limit: int = MAX_ARTICLES,
    min_title_length: int = MIN_TITLE_LENGTH,
) -> list[Article]:
    """Extract candidate articles from a source page.

    Link matches come first, heading matches after, in document order.
    A link is rejected if its URL was already accepted; a heading is
    rejected if either its URL or its title was already accepted.

    Args:
        html: Raw page markup
        source_url: URL the page was fetched from (base for relative links)
        limit: Maximum articles to return
        min_title_length: Titles must be strictly longer than this

    Returns:
        Ordered list of at most ``limit`` articles (may be empty)
    """
    if not html:
        return []

    source = source_hostname(source_url)
    articles: list[Article] = []
    seen_urls: set[str] = set()
    seen_titles: set[str] = set()

    def accept(url: str, title: str) -> None:
        articles.append(Article(title=title, url=url, source=source))
        seen_urls.add(url)
        seen_titles.add(title)

    for match in _LINK_PATTERN.finditer(html):
        if len(articles) >= limit:
            break
        url = normalize_url(match.group(1), source_url)
        title = clean_text(match.group(2))
        if len(title) > min_title_length and url not in seen_urls:
            accept(url, title)

    link_count = len(articles)

    for match in _HEADING_PATTERN.finditer(html):
        if len(articles) >= limit:
            break
        href = match.group(1)
        url = normalize_url(href, source_url) if href else source_url
        title = clean_text(match.group(2))
        if len(title) > min_title_length and url not in seen_urls and title not in seen_titles:
            accept(url, title)

    logger.debug(
        "Extracted articles | source=%s links=%d headings=%d",
        source, link_count, len(articles) - link_count,
    )
    return articles
