"""Async source page scraping.

This module fetches every source page concurrently and runs the heuristic
extractor over each body. It produces the flat article list that feeds the
scoring step.

Features:
    - Concurrent fetching over one pooled session
    - Configurable fan-out ceiling (0 = unbounded)
    - SSL certificate handling with fallback
    - Graceful error handling per source

Error Handling Strategy:
    - Individual source failures don't affect other sources
    - Non-2xx responses are logged but their body is still parsed
    - SSL errors trigger a retry without verification
    - Network errors and timeouts yield an empty list for that source
"""

import asyncio
import contextlib
import logging
import ssl

import aiohttp
import certifi

from models.article import Article
from tools.extract import MAX_ARTICLES, extract_articles

logger = logging.getLogger(__name__)

# Identify as a bot; some sites serve simplified markup to it
USER_AGENT = "Mozilla/5.0 (compatible; NewsletterBot/1.0)"

# Shared by every fetch: certifi bundle first, unverified only as a fallback
_VERIFIED_SSL = ssl.create_default_context(cafile=certifi.where())
_UNVERIFIED_SSL = ssl.create_default_context()
_UNVERIFIED_SSL.check_hostname = False
_UNVERIFIED_SSL.verify_mode = ssl.CERT_NONE


async def _fetch_page(
    session: aiohttp.ClientSession,
    url: str,
    timeout: int,
    verify_ssl: bool = True,
) -> str:
    """Fetch page markup, retrying once without SSL verification.

    Raises:
        aiohttp.ClientError, asyncio.TimeoutError: On network failure
    """
    try:
        async with session.get(
            url,
            timeout=aiohttp.ClientTimeout(total=timeout),
            headers={"User-Agent": USER_AGENT},
            ssl=_VERIFIED_SSL if verify_ssl else _UNVERIFIED_SSL,
        ) as resp:
            if resp.status >= 300:
                logger.warning("Source %s: HTTP %d, parsing body anyway", url, resp.status)
            return await resp.text(errors="replace")
    except aiohttp.ClientSSLError:
        if verify_ssl:
            logger.debug("Source %s: SSL error, retrying without verification", url)
            return await _fetch_page(session, url, timeout, verify_ssl=False)
        raise


async def scrape_source(
    session: aiohttp.ClientSession,
    url: str,
    timeout: int = 30,
    max_articles: int = MAX_ARTICLES,
) -> list[Article]:
    """Fetch one source page and extract its articles.

    Returns an empty list on any fetch error.
    """
    try:
        html = await _fetch_page(session, url, timeout)
    except asyncio.TimeoutError:
        logger.warning("Source %s: request timed out after %ds", url, timeout)
        return []
    except Exception as e:
        logger.warning("Source %s: %s: %s", url, type(e).__name__, e)
        return []

    articles = extract_articles(html, url, limit=max_articles)
    logger.debug("Source %s: %d articles", url, len(articles))
    return articles


async def fetch_all_sources(
    urls: list[str],
    timeout: int = 30,
    max_concurrent: int = 10,
    max_articles: int = MAX_ARTICLES,
) -> list[Article]:
    """Scrape all source pages concurrently.

    Results are concatenated in the order of ``urls`` regardless of which
    fetch finishes first.

    Args:
        urls: Source page URLs
        timeout: Request timeout per source in seconds
        max_concurrent: Maximum simultaneous fetches (0 = unbounded)
        max_articles: Extraction cap per source

    Returns:
        Flattened list of articles from every source

    Example:
        >>> articles = await fetch_all_sources(
        ...     ["https://example.com"],
        ...     timeout=30,
        ...     max_concurrent=10,
        ... )
    """
    connector = aiohttp.TCPConnector(limit=max_concurrent)
    semaphore = asyncio.Semaphore(max_concurrent) if max_concurrent > 0 else None

    async with aiohttp.ClientSession(connector=connector) as session:

        async def scrape_one(url: str) -> list[Article]:
            async with semaphore if semaphore else contextlib.nullcontext():
                return await scrape_source(session, url, timeout, max_articles)

        results = await asyncio.gather(*(scrape_one(url) for url in urls), return_exceptions=True)

    articles: list[Article] = []
    errors = 0
    for url, result in zip(urls, results):
        if isinstance(result, Exception):
            logger.warning("Source error %s: %s (%s)", url, result, type(result).__name__)
            errors += 1
            continue
        articles.extend(result)

    logger.info("Sources scraped | articles=%d sources=%d errors=%d", len(articles), len(urls), errors)
    return articles
