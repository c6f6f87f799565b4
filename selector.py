"""Top-article selection.

Filter by threshold, stable sort by score descending, cap. Ties keep their
scoring order (Python's sort is stable and there is no secondary key), so
the same input always yields the same newsletter lineup.
"""

import logging

from models.article import ScoredArticle

logger = logging.getLogger(__name__)

SCORE_THRESHOLD = 6
MAX_SELECTED = 7


def select_top(
    scored: list[ScoredArticle],
    threshold: int = SCORE_THRESHOLD,
    limit: int = MAX_SELECTED,
) -> list[ScoredArticle]:
    """Pick the best articles for the newsletter.

    Args:
        scored: Scored articles in scoring order
        threshold: Minimum score to keep (inclusive)
        limit: Maximum articles to return

    Returns:
        At most ``limit`` articles with score >= ``threshold``, best first
    """
    kept = [a for a in scored if a.score >= threshold]
    selected = sorted(kept, key=lambda a: a.score, reverse=True)[:limit]
    logger.info(
        "Selected top articles | selected=%d eligible=%d total=%d threshold=%d",
        len(selected), len(kept), len(scored), threshold,
    )
    return selected
