"""Relevance scorer for extracted articles.

This module implements the RelevanceScorer, which asks a fast text model how
relevant each article is to the reader's interests.

Design Philosophy:
    - Cheap triage: title and source only, short completions
    - Fail-safe: every article gets a score, even when the model misbehaves
    - Batched: small fixed-size batches, concurrent within a batch and
      sequential across batches, to keep request bursts small

Fallbacks (score is always 5, which sits below the selection threshold):
    - Model raised        -> reasoning "scoring failed"
    - No usable JSON      -> reasoning "could not determine relevance"
"""

import asyncio
import logging

from agents.generator import TextGenerator
from agents.parsing import parse_relevance
from models.article import Article, Relevance, ScoredArticle

logger = logging.getLogger(__name__)

BATCH_SIZE = 5
MAX_TOKENS = 150

SCORER_SYSTEM_PROMPT = (
    "You are a helpful assistant that rates article relevance. "
    "Always respond with valid JSON only."
)

SCORER_PROMPT = """You are evaluating article relevance for a personalized newsletter.

User Interests: {interests}

Article:
Title: {title}
Source: {source}

Rate this article's relevance to the user's interests on a scale of 1-10, where:
- 10 = Extremely relevant, must-read for this user
- 7-9 = Highly relevant
- 4-6 = Somewhat relevant
- 1-3 = Not relevant

Respond ONLY with valid JSON in this exact format:
{{"score": 8, "reasoning": "Brief explanation of why this matters to the user"}}"""


def build_scoring_prompt(article: Article, interests: list[str]) -> str:
    return SCORER_PROMPT.format(
        interests=", ".join(interests),
        title=article.title,
        source=article.source,
    )


class RelevanceScorer:
    """Scores articles against a reader's interests.

    Example:
        >>> scorer = RelevanceScorer(generator)
        >>> scored = await scorer.score_articles(articles, ["AI", "climate"])
        >>> len(scored) == len(articles)
        True
    """

    def __init__(
        self,
        generator: TextGenerator,
        batch_size: int = BATCH_SIZE,
        max_tokens: int = MAX_TOKENS,
    ):
        self.generator = generator
        self.batch_size = batch_size
        self.max_tokens = max_tokens

    async def score(self, article: Article, interests: list[str]) -> ScoredArticle:
        """Score a single article. Never raises."""
        try:
            text = await self.generator.generate(
                build_scoring_prompt(article, interests),
                self.max_tokens,
                system=SCORER_SYSTEM_PROMPT,
            )
        except Exception as e:
            logger.error("Scoring failed for '%s...': %s", article.title[:50], e, exc_info=True)
            return ScoredArticle.from_relevance(article, Relevance.failed())

        relevance = parse_relevance(text, fallback=Relevance.unparseable())
        logger.debug("Scored: %s... -> %d", article.title[:50], relevance.score)
        return ScoredArticle.from_relevance(article, relevance)

    async def score_articles(
        self,
        articles: list[Article],
        interests: list[str],
    ) -> list[ScoredArticle]:
        """Score all articles in sequential fixed-size batches.

        Args:
            articles: Articles to score
            interests: Reader interest keywords

        Returns:
            One ScoredArticle per input article, in input order
        """
        total = len(articles)
        scored: list[ScoredArticle] = []

        logger.info("Scoring started | total=%d batch_size=%d", total, self.batch_size)

        for start in range(0, total, self.batch_size):
            batch = articles[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.score(article, interests) for article in batch),
                return_exceptions=True,
            )
            for article, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Batch scoring error for '%s...': %s", article.title[:50], result, exc_info=result)
                    scored.append(ScoredArticle.from_relevance(article, Relevance.failed()))
                else:
                    scored.append(result)
            logger.info("Scoring progress: %d/%d", len(scored), total)

        fallbacks = sum(1 for a in scored if a.score == 5)
        logger.info("Scoring complete | total=%d neutral=%d", total, fallbacks)
        return scored
