"""Article data models for scraped and scored candidates.

This module defines the models flowing through the first half of the
workflow: extraction produces Article objects, scoring wraps each one in a
ScoredArticle carrying the model's relevance verdict.

Scoring Strategy:
    Scores are best-effort annotations from an unreliable text generator.
    The Relevance model normalizes whatever the model returned into an
    integer between 1 and 10, and anything unusable becomes the neutral
    default of 5. A neutral score sits below the selection threshold, so
    unscorable articles never reach the newsletter.
"""

import logging
import math

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 5
DEFAULT_REASONING = "Relevant to your interests"
UNPARSEABLE_REASONING = "could not determine relevance"
FAILED_REASONING = "scoring failed"


def normalize_score(value) -> int:
    """Coerce a raw score value into an integer in [1, 10].

    Zero, missing, boolean, non-numeric and non-finite values map to the
    default score.
    Numeric values are rounded and clamped.
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_SCORE
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric relevance score; using default | value=%r", value)
        return DEFAULT_SCORE
    if not math.isfinite(number) or number == 0:
        return DEFAULT_SCORE
    return max(1, min(10, int(round(number))))


class Article(BaseModel):
    """A candidate article extracted from a source page.

    Attributes:
        title: Cleaned headline text
        url: Absolute article URL (or the raw href if it could not be resolved)
        source: Hostname of the page the article was found on

    Example:
        >>> article = Article(
        ...     title="A sufficiently long headline text",
        ...     url="https://example.com/a",
        ...     source="example.com",
        ... )
    """

    model_config = ConfigDict(frozen=True)

    title: str = Field(description="Article headline")
    url: str = Field(description="Absolute article URL")
    source: str = Field(description="Hostname of the source page")

    def __str__(self) -> str:
        """Human-readable representation for logging."""
        return f"Article({self.source}, '{self.title[:50]}')"


class Relevance(BaseModel):
    """Parsed relevance verdict for one article."""

    score: int = Field(default=DEFAULT_SCORE, ge=1, le=10, description="Relevance 1-10")
    reasoning: str = Field(default=DEFAULT_REASONING, description="Why it matters to the reader")

    @field_validator("score", mode="before")
    @classmethod
    def _normalize_score(cls, value):
        return normalize_score(value)

    @field_validator("reasoning", mode="before")
    @classmethod
    def _normalize_reasoning(cls, value):
        if value is None:
            return DEFAULT_REASONING
        text = str(value).strip()
        return text or DEFAULT_REASONING

    @classmethod
    def unparseable(cls) -> "Relevance":
        """Verdict used when the model output holds no usable JSON."""
        return cls(score=DEFAULT_SCORE, reasoning=UNPARSEABLE_REASONING)

    @classmethod
    def failed(cls) -> "Relevance":
        """Verdict used when the model call itself raised."""
        return cls(score=DEFAULT_SCORE, reasoning=FAILED_REASONING)


class ScoredArticle(Article):
    """An Article annotated with its relevance score and reasoning."""

    score: int = Field(ge=1, le=10, description="Relevance score 1-10")
    reasoning: str = Field(default="", description="Model explanation of the score")

    @classmethod
    def from_relevance(cls, article: Article, relevance: Relevance) -> "ScoredArticle":
        return cls(
            title=article.title,
            url=article.url,
            source=article.source,
            score=relevance.score,
            reasoning=relevance.reasoning,
        )

    def __str__(self) -> str:
        return f"ScoredArticle({self.score}, '{self.title[:50]}')"
