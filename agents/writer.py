"""Newsletter writer: intro and per-article summaries.

The writer turns the selected articles into the final Newsletter document.
It makes one call for the intro and one call per article, with the summary
calls running concurrently. Each call is guarded independently:

    - Intro fails or comes back empty    -> fixed generic intro
    - A summary fails or comes back empty -> the article's own title

So a newsletter is always produced, even if the model is entirely down.
"""

import asyncio
import logging
from datetime import datetime, timezone

from agents.generator import TextGenerator
from models.article import ScoredArticle
from models.newsletter import Newsletter, NewsletterArticle

logger = logging.getLogger(__name__)

INTRO_MAX_TOKENS = 100
SUMMARY_MAX_TOKENS = 150
FALLBACK_INTRO = "Here are your personalized articles this week."

INTRO_PROMPT = """Create a brief, friendly intro (2-3 sentences) for a personalized newsletter about {interests}.
Make it engaging and conversational. Don't use the word "curated"."""

SUMMARY_PROMPT = """Summarize this article in 2-3 sentences for someone interested in {interests}:

Title: {title}
Source: {source}

Make it engaging and explain why it matters."""


class NewsletterWriter:
    """Writes a Newsletter from selected articles.

    Example:
        >>> writer = NewsletterWriter(generator)
        >>> newsletter = await writer.write(selected, ["AI"])
        >>> newsletter.intro
        'Welcome to this week...'
    """

    def __init__(
        self,
        generator: TextGenerator,
        intro_max_tokens: int = INTRO_MAX_TOKENS,
        summary_max_tokens: int = SUMMARY_MAX_TOKENS,
    ):
        self.generator = generator
        self.intro_max_tokens = intro_max_tokens
        self.summary_max_tokens = summary_max_tokens

    async def write_intro(self, interests: list[str]) -> str:
        """Generate the intro paragraph. Never raises."""
        prompt = INTRO_PROMPT.format(interests=", ".join(interests))
        try:
            text = await self.generator.generate(prompt, self.intro_max_tokens)
        except Exception as e:
            logger.error("Intro generation failed: %s", e, exc_info=True)
            return FALLBACK_INTRO
        return text.strip() or FALLBACK_INTRO

    async def summarize(self, article: ScoredArticle, interests: list[str]) -> NewsletterArticle:
        """Summarize one article. Falls back to its title; never raises."""
        prompt = SUMMARY_PROMPT.format(
            interests=", ".join(interests),
            title=article.title,
            source=article.source,
        )
        try:
            text = await self.generator.generate(prompt, self.summary_max_tokens)
            summary = text.strip() or article.title
        except Exception as e:
            logger.error("Summary generation failed for '%s...': %s", article.title[:50], e, exc_info=True)
            summary = article.title

        return NewsletterArticle(
            title=article.title,
            url=article.url,
            summary=summary,
            reason=article.reasoning,
            source=article.source,
        )

    async def write(self, articles: list[ScoredArticle], interests: list[str]) -> Newsletter:
        """Render the full newsletter.

        Args:
            articles: Selected articles, best first
            interests: Reader interest keywords

        Returns:
            Newsletter stamped with the render completion time
        """
        intro = await self.write_intro(interests)
        entries = await asyncio.gather(*(self.summarize(a, interests) for a in articles))

        newsletter = Newsletter(
            intro=intro,
            articles=list(entries),
            generated_at=datetime.now(timezone.utc),
        )
        logger.info("Newsletter written | articles=%d intro_chars=%d", len(entries), len(intro))
        return newsletter
