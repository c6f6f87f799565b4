"""Shared fixtures: fake text generators, temporary config and database."""

import pytest

from config import Config
from database import Database
from models.article import Article, ScoredArticle


class FakeGenerator:
    """TextGenerator returning canned replies.

    ``replies`` maps a prompt substring to the reply text (or an exception
    to raise). The first matching substring wins; otherwise ``default`` is
    returned. Every call is recorded.
    """

    def __init__(self, replies: dict | None = None, default: str = "", error: Exception | None = None):
        self.replies = replies or {}
        self.default = default
        self.error = error
        self.calls: list[tuple[str, int, str | None]] = []

    async def generate(self, prompt: str, max_tokens: int, *, system: str | None = None) -> str:
        self.calls.append((prompt, max_tokens, system))
        if self.error is not None:
            raise self.error
        for needle, reply in self.replies.items():
            if needle in prompt:
                if isinstance(reply, Exception):
                    raise reply
                return reply
        return self.default


def make_article(title: str, url: str | None = None, source: str = "example.com") -> Article:
    return Article(title=title, url=url or f"https://{source}/news/{abs(hash(title))}", source=source)


def make_scored(title: str, score: int, reasoning: str = "matches") -> ScoredArticle:
    article = make_article(title)
    return ScoredArticle(
        title=article.title,
        url=article.url,
        source=article.source,
        score=score,
        reasoning=reasoning,
    )


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        db_path=tmp_path / "tidings.db",
        log_dir=tmp_path / "log",
        reports_dir=tmp_path / "reports",
        retry_base_delay=0.0,
        poll_interval_seconds=0.0,
        poll_max_attempts=200,
        fetch_timeout_seconds=5,
    )


@pytest.fixture
def db(config):
    database = Database(config.db_path)
    yield database
    database.close()
