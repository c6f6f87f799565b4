"""Durable newsletter workflow.

This module runs one newsletter run end to end:

Workflow Flow:
    1. scrape-articles: Concurrently scrape every source page
    2. score-articles: Score each article's relevance (batched model calls)
    3. select-top: Keep the best articles above the threshold
    4. generate-newsletter: Write the intro and per-article summaries
    5. store-result: Store the newsletter under 'run:<id>' with a TTL

Durability:
    Every step's output is serialized into the step log (database table
    run_steps) before the next step starts. When a run is resumed after an
    interruption, checkpointed steps are replayed from the log instead of
    re-executed, so only the remaining suffix runs.

Retries:
    A step that raises is retried with exponential backoff
    (RETRY_BASE_DELAY * 2^(attempt-1)) up to STEP_MAX_ATTEMPTS. When the
    attempts are exhausted the run is marked failed.

Status:
    The workflow only ever moves a run to 'complete' or 'failed'.
    'terminated' is reserved for operator cancellation (see service.py).
"""

import asyncio
import inspect
import logging
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, TypeVar

from pydantic import TypeAdapter

from agents.generator import ModelTextGenerator, TextGenerator
from agents.scorer import RelevanceScorer
from agents.writer import NewsletterWriter
from config import Config
from database import Database, result_key
from models.article import Article, ScoredArticle
from models.newsletter import Newsletter
from models.run import NewsletterParams, RunStatus
from observability.logging import run_scope, set_attempt, step_scope
from observability.tracing import trace_operation
from scraper import fetch_all_sources
from selector import select_top

logger = logging.getLogger(__name__)

T = TypeVar("T")

STEP_SCRAPE = "scrape-articles"
STEP_SCORE = "score-articles"
STEP_SELECT = "select-top"
STEP_WRITE = "generate-newsletter"
STEP_STORE = "store-result"

STEPS = (STEP_SCRAPE, STEP_SCORE, STEP_SELECT, STEP_WRITE, STEP_STORE)

_ARTICLES = TypeAdapter(list[Article])
_SCORED = TypeAdapter(list[ScoredArticle])
_NEWSLETTER = TypeAdapter(Newsletter)
_KEY = TypeAdapter(str)


class StepFailedError(Exception):
    """A workflow step raised on every allowed attempt."""

    def __init__(self, step: str, attempts: int):
        super().__init__(f"Step '{step}' failed after {attempts} attempt(s)")
        self.step = step
        self.attempts = attempts


@dataclass
class WorkflowContext:
    """Explicit dependencies of a workflow run.

    Attributes:
        scoring_generator: Text model used for relevance scoring
        writing_generator: Text model used for the intro and summaries
        database: Run registry, step log and artifact store
        config: Application configuration
    """

    scoring_generator: TextGenerator
    writing_generator: TextGenerator
    database: Database
    config: Config

    @classmethod
    def from_config(cls, config: Config, database: Database | None = None) -> "WorkflowContext":
        """Build the production context from configuration."""
        return cls(
            scoring_generator=ModelTextGenerator(config.scorer_model),
            writing_generator=ModelTextGenerator(config.writer_model),
            database=database or Database(config.db_path),
            config=config,
        )


@dataclass
class RunStats:
    """Statistics from a single workflow execution.

    Attributes:
        articles: Articles scraped from all sources
        scored: Articles scored
        selected: Articles selected for the newsletter
        replayed: Steps restored from checkpoints instead of executed
        retries: Step attempts that failed and were retried
        duration: Execution time in seconds (this execution only)
    """

    articles: int = 0
    scored: int = 0
    selected: int = 0
    replayed: int = 0
    retries: int = 0
    duration: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["duration"] = round(d["duration"], 2)
        return d


class NewsletterWorkflow:
    """Checkpointed newsletter pipeline for one run at a time.

    Example:
        >>> workflow = NewsletterWorkflow(WorkflowContext.from_config(config))
        >>> status = await workflow.execute(run_id)
    """

    def __init__(self, context: WorkflowContext):
        self.context = context
        self.config = context.config
        self.db = context.database
        self.scorer = RelevanceScorer(
            context.scoring_generator,
            batch_size=self.config.score_batch_size,
            max_tokens=self.config.score_max_tokens,
        )
        self.writer = NewsletterWriter(
            context.writing_generator,
            intro_max_tokens=self.config.intro_max_tokens,
            summary_max_tokens=self.config.summary_max_tokens,
        )

    async def execute(self, run_id: str) -> RunStatus:
        """Execute (or resume) a run and record its terminal status.

        Cancellation leaves the run 'running' with its checkpoints intact,
        so it can be resumed later.

        Args:
            run_id: Id of a run created in the database

        Returns:
            The run's status after this execution

        Raises:
            KeyError: If the run does not exist
        """
        record = self.db.get_run(run_id)
        if record is None:
            raise KeyError(f"Unknown run {run_id}")

        status = RunStatus(record["status"])
        if status.is_terminal:
            logger.info("Run already finished | id=%s status=%s", run_id, status.value)
            return status

        start = time.time()
        stats = RunStats()

        with run_scope(run_id):
            try:
                params = NewsletterParams.model_validate_json(record["params"])
                logger.info("Run started | sources=%d interests=%s", len(params.sources), ", ".join(params.interests))

                with trace_operation("workflow_run", {"run_id": run_id}) as attrs:
                    await self.run(run_id, params, stats)
                    attrs.update(stats.to_dict())
                self.db.set_run_status(run_id, RunStatus.COMPLETE.value)
                status = RunStatus.COMPLETE
            except asyncio.CancelledError:
                logger.info("Run interrupted | checkpoints kept for resume")
                raise
            except Exception as e:
                logger.error("Run failed | type=%s error=%s", type(e).__name__, e, exc_info=True)
                self.db.set_run_status(run_id, RunStatus.FAILED.value, error=f"{type(e).__name__}: {e}")
                status = RunStatus.FAILED
            finally:
                stats.duration = time.time() - start
                logger.info("Run done | stats=%s", stats.to_dict())

        return status

    async def run(
        self,
        run_id: str,
        params: NewsletterParams,
        stats: RunStats | None = None,
    ) -> Newsletter:
        """Run every step in order, replaying checkpointed ones.

        Args:
            run_id: Run id (step log and artifact key)
            params: Submission payload
            stats: Optional stats collector

        Returns:
            The stored newsletter

        Raises:
            StepFailedError: If a step exhausts its attempts
        """
        stats = stats or RunStats()
        completed = self.db.load_steps(run_id)
        if completed:
            logger.info("Resuming run | checkpointed=%s", ",".join(completed))

        async def scrape() -> list[Article]:
            logger.info("Scraping %d sources...", len(params.sources))
            return await fetch_all_sources(
                params.sources,
                timeout=self.config.fetch_timeout_seconds,
                max_concurrent=self.config.max_concurrent_fetches,
                max_articles=self.config.max_articles_per_source,
            )

        articles = await self._step(run_id, STEP_SCRAPE, completed, _ARTICLES, scrape, stats)
        stats.articles = len(articles)
        logger.info("Found %d articles", len(articles))

        scored = await self._step(
            run_id, STEP_SCORE, completed, _SCORED,
            lambda: self.scorer.score_articles(articles, params.interests),
            stats,
        )
        stats.scored = len(scored)

        selected = await self._step(
            run_id, STEP_SELECT, completed, _SCORED,
            lambda: select_top(scored, self.config.score_threshold, self.config.max_selected),
            stats,
        )
        stats.selected = len(selected)

        newsletter = await self._step(
            run_id, STEP_WRITE, completed, _NEWSLETTER,
            lambda: self.writer.write(selected, params.interests),
            stats,
        )

        await self._step(
            run_id, STEP_STORE, completed, _KEY,
            lambda: self._persist(run_id, newsletter),
            stats,
        )
        return newsletter

    def _persist(self, run_id: str, newsletter: Newsletter) -> str:
        key = result_key(run_id)
        logger.info("Storing result | key=%s ttl=%ds", key, self.config.result_ttl_seconds)
        self.db.put_result(key, newsletter.to_json(), self.config.result_ttl_seconds)
        return key

    async def _step(
        self,
        run_id: str,
        name: str,
        completed: dict[str, str],
        adapter: TypeAdapter,
        action: Callable[[], T | Awaitable[T]],
        stats: RunStats,
    ) -> T:
        """Run one step with retries, or replay it from its checkpoint."""
        with step_scope(name):
            if name in completed:
                stats.replayed += 1
                logger.info("Step replayed from checkpoint | step=%s", name)
                return adapter.validate_json(completed[name])

            attempts = self.config.step_max_attempts
            attempt = 0
            while True:
                attempt += 1
                set_attempt(attempt)
                try:
                    with trace_operation("workflow_step", {"run_id": run_id, "step": name, "attempt": attempt}):
                        result = action()
                        if inspect.isawaitable(result):
                            result = await result
                    break
                except Exception as e:
                    if attempt >= attempts:
                        logger.error("Step failed | step=%s attempts=%d error=%s", name, attempt, e)
                        raise StepFailedError(name, attempt) from e
                    delay = self.config.retry_base_delay * (2 ** (attempt - 1))
                    stats.retries += 1
                    logger.warning(
                        "Step failed (attempt %d/%d): %s; retrying in %.1fs",
                        attempt, attempts, e, delay,
                    )
                    await asyncio.sleep(delay)

            self.db.save_step(run_id, name, adapter.dump_json(result, by_alias=True).decode())
            logger.info("Step complete | step=%s attempts=%d", name, attempt)
            return result
