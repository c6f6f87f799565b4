import asyncio
import logging

import pytest

from conftest import FakeGenerator, make_article
from database import result_key
from models.article import ScoredArticle
from models.newsletter import Newsletter
from models.run import NewsletterParams, RunStatus
from observability.logging import ContextFilter, current_context
from workflow import (
    STEP_SCORE,
    STEP_SCRAPE,
    STEPS,
    NewsletterWorkflow,
    RunStats,
    WorkflowContext,
)

PARAMS = NewsletterParams(interests=["rust"], sources=["https://example.com/front"])

ARTICLES = [
    make_article("Rust 1.80 released with many new features"),
    make_article("Cooking pasta at home for complete beginners"),
]


def scoring_generator() -> FakeGenerator:
    return FakeGenerator(
        {"Title: Rust": '{"score": 9, "reasoning": "Direct hit"}'},
        default='{"score": 2, "reasoning": "Unrelated"}',
    )


def make_workflow(config, db, scoring=None, writing=None) -> NewsletterWorkflow:
    context = WorkflowContext(
        scoring_generator=scoring or scoring_generator(),
        writing_generator=writing or FakeGenerator(default="Generated text."),
        database=db,
        config=config,
    )
    return NewsletterWorkflow(context)


def patch_fetch(monkeypatch, *outcomes):
    """Replace scraping with queued outcomes; the last one repeats."""
    calls = []

    async def fake_fetch(urls, **kwargs):
        calls.append(list(urls))
        outcome = outcomes[min(len(calls), len(outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    monkeypatch.setattr("workflow.fetch_all_sources", fake_fetch)
    return calls


def create_run(db, run_id="run1", params=PARAMS):
    db.create_run(run_id, params.model_dump_json())
    return run_id


async def test_happy_path_stores_newsletter_and_completes(config, db, monkeypatch):
    calls = patch_fetch(monkeypatch, ARTICLES)
    run_id = create_run(db)

    status = await make_workflow(config, db).execute(run_id)

    assert status is RunStatus.COMPLETE
    assert db.get_run(run_id)["status"] == "complete"
    assert calls == [["https://example.com/front"]]
    assert set(db.load_steps(run_id)) == set(STEPS)

    stored = db.get_result(result_key(run_id))
    newsletter = Newsletter.model_validate_json(stored.value)
    assert [a.title for a in newsletter.articles] == ["Rust 1.80 released with many new features"]
    assert newsletter.articles[0].reason == "Direct hit"
    assert newsletter.intro == "Generated text."


async def test_result_ttl_is_applied(config, db, monkeypatch):
    patch_fetch(monkeypatch, ARTICLES)
    run_id = create_run(db)

    await make_workflow(config, db).execute(run_id)

    stored = db.get_result(result_key(run_id))
    row = db.get_run(run_id)
    assert stored.expires_at == pytest.approx(row["updated_at"] + config.result_ttl_seconds, abs=5)


async def test_checkpointed_steps_are_replayed_not_rerun(config, db, monkeypatch):
    calls = patch_fetch(monkeypatch, RuntimeError("scrape must not run"))
    run_id = create_run(db)
    scored = [
        ScoredArticle(title=ARTICLES[0].title, url=ARTICLES[0].url, source="example.com", score=8, reasoning="saved"),
    ]
    db.save_step(run_id, STEP_SCRAPE, "[]")
    db.save_step(run_id, STEP_SCORE, "[" + scored[0].model_dump_json() + "]")
    scoring = scoring_generator()
    stats = RunStats()

    newsletter = await make_workflow(config, db, scoring=scoring).run(run_id, PARAMS, stats)

    assert calls == []
    assert scoring.calls == []
    assert stats.replayed == 2
    assert [a.reason for a in newsletter.articles] == ["saved"]


async def test_interrupted_run_resumes_from_last_checkpoint(config, db, monkeypatch):
    gate = asyncio.Event()
    scrapes = 0

    async def fetch(urls, **kwargs):
        nonlocal scrapes
        scrapes += 1
        return ARTICLES

    class BlockingWriter(FakeGenerator):
        async def generate(self, prompt, max_tokens, *, system=None):
            await gate.wait()
            return await super().generate(prompt, max_tokens, system=system)

    monkeypatch.setattr("workflow.fetch_all_sources", fetch)
    run_id = create_run(db)

    task = asyncio.create_task(make_workflow(config, db, writing=BlockingWriter(default="x")).execute(run_id))
    for _ in range(50):
        await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert db.get_run(run_id)["status"] == "running"
    assert "select-top" in db.load_steps(run_id)
    assert "generate-newsletter" not in db.load_steps(run_id)

    scoring = scoring_generator()
    status = await make_workflow(config, db, scoring=scoring).execute(run_id)

    assert status is RunStatus.COMPLETE
    assert scrapes == 1
    assert scoring.calls == []


async def test_failing_step_is_retried_then_succeeds(config, db, monkeypatch):
    calls = patch_fetch(monkeypatch, ConnectionError("flaky"), ConnectionError("flaky"), ARTICLES)
    run_id = create_run(db)

    status = await make_workflow(config, db).execute(run_id)

    assert status is RunStatus.COMPLETE
    assert len(calls) == 3


async def test_retry_uses_exponential_backoff(config, db, monkeypatch):
    patch_fetch(monkeypatch, ConnectionError("down"))
    config.retry_base_delay = 0.5
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr("workflow.asyncio.sleep", fake_sleep)
    run_id = create_run(db)

    await make_workflow(config, db).execute(run_id)

    assert delays == [0.5, 1.0]


async def test_exhausted_retries_fail_the_run(config, db, monkeypatch):
    calls = patch_fetch(monkeypatch, ConnectionError("down"))
    run_id = create_run(db)

    status = await make_workflow(config, db).execute(run_id)

    assert status is RunStatus.FAILED
    assert len(calls) == config.step_max_attempts
    record = db.get_run(run_id)
    assert record["status"] == "failed"
    assert "StepFailedError" in record["error"]
    assert db.load_steps(run_id) == {}
    assert db.get_result(result_key(run_id)) is None


async def test_store_failure_is_retried(config, db, monkeypatch):
    patch_fetch(monkeypatch, ARTICLES)
    original = db.put_result
    attempts = []

    def flaky_put(key, value, ttl_seconds):
        attempts.append(key)
        if len(attempts) == 1:
            raise OSError("disk busy")
        original(key, value, ttl_seconds)

    monkeypatch.setattr(db, "put_result", flaky_put)
    run_id = create_run(db)

    status = await make_workflow(config, db).execute(run_id)

    assert status is RunStatus.COMPLETE
    assert attempts == [result_key(run_id)] * 2


async def test_all_scoring_failures_give_empty_newsletter(config, db, monkeypatch):
    patch_fetch(monkeypatch, ARTICLES)
    run_id = create_run(db)
    scoring = FakeGenerator(error=RuntimeError("model down"))

    status = await make_workflow(config, db, scoring=scoring).execute(run_id)

    assert status is RunStatus.COMPLETE
    newsletter = Newsletter.model_validate_json(db.get_result(result_key(run_id)).value)
    assert newsletter.articles == []
    assert newsletter.intro == "Generated text."


async def test_no_articles_found_still_completes(config, db, monkeypatch):
    patch_fetch(monkeypatch, [])
    run_id = create_run(db)
    scoring = scoring_generator()

    status = await make_workflow(config, db, scoring=scoring).execute(run_id)

    assert status is RunStatus.COMPLETE
    assert scoring.calls == []


async def test_finished_run_is_not_executed_again(config, db, monkeypatch):
    calls = patch_fetch(monkeypatch, ARTICLES)
    run_id = create_run(db)
    db.set_run_status(run_id, "terminated")

    status = await make_workflow(config, db).execute(run_id)

    assert status is RunStatus.TERMINATED
    assert calls == []


async def test_unknown_run_raises(config, db):
    with pytest.raises(KeyError):
        await make_workflow(config, db).execute("missing")


async def test_threshold_ties_keep_scrape_order(config, db, monkeypatch):
    articles = [make_article(f"Tied headline number {i} about rust") for i in range(7)]
    patch_fetch(monkeypatch, articles)
    run_id = create_run(db)
    scoring = FakeGenerator(default='{"score": 6, "reasoning": "Borderline"}')

    newsletter = await make_workflow(config, db, scoring=scoring).run(run_id, PARAMS)

    assert [a.title for a in newsletter.articles] == [a.title for a in articles]
    assert {a.reason for a in newsletter.articles} == {"Borderline"}


async def test_step_logs_carry_run_and_step(config, db, monkeypatch, caplog):
    patch_fetch(monkeypatch, RuntimeError("network down"), ARTICLES)
    run_id = create_run(db)
    caplog.handler.addFilter(ContextFilter())
    caplog.set_level(logging.INFO, logger="workflow")

    await make_workflow(config, db).execute(run_id)

    completions = {
        r.step: r.context for r in caplog.records if r.getMessage().startswith("Step complete")
    }
    assert completions[STEP_SCRAPE] == f"{run_id}/{STEP_SCRAPE}#2"
    assert completions[STEP_SCORE] == f"{run_id}/{STEP_SCORE}"
    assert current_context() == {}
