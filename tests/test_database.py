import sqlite3
import time

import pytest

from database import Database, StoredResult, result_key


def test_result_key():
    assert result_key("abc") == "run:abc"


def test_create_and_get_run(db):
    db.create_run("r1", '{"interests": ["ai"], "sources": []}')

    record = db.get_run("r1")

    assert record["status"] == "running"
    assert record["params"] == '{"interests": ["ai"], "sources": []}'
    assert record["error"] is None
    assert db.get_run("missing") is None


def test_duplicate_run_id_rejected(db):
    db.create_run("r1", "{}")
    with pytest.raises(sqlite3.IntegrityError):
        db.create_run("r1", "{}")


def test_terminal_states_are_absorbing(db):
    db.create_run("r1", "{}")

    assert db.set_run_status("r1", "failed", error="boom") is True
    assert db.set_run_status("r1", "complete") is False
    assert db.set_run_status("r1", "terminated") is False

    record = db.get_run("r1")
    assert record["status"] == "failed"
    assert record["error"] == "boom"


def test_runs_with_status(db):
    db.create_run("a", "{}")
    db.create_run("b", "{}")
    db.set_run_status("b", "complete")

    assert db.runs_with_status("running") == ["a"]
    assert db.runs_with_status("complete") == ["b"]


def test_step_log_round_trip(db):
    db.create_run("r1", "{}")
    db.save_step("r1", "scrape-articles", "[1]")
    db.save_step("r1", "score-articles", "[2]")

    assert db.load_steps("r1") == {"scrape-articles": "[1]", "score-articles": "[2]"}
    assert db.load_steps("other") == {}


def test_checkpoints_survive_reopen(config):
    with Database(config.db_path) as first:
        first.create_run("r1", "{}")
        first.save_step("r1", "scrape-articles", "[]")

    with Database(config.db_path) as second:
        assert second.load_steps("r1") == {"scrape-articles": "[]"}
        assert second.get_run("r1")["status"] == "running"


def test_results_expire(db):
    db.put_result("run:r1", "payload", ttl_seconds=3600)

    stored = db.get_result("run:r1")

    assert stored.value == "payload"
    assert not stored.is_expired()
    assert stored.is_expired(now=stored.expires_at)
    assert db.get_result("run:none") is None


def test_stored_result_expiry_boundary():
    stored = StoredResult(key="k", value="v", expires_at=100.0)
    assert not stored.is_expired(now=99.9)
    assert stored.is_expired(now=100.0)


def test_prune_removes_expired_results_and_old_finished_runs(db):
    db.create_run("old-done", "{}")
    db.save_step("old-done", "scrape-articles", "[]")
    db.set_run_status("old-done", "complete")
    db.create_run("old-running", "{}")
    db.put_result("run:old-done", "x", ttl_seconds=10)

    future = time.time() + 1000
    deleted = db.prune(max_age_seconds=100, now=future)

    assert deleted == 3
    assert db.get_run("old-done") is None
    assert db.load_steps("old-done") == {}
    assert db.get_result("run:old-done") is None
    assert db.get_run("old-running") is not None


def test_stats(db):
    db.create_run("a", "{}")
    db.create_run("b", "{}")
    db.set_run_status("b", "failed")
    db.put_result("run:a", "x", ttl_seconds=10)

    assert db.stats() == {"running": 1, "failed": 1, "results": 1}
