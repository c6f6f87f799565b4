import json
import logging
from contextlib import contextmanager

from observability.logging import (
    ACCESS_LOGGER_NAME,
    ContextFilter,
    JsonFormatter,
    access_logger,
    current_context,
    run_scope,
    set_attempt,
    setup_logging,
    step_scope,
)
from observability.tracing import trace_operation


def make_record(message="hello", level=logging.WARNING, **extra):
    record = logging.LogRecord("tidings.test", level, __file__, 1, message, None, None)
    record.__dict__.update(extra)
    ContextFilter().filter(record)
    return record


@contextmanager
def installed_logging(config):
    """Run setup_logging, then put the previous root handlers back."""
    root = logging.getLogger()
    saved = root.handlers[:]
    level = root.level
    try:
        yield setup_logging(config)
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            if any(isinstance(f, ContextFilter) for f in handler.filters):
                handler.close()
        for handler in saved:
            root.addHandler(handler)
        root.setLevel(level)


def test_scopes_tag_records_and_reset():
    with run_scope("run-42"), step_scope("score-articles"):
        record = make_record()
        assert current_context() == {"run_id": "run-42", "step": "score-articles"}

    assert record.run_id == "run-42"
    assert record.step == "score-articles"
    assert record.context == "run-42/score-articles"
    assert current_context() == {}
    assert make_record().context == "-"


def test_retry_attempts_show_in_tag():
    with run_scope("run-1"), step_scope("scrape-articles"):
        set_attempt(1)
        first = make_record()
        set_attempt(2)
        second = make_record()

    assert first.context == "run-1/scrape-articles"
    assert second.context == "run-1/scrape-articles#2"
    assert current_context() == {}


def test_json_includes_only_set_context():
    with run_scope("run-7"):
        outside_step = json.loads(JsonFormatter().format(make_record("scored", level=logging.INFO)))
        with step_scope("select-top"):
            set_attempt(3)
            in_step = json.loads(JsonFormatter().format(make_record("retrying")))

    assert outside_step["msg"] == "scored"
    assert outside_step["run_id"] == "run-7"
    assert "step" not in outside_step
    assert "where" not in outside_step

    assert in_step["step"] == "select-top"
    assert in_step["attempt"] == 3
    assert in_step["level"] == "WARNING"
    assert in_step["where"].startswith("test_observability.py:")


def test_json_keeps_extra_fields():
    data = json.loads(JsonFormatter().format(make_record(articles=12, source={"host": "a.com"})))

    assert data["articles"] == 12
    assert data["source"] == {"host": "a.com"}
    assert "run_id" not in data


def test_setup_logging_writes_log_file(config):
    with installed_logging(config) as file_enabled:
        logging.getLogger("tidings.test").info("hello file")
        for handler in logging.getLogger().handlers:
            handler.flush()

    assert file_enabled is True

    content = (config.log_dir / "tidings.log").read_text()
    assert "hello file" in content


def test_unwritable_log_dir_falls_back_to_console(config, tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("")
    config.log_dir = blocker

    with installed_logging(config) as file_enabled:
        handlers = logging.getLogger().handlers[:]

    assert file_enabled is False
    assert len(handlers) == 1


def test_access_logger():
    logger = access_logger()
    assert logger.name == ACCESS_LOGGER_NAME
    assert logger.isEnabledFor(logging.INFO)


def test_trace_operation_is_a_no_op_when_disabled():
    with trace_operation("workflow_step", {"step": "select-top"}) as attrs:
        attrs["selected"] = 3
    assert attrs == {"selected": 3}
