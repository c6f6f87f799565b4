"""Synchronous newsletter gateway logic.

The HTTP layer (server.py) and the CLI both use this module to turn one
submission into one newsletter: validate the payload, start a run, then
poll its status until it reaches a terminal state or the polling budget
runs out.

Polling:
    Sleep first, then check. With the defaults (60 attempts, 2s apart) a
    caller waits at most about two minutes. Transient status-check errors
    are logged and polling continues. A run that completed but has no
    stored result is a hard error.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from models.newsletter import Newsletter
from models.run import TERMINAL_FAILURES, NewsletterParams, RunStatus
from service import WorkflowService

logger = logging.getLogger(__name__)

POLL_MAX_ATTEMPTS = 60
POLL_INTERVAL_SECONDS = 2.0


class SubmissionError(ValueError):
    """Submission payload failed validation. The message is client-facing."""


def is_absolute_url(value: Any) -> bool:
    """True if value parses as a URL with both a scheme and a host."""
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def validate_submission(body: Any) -> NewsletterParams:
    """Validate a ``{"interests": [...], "sources": [...]}`` payload.

    Raises:
        SubmissionError: With the first problem found
    """
    if not isinstance(body, dict):
        raise SubmissionError("Request body must be a JSON object")

    interests = body.get("interests")
    if (
        not isinstance(interests, list)
        or not interests
        or not all(isinstance(i, str) and i.strip() for i in interests)
    ):
        raise SubmissionError("Please provide at least one interest")

    sources = body.get("sources")
    if not isinstance(sources, list) or not sources:
        raise SubmissionError("Please provide at least one source")

    for source in sources:
        if not is_absolute_url(source):
            raise SubmissionError(f"Invalid URL {source}")

    return NewsletterParams(interests=interests, sources=sources)


class PollState(str, Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass
class PollOutcome:
    """How polling a run ended.

    Attributes:
        state: complete, failed (failed or terminated run) or timeout
        run_id: Polled run
        attempts: Status checks performed
        newsletter: The result when state is complete
        status: Last observed run status, if any
    """

    state: PollState
    run_id: str
    attempts: int
    newsletter: Newsletter | None = None
    status: RunStatus | None = None


async def wait_for_newsletter(
    service: WorkflowService,
    run_id: str,
    max_attempts: int = POLL_MAX_ATTEMPTS,
    interval: float = POLL_INTERVAL_SECONDS,
) -> PollOutcome:
    """Poll a run until it finishes or the attempt budget is spent.

    Raises:
        ResultMissingError: If the run completed but its result is absent
    """
    status: RunStatus | None = None

    for attempt in range(1, max_attempts + 1):
        await asyncio.sleep(interval)

        try:
            info = await service.get_instance(run_id)
        except Exception as e:
            logger.error("Error checking workflow status | attempt=%d error=%s", attempt, e)
            continue

        status = info.status
        if status is RunStatus.COMPLETE:
            newsletter = await service.get_result(run_id)
            logger.info("Workflow complete | id=%s attempts=%d", run_id, attempt)
            return PollOutcome(PollState.COMPLETE, run_id, attempt, newsletter=newsletter, status=status)

        if status in TERMINAL_FAILURES:
            logger.warning("Workflow ended without a newsletter | id=%s status=%s", run_id, status.value)
            return PollOutcome(PollState.FAILED, run_id, attempt, status=status)

        logger.debug("Workflow still running | attempt=%d/%d", attempt, max_attempts)

    logger.warning("Workflow polling timed out | id=%s attempts=%d", run_id, max_attempts)
    return PollOutcome(PollState.TIMEOUT, run_id, max_attempts, status=status)
