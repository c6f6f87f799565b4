"""Run lifecycle models.

A run is one end-to-end execution of the newsletter workflow for a single
submission. Its status moves from RUNNING to exactly one terminal state and
never changes afterwards:

    running ──> complete
            ├─> failed
            └─> terminated   (operator cancellation only)
"""

from enum import Enum

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Lifecycle states of a workflow run."""

    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


TERMINAL_FAILURES: frozenset[RunStatus] = frozenset({
    RunStatus.FAILED,
    RunStatus.TERMINATED,
})


class NewsletterParams(BaseModel):
    """Submission payload persisted with each run."""

    interests: list[str] = Field(description="Interest keywords")
    sources: list[str] = Field(description="Absolute source page URLs")


class RunInfo(BaseModel):
    """Identity and status of a run, as returned by lifecycle operations."""

    id: str
    status: RunStatus

    def to_dict(self) -> dict:
        return {"id": self.id, "status": self.status.value}
