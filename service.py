"""Workflow lifecycle service.

Creates runs, reports their status, retrieves their results and lets an
operator terminate them. Each run executes as its own asyncio task in the
same process; the run registry and step log live in the database, so runs
left 'running' by a previous process are resumed by ``resume_pending``.

Run Lifecycle:
    running -> complete     (all steps done, result stored)
    running -> failed       (a step exhausted its retries)
    running -> terminated   (operator cancellation)

Terminal states are absorbing.
"""

import asyncio
import logging
import uuid

from config import Config
from database import Database, result_key
from models.newsletter import Newsletter
from models.run import NewsletterParams, RunInfo, RunStatus
from workflow import NewsletterWorkflow, WorkflowContext

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Base class for lifecycle errors."""


class RunNotFoundError(WorkflowError):
    """No run exists with the requested id."""


class RunNotCompleteError(WorkflowError):
    """The run has not reached 'complete'."""

    def __init__(self, run_id: str, status: RunStatus):
        super().__init__(f"Workflow {run_id} is not complete. Status: {status.value}")
        self.run_id = run_id
        self.status = status


class ResultMissingError(WorkflowError):
    """The run completed but its newsletter is not in the artifact store."""


class ResultExpiredError(ResultMissingError):
    """The run's newsletter outlived its TTL."""


class WorkflowService:
    """Durable run lifecycle on top of the database and the workflow.

    Read-only operations (status, result) need only the database, so the
    workflow is optional for callers that never start runs.

    Example:
        >>> service = WorkflowService.from_config(config)
        >>> run = await service.create_instance(NewsletterParams(...))
        >>> (await service.get_instance(run.id)).status
        <RunStatus.RUNNING: 'running'>
    """

    def __init__(self, database: Database, workflow: NewsletterWorkflow | None = None):
        self.db = database
        self.workflow = workflow
        self._tasks: dict[str, asyncio.Task] = {}

    @classmethod
    def from_config(cls, config: Config) -> "WorkflowService":
        """Build a service with production generators and storage."""
        context = WorkflowContext.from_config(config)
        return cls(context.database, NewsletterWorkflow(context))

    async def create_instance(self, params: NewsletterParams) -> RunInfo:
        """Register a new run and start executing it in the background."""
        run_id = uuid.uuid4().hex
        self.db.create_run(run_id, params.model_dump_json())
        logger.info(
            "Run created | id=%s sources=%d interests=%d",
            run_id, len(params.sources), len(params.interests),
        )
        self._start(run_id)
        return RunInfo(id=run_id, status=RunStatus.RUNNING)

    async def get_instance(self, run_id: str) -> RunInfo:
        """Current status of a run.

        Raises:
            RunNotFoundError: If the id is unknown
        """
        record = self.db.get_run(run_id)
        if record is None:
            raise RunNotFoundError(f"Workflow {run_id} not found")
        return RunInfo(id=run_id, status=RunStatus(record["status"]))

    async def get_result(self, run_id: str) -> Newsletter:
        """Newsletter produced by a completed run.

        Raises:
            RunNotFoundError: If the id is unknown
            RunNotCompleteError: If the run is not complete
            ResultExpiredError: If the stored newsletter outlived its TTL
            ResultMissingError: If the run completed but nothing is stored
        """
        info = await self.get_instance(run_id)
        if info.status is not RunStatus.COMPLETE:
            raise RunNotCompleteError(run_id, info.status)

        stored = self.db.get_result(result_key(run_id))
        if stored is None:
            raise ResultMissingError("Workflow completed but result not found in storage")
        if stored.is_expired():
            raise ResultExpiredError(f"Result for workflow {run_id} has expired")
        return Newsletter.model_validate_json(stored.value)

    async def terminate_instance(self, run_id: str) -> RunInfo:
        """Cancel a running run. Finished runs are left as they are.

        Raises:
            RunNotFoundError: If the id is unknown
        """
        await self.get_instance(run_id)
        if self.db.set_run_status(run_id, RunStatus.TERMINATED.value, error="Terminated by operator"):
            logger.info("Run terminated | id=%s", run_id)
            task = self._tasks.get(run_id)
            if task is not None and not task.done():
                task.cancel()
        return await self.get_instance(run_id)

    async def resume_pending(self) -> list[str]:
        """Restart every run left 'running' that has no live task."""
        pending = [
            run_id for run_id in self.db.runs_with_status(RunStatus.RUNNING.value)
            if run_id not in self._tasks
        ]
        for run_id in pending:
            logger.info("Resuming run | id=%s", run_id)
            self._start(run_id)
        return pending

    async def wait(self, run_id: str) -> None:
        """Wait for a run's task, if one is live in this process."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def close(self) -> None:
        """Stop live tasks (their runs stay resumable) and close storage."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Stopped %d in-flight run(s)", len(tasks))
        self.db.close()

    def _start(self, run_id: str) -> None:
        if self.workflow is None:
            raise RuntimeError("WorkflowService was created without a workflow")
        task = asyncio.create_task(self.workflow.execute(run_id), name=f"run-{run_id}")
        self._tasks[run_id] = task
        task.add_done_callback(lambda t: self._on_done(run_id, t))

    def _on_done(self, run_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(run_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Run task crashed | id=%s error=%s", run_id, exc, exc_info=exc)
