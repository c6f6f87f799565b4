"""HTTP gateway for the newsletter workflow (aiohttp.web).

Routes:
    GET  /                          Health text
    POST /api/generate              Submit and wait for the newsletter
    POST /api/runs                  Submit without waiting (202)
    GET  /api/runs/{id}             Run status
    GET  /api/runs/{id}/result      Stored newsletter of a completed run
    POST /api/runs/{id}/terminate   Operator cancellation

Error responses are always ``{"error": "..."}`` with a fixed client-facing
message. Exception details go to the log only.

Startup resumes runs a previous process left 'running'. Cleanup stops
in-flight runs without changing their status, so the next start resumes them.
"""

import logging

from aiohttp import web

from config import Config
from gateway import PollState, SubmissionError, validate_submission, wait_for_newsletter
from observability.logging import ACCESS_LOG_FORMAT, access_logger
from service import (
    ResultExpiredError,
    ResultMissingError,
    RunNotCompleteError,
    RunNotFoundError,
    WorkflowService,
)

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", Config)
SERVICE_KEY = web.AppKey("service", WorkflowService)

HEALTH_TEXT = "Newsletter Workflow Service"
FAILED_MESSAGE = "Newsletter generation failed. Please try again."
TIMEOUT_MESSAGE = "Newsletter generation is taking longer than expected. Please try again with fewer sources."
GENERIC_MESSAGE = "Failed to generate newsletter. Please try again."

_NO_CACHE = {"Cache-Control": "no-cache"}


def _error(status: int, message: str, /, **extra) -> web.Response:
    return web.json_response({"error": message, **extra}, status=status)


async def _read_submission(request: web.Request):
    try:
        body = await request.json()
    except ValueError:
        raise SubmissionError("Request body must be valid JSON")
    return validate_submission(body)


async def handle_index(request: web.Request) -> web.Response:
    return web.Response(text=HEALTH_TEXT)


async def handle_generate(request: web.Request) -> web.Response:
    """Submit a run and block until it finishes or polling gives up."""
    try:
        params = await _read_submission(request)
    except SubmissionError as e:
        return _error(400, str(e))

    service = request.app[SERVICE_KEY]
    config = request.app[CONFIG_KEY]

    try:
        run = await service.create_instance(params)
        outcome = await wait_for_newsletter(
            service,
            run.id,
            max_attempts=config.poll_max_attempts,
            interval=config.poll_interval_seconds,
        )
    except Exception as e:
        logger.error("Generate request failed | error=%s", e, exc_info=True)
        return _error(504, GENERIC_MESSAGE)

    if outcome.state is PollState.COMPLETE:
        return web.json_response(outcome.newsletter.to_dict(), headers=_NO_CACHE)
    if outcome.state is PollState.FAILED:
        return _error(500, FAILED_MESSAGE)
    return _error(504, TIMEOUT_MESSAGE, instanceId=run.id)


async def handle_create_run(request: web.Request) -> web.Response:
    try:
        params = await _read_submission(request)
    except SubmissionError as e:
        return _error(400, str(e))

    try:
        run = await request.app[SERVICE_KEY].create_instance(params)
    except Exception as e:
        logger.error("Run submission failed | error=%s", e, exc_info=True)
        return _error(500, GENERIC_MESSAGE)
    return web.json_response(run.to_dict(), status=202)


async def handle_get_run(request: web.Request) -> web.Response:
    run_id = request.match_info["run_id"]
    try:
        run = await request.app[SERVICE_KEY].get_instance(run_id)
    except RunNotFoundError:
        return _error(404, "Run not found")
    except Exception as e:
        logger.error("Run lookup failed | id=%s error=%s", run_id, e, exc_info=True)
        return _error(500, GENERIC_MESSAGE)
    return web.json_response(run.to_dict(), headers=_NO_CACHE)


async def handle_get_result(request: web.Request) -> web.Response:
    run_id = request.match_info["run_id"]
    try:
        newsletter = await request.app[SERVICE_KEY].get_result(run_id)
    except RunNotFoundError:
        return _error(404, "Run not found")
    except RunNotCompleteError as e:
        return _error(409, "Newsletter is not ready", status=e.status.value)
    except ResultExpiredError:
        return _error(410, "Newsletter has expired")
    except ResultMissingError:
        logger.error("Result missing for completed run | id=%s", run_id)
        return _error(500, GENERIC_MESSAGE)
    except Exception as e:
        logger.error("Result lookup failed | id=%s error=%s", run_id, e, exc_info=True)
        return _error(500, GENERIC_MESSAGE)
    return web.json_response(newsletter.to_dict(), headers=_NO_CACHE)


async def handle_terminate(request: web.Request) -> web.Response:
    run_id = request.match_info["run_id"]
    try:
        run = await request.app[SERVICE_KEY].terminate_instance(run_id)
    except RunNotFoundError:
        return _error(404, "Run not found")
    except Exception as e:
        logger.error("Terminate failed | id=%s error=%s", run_id, e, exc_info=True)
        return _error(500, GENERIC_MESSAGE)
    return web.json_response(run.to_dict())


async def _on_startup(app: web.Application) -> None:
    resumed = await app[SERVICE_KEY].resume_pending()
    if resumed:
        logger.info("Resumed %d pending run(s)", len(resumed))


async def _on_cleanup(app: web.Application) -> None:
    await app[SERVICE_KEY].close()


def create_app(config: Config, service: WorkflowService | None = None) -> web.Application:
    """Build the aiohttp application.

    Args:
        config: Application configuration
        service: Lifecycle service (built from config when omitted)
    """
    app = web.Application()
    app[CONFIG_KEY] = config
    app[SERVICE_KEY] = service or WorkflowService.from_config(config)

    app.router.add_get("/", handle_index)
    app.router.add_post("/api/generate", handle_generate)
    app.router.add_post("/api/runs", handle_create_run)
    app.router.add_get("/api/runs/{run_id}", handle_get_run)
    app.router.add_get("/api/runs/{run_id}/result", handle_get_result)
    app.router.add_post("/api/runs/{run_id}/terminate", handle_terminate)

    app.on_startup.append(_on_startup)
    app.on_cleanup.append(_on_cleanup)
    return app


def run_server(config: Config, host: str | None = None, port: int | None = None) -> None:
    """Serve the gateway until interrupted."""
    host = host or config.host
    port = port or config.port
    logger.info("Starting gateway | host=%s port=%d", host, port)
    web.run_app(
        create_app(config),
        host=host,
        port=port,
        print=None,
        access_log=access_logger(),
        access_log_format=ACCESS_LOG_FORMAT,
    )
