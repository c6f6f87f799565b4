"""Observability infrastructure: logging context and optional tracing.

setup_logging / run_scope / step_scope:
    Console + rotating file logging with run and step correlation.

setup_tracing / trace_operation:
    Optional Logfire spans with PydanticAI instrumentation.

Enable tracing via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional
"""

from observability.logging import access_logger, run_scope, setup_logging, step_scope
from observability.tracing import TracingContext, setup_tracing, trace_operation

__all__ = [
    "access_logger",
    "run_scope",
    "setup_logging",
    "setup_tracing",
    "step_scope",
    "trace_operation",
    "TracingContext",
]
