"""Observability infrastructure: logging setup and optional tracing.

setup_logging:
    Console + rotating file logging, text or JSON, with session context.

setup_tracing / trace_operation:
    Optional Logfire tracing with PydanticAI instrumentation.

Example:
    >>> from observability import setup_logging, setup_tracing, trace_operation
    >>> setup_logging(config)
    >>> setup_tracing(enabled=config.enable_logfire, token=config.logfire_token)
"""

from observability.logging import setup_logging, set_session_context, clear_context
from observability.tracing import setup_tracing, trace_operation

__all__ = [
    "setup_logging",
    "set_session_context",
    "clear_context",
    "setup_tracing",
    "trace_operation",
]
