# Structured logging for the retrieval engine
# structlog on top of the stdlib root logger; every event carries the
# caller's correlation id and, inside a span, its trace and span ids.

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, List, Optional

import structlog
from opentelemetry import trace

from passage_retrieval.shared.errors import ConfigurationError

correlation_id_ctx: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Transport libraries log every request at INFO.
NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")


def get_correlation_id() -> str:
    """Return the current correlation id, minting one on first use."""
    corr_id = correlation_id_ctx.get()
    if corr_id is None:
        corr_id = uuid.uuid4().hex
        correlation_id_ctx.set(corr_id)
    return corr_id


def set_correlation_id(corr_id: str) -> None:
    correlation_id_ctx.set(corr_id)


def add_correlation_id(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    corr_id = correlation_id_ctx.get()
    if corr_id:
        event_dict.setdefault("correlation_id", corr_id)
    return event_dict


def add_trace_ids(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """Attach the active span's ids so log lines can be joined to traces."""
    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        event_dict.setdefault("trace_id", format(ctx.trace_id, "032x"))
        event_dict.setdefault("span_id", format(ctx.span_id, "016x"))
    return event_dict


def resolve_log_level(log_level: str) -> int:
    name = (log_level or "").strip().upper()
    if name not in LOG_LEVELS:
        raise ConfigurationError(
            "Unknown log level", context={"log_level": log_level}
        )
    return getattr(logging, name)


def _processors(json_output: bool) -> List[Any]:
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        add_correlation_id,
        add_trace_ids,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        renderer,
    ]


def setup_logging(log_level: str = "INFO", json_output: bool = True) -> int:
    """
    Route structlog through the stdlib root logger at ``log_level``.

    The level is applied to the root logger even when handlers are already
    installed. Transport libraries are held at WARNING unless DEBUG is asked
    for. Returns the numeric level in effect.

    Raises:
        ConfigurationError: ``log_level`` is not a stdlib level name
    """
    level = resolve_log_level(log_level)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(
            level if level <= logging.DEBUG else logging.WARNING
        )

    structlog.configure(
        processors=_processors(json_output),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return level


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
