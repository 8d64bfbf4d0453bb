# Observability package
from .bootstrap import ObservabilityHandle, configure_observability
from .exemplars import trace_retrieval, trace_vector_search
from .logging import (
    get_correlation_id,
    get_logger,
    set_correlation_id,
    setup_logging,
)
from .metrics import get_metrics
from .tracing import get_tracer, init_tracing

__all__ = [
    "get_logger",
    "setup_logging",
    "get_correlation_id",
    "set_correlation_id",
    "init_tracing",
    "get_tracer",
    "configure_observability",
    "ObservabilityHandle",
    "get_metrics",
    "trace_retrieval",
    "trace_vector_search",
]
