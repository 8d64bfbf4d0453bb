# Prometheus metrics for the retrieval pipeline

from prometheus_client import Counter, Histogram, generate_latest

# ===== Retrieval metrics =====
retrieval_requests_total = Counter(
    "retrieval_requests_total",
    "Total retrieve() calls",
    ["collection", "mode", "status"],  # mode: hybrid, filter_only, empty
)

retrieval_duration_seconds = Histogram(
    "retrieval_duration_seconds",
    "End-to-end retrieve() duration in seconds",
    ["collection", "mode"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

retrieval_results_count = Histogram(
    "retrieval_results_count",
    "Number of passages returned per retrieve() call",
    buckets=(0, 1, 2, 5, 10, 20, 50, 100),
)

retrieval_backfill_total = Counter(
    "retrieval_backfill_total",
    "Passages appended by backfill",
    ["collection"],
)

# ===== Context expansion metrics =====
retrieval_expansion_total = Counter(
    "retrieval_expansion_total",
    "Context-window expansion outcomes",
    ["collection", "outcome"],  # expanded, original_text, excluded, failed, timeout
)

# ===== Embedding gateway metrics =====
embedding_request_total = Counter(
    "embedding_request_total",
    "Total embedding requests",
    ["model_id", "operation"],  # operation: dense, sparse
)

embedding_error_total = Counter(
    "embedding_error_total",
    "Total embedding errors",
    ["model_id", "error_type"],
)

embedding_latency_ms = Histogram(
    "embedding_latency_ms",
    "Embedding generation latency in milliseconds",
    ["model_id", "operation"],
    buckets=(10, 25, 50, 100, 250, 500, 1000, 2500, 5000),
)

# ===== Qdrant metrics =====
qdrant_search_total = Counter(
    "qdrant_search_total",
    "Total Qdrant search operations",
    ["collection_name", "operation", "status"],  # operation: hybrid, scroll
)

qdrant_operation_latency_ms = Histogram(
    "qdrant_operation_latency_ms",
    "Qdrant operation latency in milliseconds",
    ["collection_name", "operation"],
    buckets=(1, 5, 10, 25, 50, 100, 250, 500, 1000),
)


def get_metrics() -> bytes:
    """Render all registered metrics in Prometheus exposition format."""
    return generate_latest()
