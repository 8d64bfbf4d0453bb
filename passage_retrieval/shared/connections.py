# Explicit construction of remote clients (Qdrant, embedding gateway)
# Nothing here is cached at module scope; callers own the returned clients.

from typing import Optional
from urllib.parse import urlsplit

from qdrant_client import QdrantClient

from .config import Config, Settings, get_config, get_settings
from .observability import get_logger

logger = get_logger(__name__)


def redact_url(url: str) -> str:
    """Strip userinfo/query from a URL so it is safe to log or embed in errors."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    if parts.port:
        host = f"{host}:{parts.port}"
    return f"{parts.scheme}://{host}{parts.path}" if parts.scheme else host


def create_qdrant_client(
    settings: Optional[Settings] = None, config: Optional[Config] = None
) -> QdrantClient:
    """Build a Qdrant client from environment settings and YAML tuning."""
    settings = settings or get_settings()
    config = config or get_config()

    logger.info(
        "Creating Qdrant client",
        url=redact_url(settings.qdrant_url),
        api_key_set=bool(settings.qdrant_api_key),
        timeout=config.qdrant.timeout,
        prefer_grpc=config.qdrant.prefer_grpc,
    )
    return QdrantClient(
        url=settings.qdrant_url,
        api_key=settings.qdrant_api_key,
        timeout=config.qdrant.timeout,
        prefer_grpc=config.qdrant.prefer_grpc,
    )


def create_embedding_gateway(
    settings: Optional[Settings] = None, config: Optional[Config] = None
):
    """Build the HTTP embedding gateway guarded by a circuit breaker."""
    from passage_retrieval.clients.embedding_client import HttpEmbeddingClient
    from passage_retrieval.shared.resilience import CircuitBreaker

    settings = settings or get_settings()
    config = config or get_config()
    embedding = config.embedding

    breaker = CircuitBreaker(
        name="embedding-gateway",
        failure_threshold=embedding.circuit_breaker.failure_threshold,
        recovery_timeout=embedding.circuit_breaker.recovery_timeout,
    )
    logger.info(
        "Creating embedding gateway client",
        base_url=redact_url(settings.embedding_base_url),
        model=embedding.model,
    )
    return HttpEmbeddingClient(
        base_url=settings.embedding_base_url,
        api_key=settings.embedding_api_key,
        model=embedding.model,
        sparse_model=embedding.sparse_model,
        dense_endpoint=embedding.dense_endpoint,
        sparse_endpoint=embedding.sparse_endpoint,
        timeout=embedding.timeout_seconds,
        max_retries=embedding.max_retries,
        min_backoff=embedding.min_backoff,
        max_backoff=embedding.max_backoff,
        circuit_breaker=breaker,
    )
