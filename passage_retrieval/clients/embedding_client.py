from __future__ import annotations

import random
import time
from typing import Any, Dict, List, Optional

import httpx

from passage_retrieval.providers.embeddings.contracts import SparseEmbedding
from passage_retrieval.shared.errors import UpstreamEmbeddingError
from passage_retrieval.shared.observability import get_logger
from passage_retrieval.shared.observability.metrics import (
    embedding_error_total,
    embedding_latency_ms,
    embedding_request_total,
)
from passage_retrieval.shared.resilience import CircuitBreaker, CircuitOpenError


class HttpEmbeddingClient:
    """
    Query embedding gateway over HTTP.

    Dense vectors come from an OpenAI-compatible ``/embeddings`` endpoint.
    Sparse vectors come from a companion endpoint whose response shape is
    fixed to::

        {"data": [{"vector": {"indices": [...], "values": [...]}}, ...]}

    Features:
    - Retry with exponential backoff on transient errors (429, 5xx, timeouts)
    - Optional circuit breaker: fail fast while the gateway is down
    - Every failure surfaces as UpstreamEmbeddingError
    """

    RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})
    DEFAULT_MAX_RETRIES = 3
    DEFAULT_MIN_BACKOFF = 0.5
    DEFAULT_MAX_BACKOFF = 8.0

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:9000/v1",
        api_key: Optional[str] = None,
        model: str = "text-embedding-3-small",
        sparse_model: Optional[str] = None,
        dense_endpoint: str = "/embeddings",
        sparse_endpoint: str = "/embeddings/sparse",
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        min_backoff: float = DEFAULT_MIN_BACKOFF,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        circuit_breaker: Optional[CircuitBreaker] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.sparse_model = sparse_model or model
        self.dense_endpoint = dense_endpoint
        self.sparse_endpoint = sparse_endpoint
        self._max_retries = max(1, max_retries)
        self._min_backoff = min_backoff
        self._max_backoff = max_backoff
        self._breaker = circuit_breaker
        self._client = client or httpx.Client(timeout=timeout)
        self._logger = get_logger(__name__).bind(model=model)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpEmbeddingClient":
        return self

    def __exit__(self, exc_type, exc, traceback) -> None:
        self.close()

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _sleep_backoff(self, attempt: int) -> None:
        base = min(self._max_backoff, self._min_backoff * (2**attempt))
        delay = base + random.uniform(0, base / 4.0)
        self._logger.warning(
            "Embedding gateway retrying after backoff",
            attempt=attempt + 1,
            max_retries=self._max_retries,
            delay_sec=f"{delay:.2f}",
        )
        time.sleep(delay)

    def _post_with_retry(self, endpoint: str, payload: Dict[str, Any]) -> Any:
        """POST with retry on transient errors (429, 5xx, timeouts)."""
        url = f"{self.base_url}{endpoint}"
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            is_last = attempt == self._max_retries - 1
            try:
                response = self._client.post(url, json=payload, headers=self._headers())
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                last_error = exc
                if not is_last:
                    self._sleep_backoff(attempt)
                    continue
                raise UpstreamEmbeddingError(
                    "Embedding gateway unreachable",
                    context={
                        "endpoint": endpoint,
                        "attempts": self._max_retries,
                        "error_type": type(exc).__name__,
                    },
                ) from exc

            if response.status_code in self.RETRYABLE_STATUS_CODES and not is_last:
                self._logger.warning(
                    "Embedding gateway retryable error",
                    status_code=response.status_code,
                    attempt=attempt + 1,
                )
                self._sleep_backoff(attempt)
                continue

            if response.status_code != 200:
                raise UpstreamEmbeddingError(
                    f"Embedding gateway HTTP {response.status_code}",
                    context={"endpoint": endpoint, "body": response.text[:200]},
                )

            try:
                return response.json()
            except ValueError as exc:
                raise UpstreamEmbeddingError(
                    "Embedding gateway returned invalid JSON",
                    context={"endpoint": endpoint},
                ) from exc

        raise UpstreamEmbeddingError(
            "Embedding gateway request failed",
            context={"endpoint": endpoint, "error": str(last_error)},
        )

    def _guarded(self, operation: str, model_id: str, fn):
        start = time.perf_counter()
        try:
            result = self._breaker.call(fn) if self._breaker is not None else fn()
        except CircuitOpenError as exc:
            embedding_error_total.labels(model_id=model_id, error_type="circuit_open").inc()
            raise UpstreamEmbeddingError(
                "Embedding gateway circuit open",
                context={"operation": operation, "breaker": self._breaker.name},
            ) from exc
        except UpstreamEmbeddingError as exc:
            embedding_request_total.labels(model_id=model_id, operation=operation).inc()
            embedding_error_total.labels(
                model_id=model_id, error_type=type(exc.__cause__ or exc).__name__
            ).inc()
            raise
        embedding_request_total.labels(model_id=model_id, operation=operation).inc()
        embedding_latency_ms.labels(model_id=model_id, operation=operation).observe(
            (time.perf_counter() - start) * 1000.0
        )
        return result

    def embed_dense(self, text: str) -> List[float]:
        """Return the dense embedding of one query text."""

        def _call() -> List[float]:
            body = self._post_with_retry(
                self.dense_endpoint,
                {"model": self.model, "input": [text], "encoding_format": "float"},
            )
            try:
                vector = body["data"][0]["embedding"]
                return [float(x) for x in vector]
            except (KeyError, IndexError, TypeError, ValueError) as exc:
                raise UpstreamEmbeddingError(
                    "Dense embedding response has unexpected shape",
                    context={"endpoint": self.dense_endpoint},
                ) from exc

        return self._guarded("dense", self.model, _call)

    def embed_sparse(self, texts: List[str]) -> List[SparseEmbedding]:
        """Return one sparse embedding per input text."""

        def _call() -> List[SparseEmbedding]:
            body = self._post_with_retry(
                self.sparse_endpoint, {"model": self.sparse_model, "input": texts}
            )
            try:
                items = body["data"]
                vectors = [SparseEmbedding.from_mapping(item["vector"]) for item in items]
            except (KeyError, TypeError, ValueError) as exc:
                raise UpstreamEmbeddingError(
                    "Sparse embedding response has unexpected shape",
                    context={"endpoint": self.sparse_endpoint},
                ) from exc
            if len(vectors) != len(texts):
                raise UpstreamEmbeddingError(
                    "Sparse embedding count mismatch",
                    context={"expected": len(texts), "received": len(vectors)},
                )
            return vectors

        return self._guarded("sparse", self.sparse_model, _call)


__all__ = ["HttpEmbeddingClient"]
