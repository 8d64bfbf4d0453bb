"""
Hybrid search against one Qdrant collection.

Text queries run a single Query API call with a dense and a sparse prefetch
leg fused by Reciprocal Rank Fusion. Filter-only queries scroll the filtered
points instead and give every hit the same neutral score.
"""

from __future__ import annotations

import contextvars
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Optional, Tuple

from qdrant_client import QdrantClient
from qdrant_client.models import (
    Filter,
    Fusion,
    FusionQuery,
    Prefetch,
    SparseVector,
)

from passage_retrieval.providers.embeddings import (
    EmbeddingGateway,
    QueryEmbeddingBundle,
)
from passage_retrieval.shared.config import RetrievalConfig
from passage_retrieval.shared.errors import (
    ConfigurationError,
    UpstreamEmbeddingError,
    VectorStoreError,
)
from passage_retrieval.shared.observability import get_logger, trace_vector_search

from .chunks import Chunk
from .collections import CollectionDescriptor

logger = get_logger(__name__)

FILTER_ONLY_SCORE = 1.0

MODE_HYBRID = "hybrid"
MODE_FILTER_ONLY = "filter_only"
MODE_EMPTY = "empty"


def is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def resolve_mode(query_text: Optional[str], query_filter: Optional[Filter]) -> str:
    if not is_blank(query_text):
        return MODE_HYBRID
    if query_filter is not None:
        return MODE_FILTER_ONLY
    return MODE_EMPTY


class HybridSearchClient:
    """Primary candidate search for one collection family."""

    def __init__(
        self,
        client: QdrantClient,
        embedder: Optional[EmbeddingGateway],
        descriptor: CollectionDescriptor,
        config: Optional[RetrievalConfig] = None,
    ):
        self.client = client
        self.embedder = embedder
        self.descriptor = descriptor
        self.config = config or RetrievalConfig()
        self.collection = descriptor.collection_name

    # ------------------------------------------------------------------ store

    def _store_error(
        self, message: str, exc: Exception, operation: str, **context: Any
    ) -> VectorStoreError:
        return VectorStoreError(
            message,
            context={
                "operation": operation,
                "collection": self.collection,
                "error": f"{type(exc).__name__}: {exc}"[:200],
                **context,
            },
        )

    def ensure_collection(self) -> None:
        """
        Raise ConfigurationError if the collection is missing.

        Raises:
            ConfigurationError: Collection does not exist
            VectorStoreError: Existence could not be checked
        """
        try:
            exists = self.client.collection_exists(collection_name=self.collection)
        except Exception as exc:
            raise self._store_error(
                "Vector store unreachable", exc, "collection_exists"
            ) from exc
        if not exists:
            raise ConfigurationError(
                f"Collection '{self.collection}' does not exist",
                context={"family": self.descriptor.name},
            )

    def scroll_points(
        self,
        query_filter: Optional[Filter],
        limit: int,
        with_payload: Any = True,
    ) -> List[Any]:
        """Single scroll page of points matching ``query_filter``."""
        points, _next_offset = self.client.scroll(
            collection_name=self.collection,
            scroll_filter=query_filter,
            limit=limit,
            with_payload=with_payload,
            with_vectors=False,
        )
        return list(points or [])

    def count_points(self, query_filter: Optional[Filter]) -> int:
        result = self.client.count(
            collection_name=self.collection,
            count_filter=query_filter,
            exact=True,
        )
        return int(getattr(result, "count", 0) or 0)

    # ------------------------------------------------------------- embeddings

    def embed_query(self, text: str) -> QueryEmbeddingBundle:
        """
        Compute dense and sparse query embeddings concurrently.

        Raises:
            UpstreamEmbeddingError: Either embedding failed
        """
        if self.embedder is None:
            raise UpstreamEmbeddingError(
                "No embedding gateway configured for text queries",
                context={"collection": self.collection},
            )

        def _dense() -> List[float]:
            return list(self.embedder.embed_dense(text))

        def _sparse():
            vectors = self.embedder.embed_sparse([text])
            if not vectors:
                raise UpstreamEmbeddingError(
                    "Sparse embedding gateway returned no vectors",
                    context={"collection": self.collection},
                )
            return vectors[0]

        with ThreadPoolExecutor(
            max_workers=self.config.embedding_max_workers,
            thread_name_prefix="query-embed",
        ) as pool:
            dense_future = pool.submit(contextvars.copy_context().run, _dense)
            sparse_future = pool.submit(contextvars.copy_context().run, _sparse)
            try:
                dense = dense_future.result()
                sparse = sparse_future.result()
            except UpstreamEmbeddingError:
                raise
            except Exception as exc:
                raise UpstreamEmbeddingError(
                    "Query embedding failed",
                    context={
                        "collection": self.collection,
                        "error": f"{type(exc).__name__}: {exc}"[:200],
                    },
                ) from exc

        if not dense:
            raise UpstreamEmbeddingError(
                "Dense embedding is empty", context={"collection": self.collection}
            )
        return QueryEmbeddingBundle(dense=dense, sparse=sparse)

    # ----------------------------------------------------------------- search

    def search(
        self,
        query_text: Optional[str],
        query_filter: Optional[Filter],
        limit: int,
        filter_summary: str = "none",
    ) -> List[Chunk]:
        """
        Fetch the candidate pool for one query.

        Args:
            query_text: Free-text query; blank means filter-only mode
            query_filter: Translated payload filter or None
            limit: Requested result count (the pool may be larger)
            filter_summary: Criteria summary for logs/error context

        Returns:
            Candidates in store order (fusion rank, or scroll order)
        """
        if limit <= 0:
            return []
        mode = resolve_mode(query_text, query_filter)
        if mode == MODE_EMPTY:
            logger.info(
                "No query text and no filters; skipping search",
                collection=self.collection,
            )
            return []
        if mode == MODE_FILTER_ONLY:
            return self._filter_scan(query_filter, limit, filter_summary)

        bundle = self.embed_query(query_text)
        return self._hybrid_query(bundle, query_filter, limit, filter_summary)

    def _build_prefetch_entries(
        self, bundle: QueryEmbeddingBundle, query_filter: Optional[Filter]
    ) -> List[Prefetch]:
        entries = [
            Prefetch(
                query=list(bundle.dense),
                using=self.descriptor.dense_vector_name,
                limit=self.config.prefetch_limit,
                filter=query_filter,
            )
        ]
        if bundle.sparse.is_empty():
            logger.debug(
                "Sparse query vector is empty; dense leg only",
                collection=self.collection,
            )
        else:
            entries.append(
                Prefetch(
                    query=SparseVector(
                        indices=list(bundle.sparse.indices),
                        values=list(bundle.sparse.values),
                    ),
                    using=self.descriptor.sparse_vector_name,
                    limit=self.config.prefetch_limit,
                    filter=query_filter,
                )
            )
        return entries

    def _hybrid_query(
        self,
        bundle: QueryEmbeddingBundle,
        query_filter: Optional[Filter],
        limit: int,
        filter_summary: str,
    ) -> List[Chunk]:
        prefetch = self._build_prefetch_entries(bundle, query_filter)
        fused_limit = max(limit, self.config.candidate_limit)
        try:
            with trace_vector_search(self.collection, MODE_HYBRID, fused_limit):
                response = self.client.query_points(
                    collection_name=self.collection,
                    prefetch=prefetch,
                    query=FusionQuery(fusion=Fusion.RRF),
                    query_filter=query_filter,
                    limit=fused_limit,
                    with_payload=True,
                    with_vectors=False,
                )
        except Exception as exc:
            raise self._store_error(
                "Hybrid search failed",
                exc,
                "query_points",
                mode=MODE_HYBRID,
                filters=filter_summary,
            ) from exc

        points = getattr(response, "points", response) or []
        chunks = [Chunk.from_point(point, self.descriptor) for point in points]
        logger.info(
            "Hybrid search completed",
            collection=self.collection,
            prefetch_legs=len(prefetch),
            candidates=len(chunks),
            filters=filter_summary,
        )
        return chunks

    def _filter_scan(
        self, query_filter: Filter, limit: int, filter_summary: str
    ) -> List[Chunk]:
        scan_limit, capped = self.filter_scan_limit(limit)
        try:
            with trace_vector_search(self.collection, "scroll", scan_limit):
                points = self.scroll_points(query_filter, scan_limit)
        except Exception as exc:
            raise self._store_error(
                "Filter-only scroll failed",
                exc,
                "scroll",
                mode=MODE_FILTER_ONLY,
                filters=filter_summary,
            ) from exc

        chunks = [
            Chunk.from_point(point, self.descriptor, score=FILTER_ONLY_SCORE)
            for point in points
        ]
        logger.info(
            "Filter-only scan completed",
            collection=self.collection,
            scan_limit=scan_limit,
            capped=capped,
            candidates=len(chunks),
            filters=filter_summary,
        )
        return chunks

    def filter_scan_limit(self, limit: int) -> Tuple[int, bool]:
        uncapped = limit * self.config.filter_scan_multiplier
        cap = self.config.filter_scan_cap
        return min(uncapped, cap), uncapped > cap


__all__ = [
    "HybridSearchClient",
    "FILTER_ONLY_SCORE",
    "MODE_HYBRID",
    "MODE_FILTER_ONLY",
    "MODE_EMPTY",
    "is_blank",
    "resolve_mode",
]
