"""
Retrieval engine: query text + filters in, ranked passages out.

Pipeline per call:

1. translate filters for the target collection family
2. fetch candidates (hybrid fused search, or filter-only scan)
3. cluster candidates by document and keep a per-document quota
4. expand each selected chunk with its adjacency window (concurrent)
5. backfill from the candidate pool when quotas left the list short
6. sort by score, deduplicate, truncate to ``limit``

Fatal errors (configuration, embedding, vector store) abort the call; a
failed window scan only leaves that chunk unexpanded.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Union

from qdrant_client import QdrantClient

from passage_retrieval.providers.embeddings import EmbeddingGateway
from passage_retrieval.shared.config import (
    Config,
    RetrievalConfig,
    Settings,
    get_config,
    get_settings,
)
from passage_retrieval.shared.observability import (
    configure_observability,
    get_logger,
    trace_retrieval,
)
from passage_retrieval.shared.observability.metrics import (
    retrieval_backfill_total,
    retrieval_results_count,
)

from .assembly import assemble, backfill
from .chunks import Chunk
from .clustering import allocate_quotas, cluster_by_document, per_document_cap
from .collections import CollectionDescriptor, CollectionRegistry
from .context_expansion import ContextExpander
from .filters import (
    FilterCriterion,
    FilterTranslator,
    criteria_from_params,
    summarize_filter,
)
from .hybrid_search import MODE_EMPTY, HybridSearchClient, resolve_mode

logger = get_logger(__name__)

FiltersArg = Union[None, Sequence[FilterCriterion], Mapping[str, Any]]


@dataclass
class RetrievalStats:
    collection: str
    mode: str
    filters: str = "none"
    candidates: int = 0
    clusters: int = 0
    per_document_cap: int = 0
    selected: int = 0
    excluded: int = 0
    backfilled: int = 0
    returned: int = 0
    expansion: Dict[str, int] = field(default_factory=dict)
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class RetrievalResponse:
    results: List[Chunk]
    stats: RetrievalStats

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [chunk.to_dict() for chunk in self.results]

    def __len__(self) -> int:
        return len(self.results)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self.results)


class RetrievalEngine:
    """Generic hybrid retrieval over any registered collection family."""

    def __init__(
        self,
        client: QdrantClient,
        embedder: Optional[EmbeddingGateway],
        registry: CollectionRegistry,
        config: Optional[RetrievalConfig] = None,
        default_collection: Optional[str] = None,
    ):
        self.client = client
        self.embedder = embedder
        self.registry = registry
        self.config = config or RetrievalConfig()
        self.default_collection = default_collection
        self._search_clients: Dict[str, HybridSearchClient] = {}

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        config: Optional[Config] = None,
        default_collection: Optional[str] = None,
        init_observability: bool = False,
    ) -> "RetrievalEngine":
        """
        Wire an engine from YAML config and environment settings.

        With ``init_observability`` the process logging and tracing are
        configured from the same settings first.
        """
        from passage_retrieval.shared.connections import (
            create_embedding_gateway,
            create_qdrant_client,
        )

        if init_observability:
            configure_observability(settings or get_settings())
        config = config or get_config()
        return cls(
            client=create_qdrant_client(settings=settings, config=config),
            embedder=create_embedding_gateway(settings=settings, config=config),
            registry=CollectionRegistry.from_config(config),
            config=config.retrieval,
            default_collection=default_collection,
        )

    def close(self) -> None:
        for resource in (self.embedder, self.client):
            closer = getattr(resource, "close", None)
            if callable(closer):
                closer()

    def descriptor(self, collection: Optional[str] = None) -> CollectionDescriptor:
        name = collection or self.default_collection
        if name is None:
            if len(self.registry) == 1:
                return next(iter(self.registry))
            name = ""
        return self.registry.get(name)

    def search_client(self, descriptor: CollectionDescriptor) -> HybridSearchClient:
        client = self._search_clients.get(descriptor.name)
        if client is None:
            client = HybridSearchClient(
                self.client, self.embedder, descriptor, self.config
            )
            self._search_clients[descriptor.name] = client
        return client

    def resolve_criteria(
        self, filters: FiltersArg, descriptor: CollectionDescriptor
    ) -> List[FilterCriterion]:
        if not filters:
            return []
        if isinstance(filters, Mapping):
            return criteria_from_params(filters, descriptor)
        return list(filters)

    def retrieve(
        self,
        query_text: Optional[str] = None,
        filters: FiltersArg = None,
        limit: Optional[int] = None,
        context_window: Optional[int] = None,
        collection: Optional[str] = None,
    ) -> RetrievalResponse:
        """
        Run the full retrieval pipeline for one query.

        Args:
            query_text: Free text; blank or None means filter-only retrieval
            filters: Criteria list, or a flat parameter mapping
            limit: Maximum number of passages (defaults from config)
            context_window: Neighbours on each side to merge (0 disables)
            collection: Collection family name

        Returns:
            RetrievalResponse with at most ``limit`` passages

        Raises:
            ValueError: Negative limit or context window
            ConfigurationError: Unknown family or missing collection
            UpstreamEmbeddingError: Query embedding failed (text queries)
            VectorStoreError: Primary search or scan failed
        """
        limit = self.config.default_limit if limit is None else limit
        if context_window is None:
            context_window = self.config.default_context_window
        if limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")
        if context_window < 0:
            raise ValueError(f"context_window must be >= 0, got {context_window}")

        descriptor = self.descriptor(collection)
        criteria = self.resolve_criteria(filters, descriptor)
        query_filter = FilterTranslator(descriptor).translate(criteria)
        summary = summarize_filter(criteria)
        mode = resolve_mode(query_text, query_filter)
        stats = RetrievalStats(collection=descriptor.name, mode=mode, filters=summary)

        start = time.perf_counter()
        with trace_retrieval(descriptor.name, mode, summary) as span:
            results = self._run(
                descriptor, query_text, query_filter, limit, context_window, stats
            )
            span.set_attribute("retrieval.results", len(results))
        stats.duration_ms = round((time.perf_counter() - start) * 1000.0, 2)

        retrieval_results_count.observe(len(results))
        logger.info("Retrieval completed", **stats.to_dict())
        return RetrievalResponse(results=results, stats=stats)

    def _run(
        self,
        descriptor: CollectionDescriptor,
        query_text: Optional[str],
        query_filter,
        limit: int,
        context_window: int,
        stats: RetrievalStats,
    ) -> List[Chunk]:
        if limit == 0:
            return []

        search_client = self.search_client(descriptor)
        search_client.ensure_collection()
        if stats.mode == MODE_EMPTY:
            logger.warning(
                "No query text and no filters; returning no results",
                collection=descriptor.name,
            )
            return []

        candidates = search_client.search(query_text, query_filter, limit, stats.filters)
        stats.candidates = len(candidates)
        if not candidates:
            return []

        clusters = cluster_by_document(candidates)
        stats.clusters = len(clusters)
        stats.per_document_cap = per_document_cap(limit, len(clusters))
        selected = allocate_quotas(clusters, limit)
        stats.selected = len(selected)

        batch = ContextExpander(search_client, self.config).expand_many(
            selected, context_window
        )
        stats.expansion = dict(batch.outcomes)
        stats.excluded = len(batch.excluded)

        filled = backfill(batch.results, candidates, limit, batch.excluded)
        stats.backfilled = len(filled) - len(batch.results)
        if stats.backfilled:
            retrieval_backfill_total.labels(collection=descriptor.name).inc(
                stats.backfilled
            )

        final = assemble(filled, limit)
        stats.returned = len(final)
        return final


__all__ = ["RetrievalEngine", "RetrievalResponse", "RetrievalStats"]
