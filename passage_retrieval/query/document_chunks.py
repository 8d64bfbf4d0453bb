"""
Direct reads of one document's chunks: by index, by range, by count, and a
hybrid search scoped to a single document.
"""

from __future__ import annotations

from typing import List, Optional

from qdrant_client.models import FieldCondition, Filter, MatchValue
from qdrant_client.models import Range as QdrantRange

from passage_retrieval.shared.errors import VectorStoreError
from passage_retrieval.shared.observability import get_logger

from .chunks import Chunk
from .context_expansion import ContextExpander
from .hybrid_search import HybridSearchClient

logger = get_logger(__name__)


class DocumentChunkReader:
    def __init__(self, search_client: HybridSearchClient):
        self.search_client = search_client
        self.descriptor = search_client.descriptor
        self.config = search_client.config

    def _document_filter(
        self,
        document_id: str,
        start: Optional[int] = None,
        end: Optional[int] = None,
    ) -> Filter:
        must = [
            FieldCondition(
                key=self.descriptor.document_id_field,
                match=MatchValue(value=document_id),
            )
        ]
        if start is not None or end is not None:
            must.append(
                FieldCondition(
                    key=self.descriptor.sequence_field,
                    range=QdrantRange(gte=start, lte=end),
                )
            )
        return Filter(must=must)

    def _scroll(self, operation: str, query_filter: Filter, limit: int) -> List[Chunk]:
        try:
            points = self.search_client.scroll_points(query_filter, limit)
        except Exception as exc:
            raise VectorStoreError(
                "Document chunk read failed",
                context={
                    "operation": operation,
                    "collection": self.descriptor.collection_name,
                    "error": f"{type(exc).__name__}: {exc}"[:200],
                },
            ) from exc
        return [Chunk.from_point(p, self.descriptor) for p in points]

    def get_chunk(self, document_id: str, index: int) -> Optional[Chunk]:
        """Return the chunk at ``index`` or None."""
        self.search_client.ensure_collection()
        chunks = self._scroll("get_chunk", self._document_filter(document_id, index, index), 1)
        return chunks[0] if chunks else None

    def get_chunk_texts(self, document_id: str, start: int, end: int) -> List[str]:
        """Non-empty texts of chunks ``start..end`` (inclusive), in order."""
        if end < start:
            return []
        self.search_client.ensure_collection()
        chunks = self._scroll(
            "get_chunk_texts",
            self._document_filter(document_id, max(0, start), end),
            self.config.range_scan_limit,
        )
        chunks.sort(key=lambda c: c.sequence_index if c.sequence_index is not None else 0)
        return [c.text for c in chunks if c.has_text()]

    def count_chunks(self, document_id: str) -> int:
        self.search_client.ensure_collection()
        try:
            return self.search_client.count_points(self._document_filter(document_id))
        except Exception as exc:
            raise VectorStoreError(
                "Document chunk count failed",
                context={
                    "operation": "count",
                    "collection": self.descriptor.collection_name,
                    "error": f"{type(exc).__name__}: {exc}"[:200],
                },
            ) from exc

    def search_document(
        self,
        document_id: str,
        query_text: str,
        limit: int,
        context_window: int = 0,
    ) -> List[Chunk]:
        """
        Hybrid search restricted to one document.

        With a positive ``context_window`` every hit is replaced by its merged
        window; hits whose window and own text are both empty are dropped.
        Results carry ``expanded=True`` when their text was merged.
        """
        if limit <= 0:
            return []
        self.search_client.ensure_collection()
        hits = self.search_client.search(
            query_text,
            self._document_filter(document_id),
            limit,
            filter_summary="document_id:eq",
        )
        hits.sort(key=lambda c: c.score, reverse=True)
        top = hits[:limit]
        if context_window <= 0:
            return [c for c in top if c.has_text()]

        batch = ContextExpander(self.search_client).expand_many(top, context_window)
        logger.debug(
            "Document search expanded",
            document_id=document_id,
            hits=len(top),
            outcomes=dict(batch.outcomes),
        )
        return [c for c in batch.results if c.has_text()]


__all__ = ["DocumentChunkReader"]
