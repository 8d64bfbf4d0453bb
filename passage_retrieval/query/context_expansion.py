"""
Adjacency-window context expansion.

A selected chunk at sequence index ``idx`` is replaced by the merged text of
its neighbours ``[idx - w, idx + w]`` in the same document. The anchor's
identity (id, document, index, score) is kept; only its text changes.
"""

from __future__ import annotations

import contextvars
from collections import Counter
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from concurrent.futures import as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set

from qdrant_client.models import FieldCondition, Filter, MatchValue
from qdrant_client.models import Range as QdrantRange

from passage_retrieval.shared.config import RetrievalConfig
from passage_retrieval.shared.errors import ExpansionError
from passage_retrieval.shared.observability import get_logger, get_tracer
from passage_retrieval.shared.observability.metrics import retrieval_expansion_total

from .chunks import Chunk, DedupKey
from .hybrid_search import HybridSearchClient

logger = get_logger(__name__)
tracer = get_tracer(__name__)

OUTCOME_EXPANDED = "expanded"
OUTCOME_UNCHANGED = "unchanged"
OUTCOME_ORIGINAL_TEXT = "original_text"
OUTCOME_EXCLUDED = "excluded"
OUTCOME_FAILED = "failed"
OUTCOME_TIMEOUT = "timeout"


@dataclass
class ExpansionOutcome:
    chunk: Optional[Chunk]
    outcome: str


@dataclass
class ExpansionBatch:
    """Expanded chunks in selection order plus the keys of dropped anchors."""

    results: List[Chunk] = field(default_factory=list)
    excluded: Set[DedupKey] = field(default_factory=set)
    outcomes: Counter = field(default_factory=Counter)


def merge_window_text(window: Sequence[Chunk]) -> str:
    """Join non-empty texts in sequence order with a single space."""
    ordered = sorted(
        window,
        key=lambda c: c.sequence_index if c.sequence_index is not None else 0,
    )
    return " ".join(c.text for c in ordered if c.has_text())


class ContextExpander:
    """Replace anchors with their surrounding window, concurrently."""

    def __init__(
        self,
        search_client: HybridSearchClient,
        config: Optional[RetrievalConfig] = None,
    ):
        self.search_client = search_client
        self.descriptor = search_client.descriptor
        self.config = config or search_client.config

    def window_filter(self, document_id: str, start: int, end: int) -> Filter:
        return Filter(
            must=[
                FieldCondition(
                    key=self.descriptor.document_id_field,
                    match=MatchValue(value=document_id),
                ),
                FieldCondition(
                    key=self.descriptor.sequence_field,
                    range=QdrantRange(gte=start, lte=end),
                ),
            ]
        )

    def fetch_window(self, chunk: Chunk, window: int) -> List[Chunk]:
        """
        Scan the anchor's neighbours.

        Raises:
            ExpansionError: The scan failed
        """
        start = max(0, chunk.sequence_index - window)
        end = chunk.sequence_index + window
        try:
            points = self.search_client.scroll_points(
                self.window_filter(chunk.document_id, start, end),
                self.config.expansion_scan_limit,
            )
        except Exception as exc:
            raise ExpansionError(
                "Context window scan failed",
                context={
                    "collection": self.descriptor.collection_name,
                    "document_id": chunk.document_id,
                    "index": chunk.sequence_index,
                    "error": type(exc).__name__,
                },
            ) from exc
        return [Chunk.from_point(p, self.descriptor) for p in points]

    def expand_one(self, chunk: Chunk, window: int) -> ExpansionOutcome:
        if window <= 0 or chunk.sequence_index is None or not chunk.document_id:
            return ExpansionOutcome(chunk, OUTCOME_UNCHANGED)

        with tracer.start_as_current_span(
            "retrieval.expand",
            attributes={
                "retrieval.collection": self.descriptor.name,
                "retrieval.index": chunk.sequence_index,
                "retrieval.window": window,
            },
        ) as span:
            try:
                neighbours = self.fetch_window(chunk, window)
            except ExpansionError as exc:
                span.record_exception(exc)
                logger.warning(
                    "Context expansion failed; keeping original chunk",
                    document_id=chunk.document_id,
                    index=chunk.sequence_index,
                    error=str(exc),
                )
                return ExpansionOutcome(chunk, OUTCOME_FAILED)

            merged = merge_window_text(neighbours)
            span.set_attribute("retrieval.window_size", len(neighbours))
            if merged:
                return ExpansionOutcome(chunk.with_text(merged), OUTCOME_EXPANDED)
            if chunk.has_text():
                return ExpansionOutcome(chunk, OUTCOME_ORIGINAL_TEXT)
            return ExpansionOutcome(None, OUTCOME_EXCLUDED)

    def expand_many(self, chunks: Sequence[Chunk], window: int) -> ExpansionBatch:
        """
        Expand every selected chunk with bounded parallelism.

        Chunks whose scan fails or is still running at the deadline are kept
        unexpanded. Output order follows the input order.
        """
        batch = ExpansionBatch()
        if not chunks:
            return batch

        outcomes: Dict[int, ExpansionOutcome] = {}
        if window <= 0:
            for pos, chunk in enumerate(chunks):
                outcomes[pos] = ExpansionOutcome(chunk, OUTCOME_UNCHANGED)
        else:
            outcomes = self._run_concurrently(chunks, window)

        for pos, chunk in enumerate(chunks):
            outcome = outcomes[pos]
            batch.outcomes[outcome.outcome] += 1
            if outcome.outcome != OUTCOME_UNCHANGED:
                retrieval_expansion_total.labels(
                    collection=self.descriptor.name, outcome=outcome.outcome
                ).inc()
            if outcome.chunk is None:
                batch.excluded.add(chunk.dedup_key)
            else:
                batch.results.append(outcome.chunk)

        if window > 0:
            logger.debug(
                "Context expansion finished",
                collection=self.descriptor.name,
                window=window,
                outcomes=dict(batch.outcomes),
            )
        return batch

    def _run_concurrently(
        self, chunks: Sequence[Chunk], window: int
    ) -> Dict[int, ExpansionOutcome]:
        outcomes: Dict[int, ExpansionOutcome] = {}
        pool = ThreadPoolExecutor(
            max_workers=self.config.expansion_max_workers,
            thread_name_prefix="context-expand",
        )
        try:
            future_map = {
                pool.submit(
                    contextvars.copy_context().run, self.expand_one, chunk, window
                ): pos
                for pos, chunk in enumerate(chunks)
            }
            try:
                for fut in as_completed(
                    future_map, timeout=self.config.expansion_timeout_seconds
                ):
                    pos = future_map[fut]
                    try:
                        outcomes[pos] = fut.result()
                    except Exception as exc:
                        logger.warning(
                            "Context expansion raised; keeping original chunk",
                            index=chunks[pos].sequence_index,
                            error=f"{type(exc).__name__}: {exc}",
                        )
                        outcomes[pos] = ExpansionOutcome(chunks[pos], OUTCOME_FAILED)
            except FuturesTimeout:
                pending = [pos for pos in future_map.values() if pos not in outcomes]
                logger.warning(
                    "Context expansion deadline exceeded",
                    collection=self.descriptor.name,
                    timeout_seconds=self.config.expansion_timeout_seconds,
                    pending=len(pending),
                )
                for pos in pending:
                    outcomes[pos] = ExpansionOutcome(chunks[pos], OUTCOME_TIMEOUT)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)
        return outcomes


__all__ = [
    "ContextExpander",
    "ExpansionBatch",
    "ExpansionOutcome",
    "merge_window_text",
]
