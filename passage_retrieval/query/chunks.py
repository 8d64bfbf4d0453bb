"""
Chunk result type shared by every stage of the retrieval pipeline.

A chunk is one stored passage of a document. ``document_id`` and
``sequence_index`` are read from the payload fields named by the collection
descriptor, so the same type serves every document family.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

if TYPE_CHECKING:
    from .collections import CollectionDescriptor

DedupKey = Tuple[Optional[str], Optional[int], str]


def _coerce_index(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


@dataclass
class Chunk:
    """A retrieved passage with its score and raw payload."""

    id: str
    document_id: Optional[str]
    sequence_index: Optional[int]
    text: Optional[str]
    score: float
    payload: Dict[str, Any] = field(default_factory=dict)

    # Set when text was replaced by a merged context window
    expanded: bool = False

    @classmethod
    def from_point(
        cls,
        point: Any,
        descriptor: "CollectionDescriptor",
        score: Optional[float] = None,
    ) -> "Chunk":
        """Build a chunk from a Qdrant ScoredPoint/Record."""
        payload = dict(getattr(point, "payload", None) or {})
        doc_id = payload.get(descriptor.document_id_field)
        if doc_id is not None:
            doc_id = str(doc_id)
        text = payload.get(descriptor.text_field)
        if text is not None and not isinstance(text, str):
            text = str(text)
        if score is None:
            score = getattr(point, "score", None) or 0.0
        return cls(
            id=str(point.id),
            document_id=doc_id or None,
            sequence_index=_coerce_index(payload.get(descriptor.sequence_field)),
            text=text,
            score=float(score),
            payload=payload,
        )

    @property
    def cluster_key(self) -> str:
        """Grouping key: the document id, or the chunk's own id when absent."""
        return self.document_id or self.id

    @property
    def dedup_key(self) -> DedupKey:
        return (self.document_id, self.sequence_index, self.id)

    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    def with_text(self, text: str, expanded: bool = True) -> "Chunk":
        return replace(self, text=text, expanded=expanded)

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to a plain mapping; payload keys never shadow core fields."""
        data: Dict[str, Any] = dict(self.payload)
        data["id"] = self.id
        if self.document_id is not None:
            data["document_id"] = self.document_id
        if self.sequence_index is not None:
            data["sequence_index"] = self.sequence_index
        if self.text is not None:
            data["text"] = self.text
        data["score"] = self.score
        data["expanded"] = self.expanded
        return data


__all__ = ["Chunk", "DedupKey"]
