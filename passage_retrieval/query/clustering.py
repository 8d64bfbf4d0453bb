"""Per-document diversification: group candidates and apply quotas."""

from collections import OrderedDict
from typing import Dict, List, Sequence

from .chunks import Chunk


def cluster_by_document(candidates: Sequence[Chunk]) -> "OrderedDict[str, List[Chunk]]":
    """Group candidates by document id, in first-seen order."""
    clusters: "OrderedDict[str, List[Chunk]]" = OrderedDict()
    for chunk in candidates:
        clusters.setdefault(chunk.cluster_key, []).append(chunk)
    return clusters


def per_document_cap(limit: int, cluster_count: int) -> int:
    return max(1, limit // max(1, cluster_count))


def allocate_quotas(clusters: Dict[str, List[Chunk]], limit: int) -> List[Chunk]:
    """
    Take up to ``per_document_cap`` best-scoring chunks from each cluster.

    Clusters are visited in insertion order; selection stops once ``limit``
    chunks are selected. Ties keep their original relative order.
    """
    if limit <= 0 or not clusters:
        return []
    cap = per_document_cap(limit, len(clusters))
    selected: List[Chunk] = []
    for members in clusters.values():
        ranked = sorted(members, key=lambda c: c.score, reverse=True)
        for chunk in ranked[:cap]:
            if len(selected) >= limit:
                return selected
            selected.append(chunk)
    return selected


__all__ = ["cluster_by_document", "per_document_cap", "allocate_quotas"]
