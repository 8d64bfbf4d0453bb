"""Backfill short result lists and assemble the final ranked output."""

from typing import Iterable, List, Optional, Sequence, Set

from .chunks import Chunk, DedupKey


def backfill(
    assembled: Sequence[Chunk],
    pool: Sequence[Chunk],
    limit: int,
    excluded: Optional[Set[DedupKey]] = None,
) -> List[Chunk]:
    """
    Top up ``assembled`` from the candidate pool until ``limit``.

    The pool is ranked by score (ties keep pool order); items whose dedup
    key is already used or was excluded by expansion are skipped. Added
    items are returned as-is, never expanded.
    """
    result = list(assembled)
    if len(result) >= limit:
        return result
    used: Set[DedupKey] = {c.dedup_key for c in result}
    used.update(excluded or ())
    for chunk in sorted(pool, key=lambda c: c.score, reverse=True):
        if len(result) >= limit:
            break
        key = chunk.dedup_key
        if key in used:
            continue
        used.add(key)
        result.append(chunk)
    return result


def assemble(chunks: Iterable[Chunk], limit: int) -> List[Chunk]:
    """Stable sort by score descending, drop repeated keys, truncate."""
    if limit <= 0:
        return []
    seen: Set[DedupKey] = set()
    final: List[Chunk] = []
    for chunk in sorted(chunks, key=lambda c: c.score, reverse=True):
        if chunk.dedup_key in seen:
            continue
        seen.add(chunk.dedup_key)
        final.append(chunk)
        if len(final) >= limit:
            break
    return final


__all__ = ["backfill", "assemble"]
