"""
Filter criteria and their translation into Qdrant payload filters.

Criteria are expressed against logical filter names (or legacy aliases) and
translated per collection descriptor:

- a logical name mapping to one payload field becomes a ``must`` condition
- a logical name mapping to several payload fields becomes a ``should``
  group, so a point matches when any of those fields matches
- range bounds given as date strings are converted to epoch seconds
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from qdrant_client.models import (
    FieldCondition,
    Filter,
    MatchAny,
    MatchText,
    MatchValue,
    Range as QdrantRange,
)

from passage_retrieval.shared.observability import get_logger

from .collections import CollectionDescriptor

logger = get_logger(__name__)

_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")


@dataclass(frozen=True)
class Equals:
    field: str
    value: Any


@dataclass(frozen=True)
class Range:
    field: str
    gte: Any = None
    lte: Any = None


@dataclass(frozen=True)
class AnyOf:
    field: str
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class TextMatch:
    field: str
    text: str


FilterCriterion = Union[Equals, Range, AnyOf, TextMatch]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset)):
        return len(value) == 0
    return False


def to_epoch_seconds(value: Any) -> Optional[int]:
    """
    Best-effort conversion of a date bound to integer epoch seconds.

    Accepts numbers, numeric strings, ISO-8601 dates and datetimes (naive
    values are taken as UTC). Returns None when the value cannot be read.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(math.floor(value))
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return int(math.floor(dt.timestamp()))
    if isinstance(value, date):
        dt = datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        return int(dt.timestamp())
    if not isinstance(value, str):
        return None

    text = value.strip()
    if not text:
        return None
    if _NUMERIC_RE.match(text):
        return int(math.floor(float(text)))
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(math.floor(dt.timestamp()))


def criteria_from_params(
    params: Mapping[str, Any], descriptor: CollectionDescriptor
) -> List[FilterCriterion]:
    """
    Convert a flat parameter mapping into filter criteria.

    ``<name>_from``/``<name>_to`` pairs become one Range, sequences become
    AnyOf, text-match fields become TextMatch, everything else Equals.
    Legacy aliases are resolved first; when both an alias and its canonical
    name are given, the canonical value wins. Empty values are ignored.
    """
    resolved: dict = {}
    aliased: List[Tuple[str, Any]] = []
    for name, value in params.items():
        if _is_empty(value):
            continue
        canonical = descriptor.canonical_name(name)
        if canonical != name:
            aliased.append((canonical, value))
        else:
            resolved[name] = value
    for canonical, value in aliased:
        if canonical in resolved:
            logger.debug("Alias shadowed by canonical filter", filter=canonical)
            continue
        resolved[canonical] = value

    criteria: List[FilterCriterion] = []
    ranges: dict = {}
    for name, value in resolved.items():
        split = descriptor.split_range_name(name)
        if split is not None:
            base, suffix = split
            if base not in ranges:
                ranges[base] = {}
                criteria.append(Range(field=base))  # placeholder keeps order
            ranges[base]["gte" if suffix == "_from" else "lte"] = value
            continue
        if isinstance(value, (list, tuple, set, frozenset)):
            criteria.append(AnyOf(field=name, values=tuple(value)))
        elif descriptor.is_text_match_field(name):
            criteria.append(TextMatch(field=name, text=str(value)))
        else:
            criteria.append(Equals(field=name, value=value))

    return [
        Range(field=c.field, **ranges[c.field]) if isinstance(c, Range) else c
        for c in criteria
    ]


def summarize_filter(criteria: Optional[Sequence[FilterCriterion]]) -> str:
    """Compact ``field:kind`` summary safe for logs and error context."""
    if not criteria:
        return "none"
    kinds = {Equals: "eq", Range: "range", AnyOf: "any", TextMatch: "text"}
    return ",".join(f"{c.field}:{kinds.get(type(c), '?')}" for c in criteria)


class FilterTranslator:
    """Translate criteria into a Qdrant Filter for one collection family."""

    def __init__(self, descriptor: CollectionDescriptor):
        self.descriptor = descriptor

    def translate(self, criteria: Optional[Iterable[FilterCriterion]]) -> Optional[Filter]:
        must: List[Any] = []
        should: List[FieldCondition] = []

        for criterion in criteria or ():
            targets = self.descriptor.payload_fields(criterion.field)
            conditions = [
                cond
                for cond in (self._condition(criterion, key) for key in targets)
                if cond is not None
            ]
            if not conditions:
                continue
            if len(conditions) == 1:
                must.append(conditions[0])
            elif not should:
                should = conditions
            else:
                must.append(Filter(should=conditions))

        if not must and not should:
            return None
        return Filter(must=must or None, should=should or None)

    def _condition(self, criterion: FilterCriterion, key: str) -> Optional[FieldCondition]:
        if isinstance(criterion, Equals):
            value = criterion.value
            if isinstance(value, float) and not value.is_integer():
                return FieldCondition(key=key, range=QdrantRange(gte=value, lte=value))
            if isinstance(value, float):
                value = int(value)
            return FieldCondition(key=key, match=MatchValue(value=value))

        if isinstance(criterion, AnyOf):
            values = [v for v in criterion.values if not _is_empty(v)]
            if not values:
                return None
            if all(isinstance(v, int) and not isinstance(v, bool) for v in values):
                return FieldCondition(key=key, match=MatchAny(any=values))
            return FieldCondition(key=key, match=MatchAny(any=[str(v) for v in values]))

        if isinstance(criterion, TextMatch):
            return FieldCondition(key=key, match=MatchText(text=criterion.text))

        if isinstance(criterion, Range):
            gte = self._bound(criterion, "gte", criterion.gte)
            lte = self._bound(criterion, "lte", criterion.lte)
            if gte is None and lte is None:
                return None
            return FieldCondition(key=key, range=QdrantRange(gte=gte, lte=lte))

        raise TypeError(f"Unsupported filter criterion: {criterion!r}")

    def _bound(self, criterion: Range, side: str, value: Any) -> Optional[float]:
        if value is None:
            return None
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
        if self.descriptor.is_date_field(criterion.field):
            converted = to_epoch_seconds(value)
        else:
            converted = _to_number(value)
        if converted is None:
            logger.warning(
                "Dropping unreadable range bound",
                field=criterion.field,
                bound=side,
                value=str(value)[:64],
                collection=self.descriptor.name,
            )
        return converted


def _to_number(value: Any) -> Optional[float]:
    # Non-date fields compare as plain numbers; ISO strings are not coerced.
    if isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        return None
    return number if math.isfinite(number) else None


__all__ = [
    "Equals",
    "Range",
    "AnyOf",
    "TextMatch",
    "FilterCriterion",
    "FilterTranslator",
    "criteria_from_params",
    "summarize_filter",
    "to_epoch_seconds",
]
