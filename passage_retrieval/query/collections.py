"""
Collection descriptors: the per-family schema the generic engine is driven by.

Document families (case documents, library documents, legislation, court
rulings) share one retrieval pipeline and differ only in collection name,
payload field names, vector names and filter vocabulary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, Mapping, Optional, Tuple

from passage_retrieval.shared.config import CollectionConfig, Config
from passage_retrieval.shared.errors import ConfigurationError

RANGE_SUFFIXES = ("_from", "_to")


@dataclass(frozen=True)
class CollectionDescriptor:
    name: str
    collection_name: str
    document_id_field: str = "document_id"
    sequence_field: str = "index"
    text_field: str = "text"
    dense_vector_name: str = "dense"
    sparse_vector_name: str = "keywords"
    filter_field_map: Mapping[str, Tuple[str, ...]] = field(
        default_factory=lambda: MappingProxyType({})
    )
    filter_aliases: Mapping[str, str] = field(
        default_factory=lambda: MappingProxyType({})
    )
    date_fields: FrozenSet[str] = frozenset()
    text_match_fields: FrozenSet[str] = frozenset()

    @classmethod
    def from_config(cls, name: str, cfg: CollectionConfig) -> "CollectionDescriptor":
        return cls(
            name=name,
            collection_name=cfg.collection_name,
            document_id_field=cfg.document_id_field,
            sequence_field=cfg.sequence_field,
            text_field=cfg.text_field,
            dense_vector_name=cfg.dense_vector_name,
            sparse_vector_name=cfg.sparse_vector_name,
            filter_field_map=MappingProxyType(
                {k: tuple(v) for k, v in cfg.filter_fields.items()}
            ),
            filter_aliases=MappingProxyType(dict(cfg.filter_aliases)),
            date_fields=frozenset(cfg.date_fields),
            text_match_fields=frozenset(cfg.text_match_fields),
        )

    def canonical_name(self, name: str) -> str:
        """Resolve a legacy alias to its logical filter name."""
        return self.filter_aliases.get(name, name)

    def payload_fields(self, name: str) -> Tuple[str, ...]:
        """
        Payload field(s) a logical filter name maps to.

        Names not declared in the field map address the payload field of the
        same name.
        """
        canonical = self.canonical_name(name)
        return self.filter_field_map.get(canonical, (canonical,))

    def is_date_field(self, name: str) -> bool:
        return self.canonical_name(name) in self.date_fields

    def is_text_match_field(self, name: str) -> bool:
        return self.canonical_name(name) in self.text_match_fields

    def split_range_name(self, name: str) -> Optional[Tuple[str, str]]:
        """
        Split ``date_from`` into ``("date", "_from")`` when ``date`` is a
        known filter. Returns None for plain filter names.
        """
        canonical = self.canonical_name(name)
        if canonical in self.filter_field_map:
            return None
        for suffix in RANGE_SUFFIXES:
            if canonical.endswith(suffix):
                base = canonical[: -len(suffix)]
                if base in self.filter_field_map:
                    return base, suffix
        return None


class CollectionRegistry:
    """Lookup of collection descriptors by family name."""

    def __init__(self, descriptors: Optional[Mapping[str, CollectionDescriptor]] = None):
        self._descriptors: Dict[str, CollectionDescriptor] = dict(descriptors or {})

    @classmethod
    def from_config(cls, config: Config) -> "CollectionRegistry":
        return cls(
            {
                name: CollectionDescriptor.from_config(name, cfg)
                for name, cfg in config.collections.items()
            }
        )

    def register(self, descriptor: CollectionDescriptor) -> None:
        self._descriptors[descriptor.name] = descriptor

    def get(self, name: str) -> CollectionDescriptor:
        try:
            return self._descriptors[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown collection family: {name}",
                context={"known": ",".join(sorted(self._descriptors)) or "-"},
            ) from None

    def names(self) -> Tuple[str, ...]:
        return tuple(self._descriptors)

    def __contains__(self, name: object) -> bool:
        return name in self._descriptors

    def __iter__(self) -> Iterator[CollectionDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)


__all__ = ["CollectionDescriptor", "CollectionRegistry"]
