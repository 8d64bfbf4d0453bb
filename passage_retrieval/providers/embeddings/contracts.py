from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Mapping


@dataclass(frozen=True)
class SparseEmbedding:
    """Sparse/token-weight representation; passed to the store verbatim."""

    indices: List[int]
    values: List[float]

    def is_empty(self) -> bool:
        return not self.indices or not self.values

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SparseEmbedding":
        indices = [int(i) for i in data["indices"]]
        values = [float(v) for v in data["values"]]
        if len(indices) != len(values):
            raise ValueError(
                f"sparse vector has {len(indices)} indices but {len(values)} values"
            )
        return cls(indices=indices, values=values)


@dataclass(frozen=True)
class QueryEmbeddingBundle:
    """Dense and sparse embeddings for one query string."""

    dense: List[float]
    sparse: SparseEmbedding
