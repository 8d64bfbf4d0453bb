"""
Embedding gateway protocol.

The retrieval engine only needs query-side embeddings: one dense vector for
semantic matching and one sparse weighted-term vector for lexical matching.
Any object with these two methods can be injected (HTTP client, local model,
test double).
"""

from typing import List, Protocol, runtime_checkable

from .contracts import SparseEmbedding


@runtime_checkable
class EmbeddingGateway(Protocol):
    """Protocol for query embedding providers."""

    def embed_dense(self, text: str) -> List[float]:
        """
        Generate the dense embedding of a single query.

        Raises:
            UpstreamEmbeddingError: If the embedding could not be produced
        """
        ...

    def embed_sparse(self, texts: List[str]) -> List[SparseEmbedding]:
        """
        Generate sparse embeddings, one per input text, in input order.

        Raises:
            UpstreamEmbeddingError: If the embeddings could not be produced
        """
        ...
