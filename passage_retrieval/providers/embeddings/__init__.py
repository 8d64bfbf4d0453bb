from .base import EmbeddingGateway
from .contracts import QueryEmbeddingBundle, SparseEmbedding

__all__ = ["EmbeddingGateway", "QueryEmbeddingBundle", "SparseEmbedding"]
