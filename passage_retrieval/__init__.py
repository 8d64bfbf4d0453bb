"""Hybrid passage retrieval: fused dense/sparse search, per-document
diversification and adjacency-window context expansion over Qdrant."""

__version__ = "0.1.0"
