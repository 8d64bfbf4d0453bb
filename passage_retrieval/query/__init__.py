from .chunks import Chunk
from .collections import CollectionDescriptor, CollectionRegistry
from .document_chunks import DocumentChunkReader
from .filters import (
    AnyOf,
    Equals,
    FilterTranslator,
    Range,
    TextMatch,
    criteria_from_params,
)
from .retrieval import RetrievalEngine, RetrievalResponse, RetrievalStats

__all__ = [
    "Chunk",
    "CollectionDescriptor",
    "CollectionRegistry",
    "DocumentChunkReader",
    "AnyOf",
    "Equals",
    "FilterTranslator",
    "Range",
    "TextMatch",
    "criteria_from_params",
    "RetrievalEngine",
    "RetrievalResponse",
    "RetrievalStats",
]
