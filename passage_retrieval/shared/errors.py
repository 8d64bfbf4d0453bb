# Error taxonomy for the retrieval pipeline
# Fatal kinds abort a retrieve() call; ExpansionError is recovered per chunk.

from typing import Any, Dict, Optional


class RetrievalError(RuntimeError):
    """Base class for every error raised by the retrieval engine."""

    def __init__(self, message: str, *, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in sorted(self.context.items()))
        return f"{self.message} ({details})"


class ConfigurationError(RetrievalError):
    """Target collection does not exist or a collection family is unknown."""


class UpstreamEmbeddingError(RetrievalError):
    """Dense or sparse query embedding could not be produced."""


class VectorStoreError(RetrievalError):
    """A primary search, scroll or existence check against the store failed."""


class ExpansionError(RetrievalError):
    """A single chunk's context-window scan failed or ran out of time."""


__all__ = [
    "RetrievalError",
    "ConfigurationError",
    "UpstreamEmbeddingError",
    "VectorStoreError",
    "ExpansionError",
]
