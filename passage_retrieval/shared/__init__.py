# Shared utilities package
from .config import Config, Settings, get_config, get_settings, init_config
from .errors import (
    ConfigurationError,
    ExpansionError,
    RetrievalError,
    UpstreamEmbeddingError,
    VectorStoreError,
)

__all__ = [
    "Config",
    "Settings",
    "get_config",
    "get_settings",
    "init_config",
    "RetrievalError",
    "ConfigurationError",
    "UpstreamEmbeddingError",
    "VectorStoreError",
    "ExpansionError",
]
