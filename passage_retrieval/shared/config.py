# Configuration loader with environment variable support
# YAML file (passage_retrieval/config/<ENV>.yaml, shipped as package data,
# or CONFIG_PATH) for retrieval tuning and collection families,
# environment settings for endpoints and credentials.

import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import RetrievalBaseModel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class QdrantConfig(BaseModel):
    timeout: int = Field(default=30, gt=0)
    prefer_grpc: bool = False


class CircuitBreakerConfig(BaseModel):
    failure_threshold: int = Field(default=5, gt=0)
    recovery_timeout: float = Field(default=30.0, gt=0)


class EmbeddingConfig(BaseModel):
    """Query-embedding gateway parameters."""

    model: str = "text-embedding-3-small"
    sparse_model: Optional[str] = None
    dense_endpoint: str = "/embeddings"
    sparse_endpoint: str = "/embeddings/sparse"
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, gt=0)
    min_backoff: float = Field(default=0.5, ge=0)
    max_backoff: float = Field(default=8.0, ge=0)
    circuit_breaker: CircuitBreakerConfig = Field(
        default_factory=CircuitBreakerConfig
    )

    @field_validator("dense_endpoint", "sparse_endpoint")
    @classmethod
    def _endpoint_is_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"endpoint must start with '/', got {value!r}")
        return value


class RetrievalConfig(BaseModel):
    """Tuning knobs for hybrid search, diversification and expansion."""

    prefetch_limit: int = Field(default=50, gt=0)
    candidate_limit: int = Field(default=50, gt=0)
    filter_scan_multiplier: int = Field(default=3, gt=0)
    filter_scan_cap: int = Field(default=100, gt=0)
    expansion_scan_limit: int = Field(default=1000, gt=0)
    range_scan_limit: int = Field(default=10000, gt=0)
    expansion_max_workers: int = Field(default=4, gt=0)
    expansion_timeout_seconds: float = Field(default=10.0, gt=0)
    embedding_max_workers: int = Field(default=2, gt=0)
    default_limit: int = Field(default=10, ge=0)
    default_context_window: int = Field(default=0, ge=0)


class CollectionConfig(BaseModel):
    """Schema of one document family as declared in YAML."""

    collection_name: str
    document_id_field: str = "document_id"
    sequence_field: str = "index"
    text_field: str = "text"
    dense_vector_name: str = "dense"
    sparse_vector_name: str = "keywords"
    filter_fields: Dict[str, List[str]] = Field(default_factory=dict)
    filter_aliases: Dict[str, str] = Field(default_factory=dict)
    date_fields: List[str] = Field(default_factory=list)
    text_match_fields: List[str] = Field(default_factory=list)

    @field_validator("collection_name", "document_id_field", "sequence_field")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator("filter_fields")
    @classmethod
    def _targets_not_empty(cls, value: Dict[str, List[str]]):
        for name, targets in value.items():
            if not targets:
                raise ValueError(f"filter field {name!r} maps to no payload field")
        return value

    @model_validator(mode="after")
    def _names_resolve(self):
        known = set(self.filter_fields)
        for name in [*self.date_fields, *self.text_match_fields]:
            if name not in known:
                raise ValueError(f"{name!r} is not declared in filter_fields")
        for legacy, canonical in self.filter_aliases.items():
            base = canonical
            for suffix in ("_from", "_to"):
                if canonical.endswith(suffix):
                    base = canonical[: -len(suffix)]
            if canonical not in known and base not in known:
                raise ValueError(
                    f"alias {legacy!r} points at unknown filter {canonical!r}"
                )
        return self


class Config(RetrievalBaseModel):
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    collections: Dict[str, CollectionConfig] = Field(default_factory=dict)


class Settings(BaseSettings):
    """Environment-based settings"""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    env: str = Field(default="development", alias="ENV")
    config_path: Optional[str] = Field(default=None, alias="CONFIG_PATH")

    # Qdrant
    qdrant_url: str = Field(default="http://localhost:6333", alias="QDRANT_URL")
    qdrant_api_key: Optional[str] = Field(default=None, alias="QDRANT_API_KEY")
    qdrant_timeout: Optional[int] = Field(default=None, alias="QDRANT_TIMEOUT")

    # Embedding gateway
    embedding_base_url: str = Field(
        default="http://127.0.0.1:9000/v1", alias="EMBEDDING_BASE_URL"
    )
    embedding_api_key: Optional[str] = Field(default=None, alias="EMBEDDING_API_KEY")

    # OpenTelemetry
    otel_exporter_otlp_endpoint: Optional[str] = Field(
        default=None, alias="OTEL_EXPORTER_OTLP_ENDPOINT"
    )
    otel_service_name: str = Field(
        default="passage-retrieval", alias="OTEL_SERVICE_NAME"
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


def _resolve_config_path(settings: Settings) -> Path:
    if settings.config_path:
        return Path(settings.config_path).expanduser()
    return DEFAULT_CONFIG_DIR / f"{settings.env}.yaml"


def load_config() -> tuple[Config, Settings]:
    """
    Load configuration from YAML file and environment variables.

    Returns:
        tuple: (Config, Settings) - YAML config and environment settings

    Raises:
        FileNotFoundError: If config file not found
        pydantic.ValidationError: If the YAML does not match the schema
    """
    settings = Settings()
    config_path = _resolve_config_path(settings)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_dict = yaml.safe_load(f) or {}

    config = Config(**config_dict)

    if settings.qdrant_timeout is not None:
        config.qdrant.timeout = settings.qdrant_timeout

    if not config.collections:
        logger.warning("No collection families configured in %s", config_path)

    return config, settings


# Global config instances (loaded once at startup)
_config: Optional[Config] = None
_settings: Optional[Settings] = None


def get_config() -> Config:
    """Get the global Config instance"""
    global _config
    if _config is None:
        init_config()
    return _config


def get_settings() -> Settings:
    """Get the global Settings instance"""
    global _settings
    if _settings is None:
        init_config()
    return _settings


def init_config() -> tuple[Config, Settings]:
    """Initialize and cache global config instances"""
    global _config, _settings
    _config, _settings = load_config()
    return _config, _settings


def reload_config() -> tuple[Config, Settings]:
    """Force reload of config/settings from disk and environment."""
    return init_config()
