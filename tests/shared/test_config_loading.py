from pathlib import Path

import pytest
from pydantic import ValidationError

import passage_retrieval
from passage_retrieval.query.collections import CollectionRegistry
from passage_retrieval.shared.config import (
    DEFAULT_CONFIG_DIR,
    CollectionConfig,
    EmbeddingConfig,
    Settings,
    get_config,
    get_settings,
    load_config,
    reload_config,
)
from passage_retrieval.shared.errors import ConfigurationError


def test_development_config_declares_four_families(monkeypatch):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.delenv("CONFIG_PATH", raising=False)

    config, settings = load_config()

    assert settings.env == "development"
    assert set(config.collections) == {
        "case_documents",
        "library_documents",
        "legislation",
        "court_rulings",
    }
    assert config.retrieval.prefetch_limit == 50
    assert config.retrieval.filter_scan_cap == 100
    assert config.retrieval.expansion_scan_limit == 1000


def test_default_config_ships_inside_the_package(monkeypatch, tmp_path):
    monkeypatch.setenv("ENV", "development")
    monkeypatch.delenv("CONFIG_PATH", raising=False)
    monkeypatch.chdir(tmp_path)

    package_dir = Path(passage_retrieval.__file__).resolve().parent
    assert DEFAULT_CONFIG_DIR == package_dir / "config"
    assert (DEFAULT_CONFIG_DIR / "development.yaml").is_file()

    config, _ = load_config()
    assert "court_rulings" in config.collections
    legislation = CollectionRegistry.from_config(config).get("legislation")
    assert legislation.is_date_field("publication_ts")


def test_registry_resolves_family_field_names(monkeypatch):
    monkeypatch.setenv("ENV", "development")
    config, _ = load_config()
    registry = CollectionRegistry.from_config(config)

    cases = registry.get("case_documents")
    assert (cases.document_id_field, cases.sequence_field) == ("documentId", "chunkIndex")
    library = registry.get("library_documents")
    assert library.payload_fields("owner") == ("userId", "teamId")
    rulings = registry.get("court_rulings")
    assert rulings.payload_fields("magistrados") == ("magistrados",)
    assert rulings.is_text_match_field("actor")
    assert rulings.split_range_name("fecha_from") == ("date", "_from")

    with pytest.raises(ConfigurationError):
        registry.get("unknown")


def test_config_path_override(monkeypatch, tmp_path):
    path = tmp_path / "custom.yaml"
    path.write_text(
        "retrieval:\n  default_limit: 3\n"
        "collections:\n  notes:\n    collection_name: notes\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("CONFIG_PATH", str(path))
    monkeypatch.setenv("QDRANT_TIMEOUT", "7")

    config, _ = reload_config()

    assert get_config() is config
    assert config.retrieval.default_limit == 3
    assert config.retrieval.candidate_limit == 50
    assert config.qdrant.timeout == 7
    assert config.collections["notes"].document_id_field == "document_id"

    monkeypatch.delenv("CONFIG_PATH")
    monkeypatch.delenv("QDRANT_TIMEOUT")
    reload_config()


def test_missing_config_file(monkeypatch, tmp_path):
    monkeypatch.setenv("CONFIG_PATH", str(tmp_path / "absent.yaml"))
    with pytest.raises(FileNotFoundError):
        load_config()


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("QDRANT_URL", "http://qdrant:6333")
    monkeypatch.setenv("EMBEDDING_API_KEY", "secret")

    settings = Settings()

    assert settings.qdrant_url == "http://qdrant:6333"
    assert settings.embedding_api_key == "secret"
    assert settings.log_level == "INFO"
    assert get_settings() is not None


def test_collection_config_rejects_unknown_alias_target():
    with pytest.raises(ValidationError):
        CollectionConfig(
            collection_name="x",
            filter_fields={"court": ["tribunal"]},
            filter_aliases={"fecha_from": "date_from"},
        )


def test_collection_config_rejects_undeclared_date_field():
    with pytest.raises(ValidationError):
        CollectionConfig(collection_name="x", date_fields=["date"])


def test_embedding_endpoint_must_be_a_path():
    with pytest.raises(ValidationError):
        EmbeddingConfig(dense_endpoint="embeddings")
