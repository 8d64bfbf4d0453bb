from qdrant_client import QdrantClient

from passage_retrieval.clients.embedding_client import HttpEmbeddingClient
from passage_retrieval.query.retrieval import RetrievalEngine
from passage_retrieval.shared.config import Settings, load_config
from passage_retrieval.shared.connections import (
    create_embedding_gateway,
    create_qdrant_client,
    redact_url,
)


def test_redact_url_strips_credentials_and_query():
    assert redact_url("https://user:pw@qdrant.local:6333/path?api_key=x") == (
        "https://qdrant.local:6333/path"
    )


def test_clients_are_built_from_settings(monkeypatch):
    monkeypatch.setenv("ENV", "development")
    config, _ = load_config()
    settings = Settings(
        QDRANT_URL="http://localhost:6333",
        EMBEDDING_BASE_URL="http://embed:9000/v1",
        EMBEDDING_API_KEY="k",
    )

    qdrant = create_qdrant_client(settings=settings, config=config)
    gateway = create_embedding_gateway(settings=settings, config=config)

    assert isinstance(qdrant, QdrantClient)
    assert isinstance(gateway, HttpEmbeddingClient)
    assert gateway.base_url == "http://embed:9000/v1"
    assert gateway._breaker.failure_threshold == config.embedding.circuit_breaker.failure_threshold
    gateway.close()


def test_engine_from_settings_registers_every_family(monkeypatch):
    monkeypatch.setenv("ENV", "development")
    config, _ = load_config()

    engine = RetrievalEngine.from_settings(
        settings=Settings(QDRANT_URL="http://localhost:6333"), config=config
    )

    assert set(engine.registry.names()) == set(config.collections)
    assert engine.config.prefetch_limit == config.retrieval.prefetch_limit
    engine.close()
