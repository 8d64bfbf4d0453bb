# Shared fixtures: in-process fakes for Qdrant and the embedding gateway.
# No network access; every test runs against these doubles.

import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import pytest
from qdrant_client.models import FieldCondition, Filter

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set test environment
os.environ["ENV"] = "development"

from passage_retrieval.providers.embeddings import SparseEmbedding  # noqa: E402
from passage_retrieval.query.collections import CollectionDescriptor  # noqa: E402
from passage_retrieval.shared.config import RetrievalConfig  # noqa: E402


def make_point(pid, document_id=None, index=None, text=None, score=None, **extra):
    payload: Dict[str, Any] = dict(extra)
    if document_id is not None:
        payload["document_id"] = document_id
    if index is not None:
        payload["index"] = index
    if text is not None:
        payload["text"] = text
    return SimpleNamespace(id=pid, payload=payload, score=score)


def _matches_condition(payload: Dict[str, Any], cond) -> bool:
    if isinstance(cond, Filter):
        return _matches(payload, cond)
    assert isinstance(cond, FieldCondition)
    value = payload.get(cond.key)
    if cond.match is not None:
        match = cond.match
        if hasattr(match, "value"):
            return value == match.value
        if hasattr(match, "any"):
            if isinstance(value, list):
                return any(v in match.any for v in value)
            return value in match.any
        if hasattr(match, "text"):
            return isinstance(value, str) and match.text.lower() in value.lower()
    if cond.range is not None:
        if value is None:
            return False
        if cond.range.gte is not None and value < cond.range.gte:
            return False
        if cond.range.lte is not None and value > cond.range.lte:
            return False
        return True
    return False


def _matches(payload: Dict[str, Any], flt: Optional[Filter]) -> bool:
    if flt is None:
        return True
    if flt.must and not all(_matches_condition(payload, c) for c in flt.must):
        return False
    if flt.should and not any(_matches_condition(payload, c) for c in flt.should):
        return False
    return True


class FakeQdrantClient:
    """Records calls; answers scroll/count by evaluating filters over stored points."""

    def __init__(self, collections=("rulings",)):
        self.collections = set(collections)
        self.points: List[SimpleNamespace] = []
        self.query_result: List[SimpleNamespace] = []
        self.query_calls: List[Dict[str, Any]] = []
        self.scroll_calls: List[Dict[str, Any]] = []
        self.count_calls: List[Dict[str, Any]] = []
        self.exists_calls = 0
        self.fail_exists: Optional[Exception] = None
        self.fail_query: Optional[Exception] = None
        self.fail_scroll = None  # callable(scroll_filter) -> Optional[Exception]
        self.scroll_hook = None  # callable(scroll_filter), e.g. to block

    def collection_exists(self, collection_name):
        self.exists_calls += 1
        if self.fail_exists is not None:
            raise self.fail_exists
        return collection_name in self.collections

    def query_points(self, **kwargs):
        self.query_calls.append(kwargs)
        if self.fail_query is not None:
            raise self.fail_query
        return SimpleNamespace(points=list(self.query_result[: kwargs["limit"]]))

    def scroll(self, collection_name, scroll_filter=None, limit=10, **kwargs):
        self.scroll_calls.append(
            {"collection_name": collection_name, "scroll_filter": scroll_filter, "limit": limit, **kwargs}
        )
        if self.scroll_hook is not None:
            self.scroll_hook(scroll_filter)
        if self.fail_scroll is not None:
            exc = self.fail_scroll(scroll_filter)
            if exc is not None:
                raise exc
        hits = [
            SimpleNamespace(id=p.id, payload=dict(p.payload), score=None)
            for p in self.points
            if _matches(p.payload, scroll_filter)
        ]
        return hits[:limit], None

    def count(self, collection_name, count_filter=None, exact=True):
        self.count_calls.append({"collection_name": collection_name, "count_filter": count_filter})
        return SimpleNamespace(count=sum(1 for p in self.points if _matches(p.payload, count_filter)))


class FakeEmbedder:
    def __init__(self, dense=None, sparse=None):
        self.dense = dense if dense is not None else [0.1, 0.2, 0.3]
        self.sparse = sparse if sparse is not None else SparseEmbedding(indices=[3, 7], values=[0.4, 0.9])
        self.dense_calls: List[str] = []
        self.sparse_calls: List[List[str]] = []
        self.fail_dense: Optional[Exception] = None
        self.fail_sparse: Optional[Exception] = None

    def embed_dense(self, text):
        self.dense_calls.append(text)
        if self.fail_dense is not None:
            raise self.fail_dense
        return list(self.dense)

    def embed_sparse(self, texts):
        self.sparse_calls.append(list(texts))
        if self.fail_sparse is not None:
            raise self.fail_sparse
        return [self.sparse for _ in texts]


@pytest.fixture
def descriptor():
    return CollectionDescriptor(
        name="rulings",
        collection_name="rulings",
        document_id_field="document_id",
        sequence_field="index",
        text_field="text",
        filter_field_map={
            "court": ("tribunal",),
            "case_number": ("case_number", "expediente"),
            "owner": ("userId", "teamId"),
            "tags": ("tags",),
            "plaintiff": ("actor",),
            "date": ("date_ts",),
            "document_id": ("document_id",),
        },
        filter_aliases={
            "tribunal": "court",
            "actor": "plaintiff",
            "fecha_from": "date_from",
            "fecha_to": "date_to",
        },
        date_fields=frozenset({"date"}),
        text_match_fields=frozenset({"plaintiff"}),
    )


@pytest.fixture
def retrieval_config():
    return RetrievalConfig(expansion_timeout_seconds=5.0)


@pytest.fixture
def fake_client():
    return FakeQdrantClient()


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()


@pytest.fixture
def point():
    return make_point
