import threading

from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from passage_retrieval.query import context_expansion
from passage_retrieval.query.chunks import Chunk
from passage_retrieval.query.context_expansion import ContextExpander, merge_window_text
from passage_retrieval.query.hybrid_search import HybridSearchClient
from passage_retrieval.shared.config import RetrievalConfig
from passage_retrieval.shared.observability.logging import correlation_id_ctx


def _expander(fake_client, descriptor, **cfg):
    config = RetrievalConfig(**cfg)
    return ContextExpander(HybridSearchClient(fake_client, None, descriptor, config), config)


def _doc(point, doc, texts):
    return [point(f"{doc}-{i}", doc, i, t) for i, t in enumerate(texts)]


def anchor(doc, idx, text="anchor", score=0.8):
    return Chunk(id=f"{doc}-{idx}", document_id=doc, sequence_index=idx, text=text, score=score)


def test_window_merges_neighbours_in_sequence_order(fake_client, descriptor, point):
    fake_client.points = list(reversed(_doc(point, "D", ["c0", "c1", "", "c3", "c4", "c5"])))
    expander = _expander(fake_client, descriptor)

    outcome = expander.expand_one(anchor("D", 2, text="", score=0.42), window=1)

    assert outcome.outcome == "expanded"
    assert outcome.chunk.text == "c1 c3"
    assert outcome.chunk.sequence_index == 2
    assert outcome.chunk.score == 0.42
    assert outcome.chunk.expanded is True
    flt = fake_client.scroll_calls[0]["scroll_filter"]
    assert flt.must[1].range.gte == 1 and flt.must[1].range.lte == 3
    assert fake_client.scroll_calls[0]["limit"] == 1000


def test_window_start_is_clamped_at_zero(fake_client, descriptor, point):
    fake_client.points = _doc(point, "D", ["a", "b", "c"])
    outcome = _expander(fake_client, descriptor).expand_one(anchor("D", 0), window=2)

    assert outcome.chunk.text == "a b c"
    assert fake_client.scroll_calls[0]["scroll_filter"].must[1].range.gte == 0


def test_zero_window_or_missing_index_is_unchanged(fake_client, descriptor):
    expander = _expander(fake_client, descriptor)
    no_index = Chunk(id="x", document_id="D", sequence_index=None, text="t", score=1.0)

    assert expander.expand_one(anchor("D", 3), window=0).outcome == "unchanged"
    assert expander.expand_one(no_index, window=2).chunk is no_index
    assert fake_client.scroll_calls == []


def test_empty_window_keeps_original_text(fake_client, descriptor, point):
    fake_client.points = [point("D-5", "D", 5, "   ")]
    outcome = _expander(fake_client, descriptor).expand_one(anchor("D", 9, text="own"), window=1)

    assert outcome.outcome == "original_text"
    assert outcome.chunk.text == "own"
    assert outcome.chunk.expanded is False


def test_empty_window_and_empty_text_is_excluded(fake_client, descriptor):
    expander = _expander(fake_client, descriptor)
    batch = expander.expand_many([anchor("D", 1, text="")], window=1)

    assert batch.results == []
    assert batch.excluded == {("D", 1, "D-1")}


def test_scan_failure_keeps_chunk_unexpanded(fake_client, descriptor, point):
    fake_client.points = _doc(point, "A", ["a0", "a1"]) + _doc(point, "B", ["b0", "b1"])

    def fail_for_b(flt):
        if flt.must[0].match.value == "B":
            return ConnectionError("lost")
        return None

    fake_client.fail_scroll = fail_for_b
    batch = _expander(fake_client, descriptor).expand_many(
        [anchor("A", 0, text="a0"), anchor("B", 0, text="b0")], window=1
    )

    assert [c.text for c in batch.results] == ["a0 a1", "b0"]
    assert batch.outcomes["failed"] == 1
    assert batch.outcomes["expanded"] == 1


def test_output_keeps_selection_order_under_concurrency(fake_client, descriptor, point):
    fake_client.points = [p for d in "ABCDEF" for p in _doc(point, d, [f"{d}0", f"{d}1"])]
    anchors = [anchor(d, 0, text=f"{d}0", score=0.1 * i) for i, d in enumerate("ABCDEF")]

    batch = _expander(fake_client, descriptor, expansion_max_workers=3).expand_many(anchors, 1)

    assert [c.document_id for c in batch.results] == list("ABCDEF")
    assert [c.text for c in batch.results] == [f"{d}0 {d}1" for d in "ABCDEF"]


def test_deadline_emits_pending_chunks_unexpanded(fake_client, descriptor, point):
    fake_client.points = _doc(point, "A", ["a0", "a1"]) + _doc(point, "B", ["b0", "b1"])
    release = threading.Event()

    def block_b(flt):
        if flt.must[0].match.value == "B":
            release.wait(5)

    fake_client.scroll_hook = block_b
    try:
        batch = _expander(
            fake_client, descriptor, expansion_timeout_seconds=0.2
        ).expand_many([anchor("A", 0, text="a0"), anchor("B", 0, text="b0")], window=1)
    finally:
        release.set()

    assert [c.text for c in batch.results] == ["a0 a1", "b0"]
    assert batch.outcomes["timeout"] == 1


def test_merge_window_text_skips_blank_texts():
    window = [
        Chunk(id="2", document_id="D", sequence_index=2, text="two", score=0),
        Chunk(id="1", document_id="D", sequence_index=1, text=None, score=0),
        Chunk(id="0", document_id="D", sequence_index=0, text="zero", score=0),
    ]
    assert merge_window_text(window) == "zero two"


def test_workers_inherit_span_and_correlation_id(fake_client, descriptor, point, monkeypatch):
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    local_tracer = provider.get_tracer("expansion-test")
    monkeypatch.setattr(context_expansion, "tracer", local_tracer)

    fake_client.points = _doc(point, "A", ["a0", "a1"]) + _doc(point, "B", ["b0", "b1"])
    seen = []
    fake_client.scroll_hook = lambda flt: seen.append(correlation_id_ctx.get())

    token = correlation_id_ctx.set("req-42")
    try:
        with local_tracer.start_as_current_span("retrieval.retrieve") as parent:
            _expander(fake_client, descriptor, expansion_max_workers=2).expand_many(
                [anchor("A", 0), anchor("B", 0)], window=1
            )
    finally:
        correlation_id_ctx.reset(token)

    assert seen == ["req-42", "req-42"]
    expand_spans = [s for s in exporter.get_finished_spans() if s.name == "retrieval.expand"]
    assert len(expand_spans) == 2
    parent_ctx = parent.get_span_context()
    for span in expand_spans:
        assert span.parent is not None
        assert span.parent.span_id == parent_ctx.span_id
        assert span.context.trace_id == parent_ctx.trace_id
