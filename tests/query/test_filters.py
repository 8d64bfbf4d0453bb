from qdrant_client.models import FieldCondition, Filter, MatchAny, MatchText, MatchValue

from passage_retrieval.query.filters import (
    AnyOf,
    Equals,
    FilterTranslator,
    Range,
    TextMatch,
    criteria_from_params,
    summarize_filter,
    to_epoch_seconds,
)


def test_no_criteria_translates_to_none(descriptor):
    translator = FilterTranslator(descriptor)
    assert translator.translate([]) is None
    assert translator.translate(None) is None


def test_single_field_equals_goes_to_must(descriptor):
    flt = FilterTranslator(descriptor).translate([Equals("court", "CSJN")])

    assert flt.should is None
    assert flt.must == [FieldCondition(key="tribunal", match=MatchValue(value="CSJN"))]


def test_alias_is_resolved_before_translation(descriptor):
    flt = FilterTranslator(descriptor).translate([Equals("tribunal", "CSJN")])

    assert flt.must[0].key == "tribunal"


def test_multi_field_logical_name_becomes_should_group(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Equals("court", "X"), Equals("case_number", "123/2020")]
    )

    assert [c.key for c in flt.must] == ["tribunal"]
    assert [c.key for c in flt.should] == ["case_number", "expediente"]
    assert all(c.match == MatchValue(value="123/2020") for c in flt.should)


def test_second_should_group_is_nested_in_must(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Equals("case_number", "1"), AnyOf("owner", ("u1", "t1"))]
    )

    assert [c.key for c in flt.should] == ["case_number", "expediente"]
    assert len(flt.must) == 1
    nested = flt.must[0]
    assert isinstance(nested, Filter)
    assert [c.key for c in nested.should] == ["userId", "teamId"]


def test_any_of_and_text_match(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [AnyOf("tags", ("civil", "laboral")), TextMatch("plaintiff", "Pérez")]
    )

    assert flt.must[0] == FieldCondition(key="tags", match=MatchAny(any=["civil", "laboral"]))
    assert flt.must[1] == FieldCondition(key="actor", match=MatchText(text="Pérez"))


def test_date_range_bounds_become_epoch_seconds(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Range("date", gte="2020-01-01", lte="2020-01-02T00:00:00Z")]
    )

    cond = flt.must[0]
    assert cond.key == "date_ts"
    assert cond.range.gte == 1577836800
    assert cond.range.lte == 1577923200


def test_malformed_bound_is_dropped_not_fatal(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Range("date", gte="not-a-date", lte="2020-01-01")]
    )

    assert flt.must[0].range.gte is None
    assert flt.must[0].range.lte == 1577836800


def test_range_with_no_usable_bound_is_skipped(descriptor):
    flt = FilterTranslator(descriptor).translate([Range("date", gte="??")])
    assert flt is None


def test_to_epoch_seconds_variants():
    assert to_epoch_seconds("1577836800") == 1577836800
    assert to_epoch_seconds("1577836800.9") == 1577836800
    assert to_epoch_seconds("2020-01-01T03:00:00+03:00") == 1577836800
    assert to_epoch_seconds(12.7) == 12
    assert to_epoch_seconds("") is None
    assert to_epoch_seconds("yesterday") is None
    assert to_epoch_seconds(True) is None


def test_criteria_from_params_builds_every_kind(descriptor):
    criteria = criteria_from_params(
        {
            "tribunal": "CSJN",
            "tags": ["civil"],
            "actor": "Gómez",
            "fecha_from": "2020-01-01",
            "date_to": "2021-01-01",
            "case_number": None,
            "court_room": "",
        },
        descriptor,
    )

    assert Equals("court", "CSJN") in criteria
    assert AnyOf("tags", ("civil",)) in criteria
    assert TextMatch("plaintiff", "Gómez") in criteria
    assert Range("date", gte="2020-01-01", lte="2021-01-01") in criteria
    assert len(criteria) == 4


def test_canonical_name_wins_over_alias(descriptor):
    criteria = criteria_from_params({"tribunal": "old", "court": "new"}, descriptor)
    assert criteria == [Equals("court", "new")]


def test_summarize_filter_hides_values():
    summary = summarize_filter([Equals("owner", "secret-user"), Range("date", gte=1)])
    assert summary == "owner:eq,date:range"
    assert summarize_filter([]) == "none"


def test_only_date_fields_read_strings_as_dates(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Range("page_count", gte="2020-01-01", lte="120")]
    )

    cond = flt.must[0]
    assert cond.key == "page_count"
    assert cond.range.gte is None
    assert cond.range.lte == 120.0


def test_non_date_range_with_only_date_like_bounds_is_skipped(descriptor):
    flt = FilterTranslator(descriptor).translate(
        [Equals("court", "CSJN"), Range("page_count", gte="2020-01-01T00:00:00Z")]
    )

    assert flt.must == [FieldCondition(key="tribunal", match=MatchValue(value="CSJN"))]
