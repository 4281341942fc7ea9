from __future__ import annotations

from formrag.ingestion.flatten import flatten


def test_nested_mappings_use_dotted_paths():
    assert flatten({"contact": {"email": "a@b.co", "address": {"city": "Paris"}}}) == [
        ("contact.email", "a@b.co"),
        ("contact.address.city", "Paris"),
    ]


def test_sequences_use_bracketed_indices():
    data = {"notes": ["first", {"text": "second"}], "matrix": [[1, 2]]}
    assert flatten(data) == [
        ("notes[0]", "first"),
        ("notes[1].text", "second"),
        ("matrix[0][0]", "1"),
        ("matrix[0][1]", "2"),
    ]


def test_top_level_sequence_and_prefix():
    assert flatten(["x", "y"]) == [("[0]", "x"), ("[1]", "y")]
    assert flatten({"a": 1}, "root") == [("root.a", "1")]


def test_scalars_are_stringified_and_nulls_skipped():
    data = {"active": True, "closed": False, "count": 3, "ratio": 0.5, "missing": None}
    assert flatten(data) == [
        ("active", "true"),
        ("closed", "false"),
        ("count", "3"),
        ("ratio", "0.5"),
    ]


def test_empty_containers_produce_nothing():
    assert flatten({"a": {}, "b": []}) == []
    assert flatten(None) == []
