"""Tests for merge primitives: equality, dot paths, and typed merges."""

from __future__ import annotations

from tracker_sync.sync.merger import (
    TEXT_MERGE_SEPARATOR,
    generate_diff,
    get_field_value,
    is_narrative_field,
    merge_arrays,
    merge_objects,
    merge_text,
    merge_values,
    set_field_value,
    values_equal,
)

# ---------------------------------------------------------------------------
# values_equal
# ---------------------------------------------------------------------------


class TestValuesEqual:
    """Semantic equality used by the three-way diff."""

    def test_none_only_equals_none(self) -> None:
        assert values_equal(None, None)
        assert not values_equal(None, "")
        assert not values_equal(0, None)

    def test_strings_ignore_case_and_whitespace(self) -> None:
        assert values_equal("  Draft ", "draft")
        assert not values_equal("draft", "approved")

    def test_composites_compare_structurally(self) -> None:
        assert values_equal({"a": 1, "b": [1, 2]}, {"b": [1, 2], "a": 1})
        assert not values_equal([1, 2], [2, 1])

    def test_string_never_equals_number(self) -> None:
        assert not values_equal("1000", 1000)

    def test_numbers(self) -> None:
        assert values_equal(1000, 1000.0)
        assert not values_equal(1000, 1200)


# ---------------------------------------------------------------------------
# Dot paths
# ---------------------------------------------------------------------------


class TestDotPaths:
    def test_get_nested(self) -> None:
        assert get_field_value({"a": {"b": {"c": 3}}}, "a.b.c") == 3

    def test_get_missing_segment(self) -> None:
        assert get_field_value({"a": 1}, "a.b") is None
        assert get_field_value(None, "a") is None

    def test_set_creates_parents(self) -> None:
        obj: dict = {}
        set_field_value(obj, "fields.custom.points", 5)
        assert obj == {"fields": {"custom": {"points": 5}}}


# ---------------------------------------------------------------------------
# Typed merges
# ---------------------------------------------------------------------------


class TestMergeArrays:
    """Array union seeded from local."""

    def test_union_keeps_unique_remote_additions(self) -> None:
        assert merge_values(["a"], ["a", "b"], ["a", "c"], "labels") == ["a", "b", "c"]

    def test_idempotent(self) -> None:
        merged = merge_arrays(["a", "b"], ["a", "c"])
        assert merge_arrays(merged, merged) == merged

    def test_structural_elements(self) -> None:
        local = [{"name": "Ann", "role": "owner"}]
        remote = [{"role": "owner", "name": "Ann"}, {"name": "Bo"}]
        assert merge_arrays(local, remote) == [
            {"name": "Ann", "role": "owner"},
            {"name": "Bo"},
        ]


class TestMergeObjects:
    """Key-wise object merge."""

    def test_remote_only_key_adopted(self) -> None:
        assert merge_objects({}, {"a": 1}, {"a": 1, "b": 2}) == {"a": 1, "b": 2}

    def test_local_unchanged_takes_remote(self) -> None:
        base = {"start": "2024-01-01"}
        merged = merge_objects(base, {"start": "2024-01-01"}, {"start": "2024-02-01"})
        assert merged == {"start": "2024-02-01"}

    def test_local_changed_wins(self) -> None:
        base = {"start": "2024-01-01"}
        merged = merge_objects(base, {"start": "2024-03-01"}, {"start": "2024-02-01"})
        assert merged == {"start": "2024-03-01"}

    def test_missing_base(self) -> None:
        assert merge_objects(None, {"a": 1}, {"a": 2}) == {"a": 1}


class TestMergeText:
    """Narrative merges never drop an edit."""

    def test_one_side_unchanged(self) -> None:
        assert merge_text("old", "old", "new remote") == "new remote"
        assert merge_text("old", "new local", "old") == "new local"

    def test_both_changed_concatenates(self) -> None:
        merged = merge_text("old", "local edit", "remote edit")
        assert merged == f"local edit{TEXT_MERGE_SEPARATOR}remote edit"

    def test_narrative_field_detection(self) -> None:
        assert is_narrative_field("problemStatement")
        assert is_narrative_field("fields.description")
        assert not is_narrative_field("title")

    def test_merge_values_uses_text_rule_for_narrative(self) -> None:
        merged = merge_values("b", "l", "r", "narrative")
        assert "l" in merged and "r" in merged


class TestMergeDefaults:
    def test_scalar_keeps_local(self) -> None:
        assert merge_values(1000, 1200, 900, "budget") == 1200

    def test_plain_string_field_keeps_local(self) -> None:
        assert merge_values("A", "B", "C", "title") == "B"


class TestGenerateDiff:
    def test_unified_diff(self) -> None:
        diff = generate_diff("one\ntwo\n", "one\nthree\n")
        assert "--- local" in diff
        assert "+++ remote" in diff
        assert "-two" in diff
        assert "+three" in diff

    def test_identical_is_empty(self) -> None:
        assert generate_diff("same\n", "same\n") == ""
