"""Tests for key-set comparison."""

import pytest

from dorkly.reconciler.diff import KeyComparison, compare_keys


class TestCompareKeys:
    @pytest.mark.parametrize(
        "old, new, expected",
        [
            (None, None, KeyComparison([], [], [])),
            ({}, {}, KeyComparison([], [], [])),
            (None, {"a": 1}, KeyComparison(["a"], [], [])),
            ({"a": 1}, None, KeyComparison([], [], ["a"])),
            ({"a": 1}, {"a": 2}, KeyComparison([], ["a"], [])),
            (
                {"a": 1, "b": 2},
                {"b": 3, "c": 4},
                KeyComparison(new=["c"], existing=["b"], deleted=["a"]),
            ),
        ],
    )
    def test_classification(self, old, new, expected):
        result = compare_keys(old, new)
        assert sorted(result.new) == sorted(expected.new)
        assert sorted(result.existing) == sorted(expected.existing)
        assert sorted(result.deleted) == sorted(expected.deleted)

    def test_groups_are_disjoint_and_total(self):
        """Every key of either side lands in exactly one group."""
        old = {"a": 0, "b": 0, "c": 0}
        new = {"b": 0, "c": 0, "d": 0, "e": 0}
        result = compare_keys(old, new)

        groups = [set(result.new), set(result.existing), set(result.deleted)]
        assert set().union(*groups) == set(old) | set(new)
        assert sum(len(g) for g in groups) == len(set(old) | set(new))

    def test_values_are_ignored(self):
        result = compare_keys({"a": "x"}, {"a": "y"})
        assert result.existing == ["a"]
        assert result.new == []
        assert result.deleted == []
