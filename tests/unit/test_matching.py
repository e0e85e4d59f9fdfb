"""
Unit tests for name matching.
Tests levenshtein_distance, find_matching_task and the parent resolvers
from importer/matching.py
"""
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from import_types import Task
from importer.matching import (
    find_matching_task,
    levenshtein_distance,
    lookup_case_insensitive,
    lookup_direct,
    resolve_reference,
)


def _task(task_id, title):
    return Task(id=task_id, project_id="p1", title=title)


class TestLevenshteinDistance:
    """Test levenshtein_distance function."""

    def test_classic_example(self):
        """Test the kitten/sitting example."""
        assert levenshtein_distance("kitten", "sitting") == 3

    def test_identical_strings(self):
        """Test that identical strings have distance 0."""
        assert levenshtein_distance("discovery", "discovery") == 0

    def test_symmetric(self):
        """Test that distance does not depend on argument order."""
        assert levenshtein_distance("flaw", "lawn") == levenshtein_distance("lawn", "flaw")

    def test_empty_string(self):
        """Test that distance to an empty string is the other length."""
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("abc", "") == 3


class TestFindMatchingTask:
    """Test find_matching_task function."""

    def setup_method(self):
        self.tasks = [
            _task("t1", "Discovery Phase"),
            _task("t2", "Data Migration Plan"),
            _task("t3", "Data Migration"),
        ]

    def test_exact_match_case_insensitive(self):
        """Test that exact titles match regardless of case and padding."""
        assert find_matching_task("  discovery phase ", self.tasks).id == "t1"

    def test_exact_match_beats_substring(self):
        """Test that an exact title wins over an earlier containing title."""
        assert find_matching_task("Data Migration", self.tasks).id == "t3"

    def test_substring_match(self):
        """Test that a search name contained in a title matches."""
        assert find_matching_task("Migration Plan", self.tasks).id == "t2"

    def test_fuzzy_match_within_distance(self):
        """Test that a typo within the edit limit still matches."""
        assert find_matching_task("Discovry Phase", self.tasks).id == "t1"

    def test_no_match_beyond_distance(self):
        """Test that unrelated names do not match."""
        assert find_matching_task("Completely Unrelated XYZ", self.tasks) is None

    def test_custom_max_distance(self):
        """Test that a tighter edit limit rejects the typo."""
        assert find_matching_task("Discvry Phase", self.tasks, max_distance=1) is None
        assert find_matching_task("Discvry Phase", self.tasks, max_distance=2).id == "t1"

    def test_empty_inputs(self):
        """Test that empty names or candidates give None."""
        assert find_matching_task("", self.tasks) is None
        assert find_matching_task(None, self.tasks) is None
        assert find_matching_task("Discovery Phase", []) is None

    def test_dict_candidates(self):
        """Test that dict records with a title key are supported."""
        rows = [{"id": "a", "title": "Testing"}, {"id": "b", "title": "Deployment"}]
        assert find_matching_task("deployment", rows)["id"] == "b"

    def test_fuzzy_tie_keeps_first(self):
        """Test that equally distant candidates resolve to the earlier one."""
        tasks = [_task("x", "abcd"), _task("y", "abce")]
        assert find_matching_task("abcf", tasks).id == "x"


class TestResolveReference:
    """Test parent reference resolution."""

    def test_direct_lookup(self):
        """Test that a name present in the map resolves directly."""
        assert resolve_reference("Discovery", {"Discovery": "t1"}) == "t1"

    def test_case_insensitive_fallback(self):
        """Test that the last resolver ignores case."""
        assert resolve_reference("discovery ", {"Discovery": "t1"}) == "t1"

    def test_unresolved_reference(self):
        """Test that unknown references give None."""
        assert resolve_reference("Build", {"Discovery": "t1"}) is None
        assert resolve_reference(None, {"Discovery": "t1"}) is None

    def test_custom_resolver_order(self):
        """Test that only the supplied resolvers are used."""
        name_map = {"Discovery": "t1"}
        assert resolve_reference("discovery", name_map, resolvers=[lookup_direct]) is None
        assert resolve_reference("discovery", name_map, resolvers=[lookup_case_insensitive]) == "t1"
