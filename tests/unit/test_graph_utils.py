"""
Unit tests for graph utilities (cycle detection).
Tests detect_circular_dependencies and validate_dependency_batch
from importer/graph_utils.py
"""
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from import_types import DependencyEdge
from importer.graph_utils import detect_circular_dependencies, validate_dependency_batch


def _edge(source, target):
    return DependencyEdge(source_task_id=source, target_task_id=target,
                          source_label=source.upper(), target_label=target.upper())


class TestDetectCircularDependencies:
    """Test detect_circular_dependencies function."""

    def test_no_cycles_in_linear_chain(self):
        """Test that linear dependency chain has no cycles."""
        edges = [_edge("a", "b"), _edge("b", "c"), _edge("c", "d")]
        assert detect_circular_dependencies(edges) == []

    def test_no_cycles_in_diamond_dag(self):
        """Test that diamond-shaped DAG has no cycles."""
        edges = [_edge("a", "b"), _edge("a", "c"), _edge("b", "d"), _edge("c", "d")]
        assert detect_circular_dependencies(edges) == []

    def test_simple_two_node_cycle(self):
        """Test detection of A → B → A."""
        cycles = detect_circular_dependencies([_edge("a", "b"), _edge("b", "a")])
        assert cycles == ["A → B → A"]

    def test_three_node_cycle_names_all_members(self):
        """Test that a three-node cycle is reported once with every member."""
        cycles = detect_circular_dependencies([_edge("a", "b"), _edge("b", "c"), _edge("c", "a")])
        assert len(cycles) == 1
        for label in ("A", "B", "C"):
            assert label in cycles[0]

    def test_disjoint_chains(self):
        """Test that disconnected acyclic components report nothing."""
        edges = [_edge("a", "b"), _edge("x", "y"), _edge("y", "z")]
        assert detect_circular_dependencies(edges) == []

    def test_unlabelled_nodes_use_ids(self):
        """Test that nodes without labels are rendered by id."""
        edges = [DependencyEdge("1", "2"), DependencyEdge("2", "1")]
        assert detect_circular_dependencies(edges) == ["#1 → #2 → #1"]

    def test_long_chain_does_not_hit_recursion_limit(self):
        """Test that very deep graphs are handled iteratively."""
        edges = [_edge(f"n{i}", f"n{i + 1}") for i in range(5000)]
        assert detect_circular_dependencies(edges) == []


class TestValidateDependencyBatch:
    """Test validate_dependency_batch function."""

    def test_acyclic_batch_accepted(self):
        """Test that an acyclic batch is accepted in full."""
        result = validate_dependency_batch([_edge("a", "b"), _edge("b", "c")])
        assert len(result.accepted) == 2
        assert result.cycles == []
        assert result.error == ""

    def test_self_reference_skipped_with_warning(self):
        """Test that self-references are dropped, not rejected."""
        result = validate_dependency_batch([_edge("a", "a"), _edge("a", "b")])
        assert [(e.source_task_id, e.target_task_id) for e in result.accepted] == [("a", "b")]
        assert len(result.warnings) == 1
        assert "Self-reference" in result.warnings[0]

    def test_cycle_through_existing_edges_rejects_whole_batch(self):
        """Test that a cycle closed by an existing edge rejects every proposed edge."""
        existing = [_edge("a", "b"), _edge("b", "c")]
        result = validate_dependency_batch([_edge("c", "a"), _edge("x", "y")], existing)
        assert result.accepted == []
        assert len(result.cycles) == 1
        assert result.error.startswith("Circular dependencies detected: ")

    def test_empty_batch(self):
        """Test that an empty batch is trivially valid."""
        result = validate_dependency_batch([])
        assert result.accepted == []
        assert result.cycles == []
