"""
Importer Module - Graph Utilities
=================================
Graph algorithms for dependency validation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Sequence, Tuple

from import_types import DependencyEdge

logger = logging.getLogger(__name__)


@dataclass
class BatchValidation:
    """Result of validating a proposed batch of dependency edges."""
    accepted: List[DependencyEdge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cycles: List[str] = field(default_factory=list)

    @property
    def error(self) -> str:
        return f"Circular dependencies detected: {'; '.join(self.cycles)}" if self.cycles else ""


def detect_circular_dependencies(edges: Iterable[DependencyEdge]) -> List[str]:
    """
    Detect cycles in a set of dependency edges.
    Uses iterative DFS so deep graphs do not hit the recursion limit.

    Args:
        edges: Edges meaning "source must complete before target"

    Returns:
        One description per cycle found, e.g. "A → B → C → A"
    """
    # Build adjacency list: node -> successors, in first-seen order
    graph: Dict[str, List[str]] = {}
    labels: Dict[str, str] = {}

    for edge in edges:
        for node, label in ((edge.source_task_id, edge.source_label),
                            (edge.target_task_id, edge.target_label)):
            if node not in graph:
                graph[node] = []
                labels[node] = label or f"#{node}"
        graph[edge.source_task_id].append(edge.target_task_id)

    visited = set()
    on_stack = set()
    cycles: List[str] = []

    for root in graph:
        if root in visited:
            continue

        path = [root]
        stack = [(root, iter(graph[root]))]
        visited.add(root)
        on_stack.add(root)

        while stack:
            node, successors = stack[-1]
            advanced = False

            for neighbor in successors:
                if neighbor not in visited:
                    visited.add(neighbor)
                    on_stack.add(neighbor)
                    path.append(neighbor)
                    stack.append((neighbor, iter(graph[neighbor])))
                    advanced = True
                    break
                if neighbor in on_stack:
                    # Back edge: the cycle is the path from neighbor to here
                    cycle = path[path.index(neighbor):] + [neighbor]
                    description = " → ".join(labels[n] for n in cycle)
                    cycles.append(description)
                    logger.warning(f"Cycle detected: {description}")

            if not advanced:
                stack.pop()
                path.pop()
                on_stack.discard(node)

    if cycles:
        logger.info(f"❌ Found {len(cycles)} circular dependency cycle(s)")
    else:
        logger.debug("✓ No circular dependencies detected")

    return cycles


def split_self_references(edges: Iterable[DependencyEdge]) -> Tuple[List[DependencyEdge], List[str]]:
    """Drop edges whose source and target are the same task."""
    kept: List[DependencyEdge] = []
    warnings: List[str] = []
    for edge in edges:
        if edge.source_task_id == edge.target_task_id:
            label = edge.target_label or f"#{edge.target_task_id}"
            warnings.append(f'Self-reference detected: "{label}" depends on itself')
            continue
        kept.append(edge)
    return kept, warnings


def validate_dependency_batch(
    proposed: Sequence[DependencyEdge],
    existing: Sequence[DependencyEdge] = (),
) -> BatchValidation:
    """
    Validate a batch of edges before anything is written.

    Self references are skipped with a warning. Cycle detection runs over
    the existing project edges plus the proposed ones; if any cycle exists
    the whole batch is rejected.
    """
    kept, warnings = split_self_references(proposed)
    result = BatchValidation(warnings=warnings)

    if not kept:
        return result

    cycles = detect_circular_dependencies(list(existing) + kept)
    if cycles:
        result.cycles = cycles
        return result

    result.accepted = kept
    return result
