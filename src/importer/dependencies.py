"""
Importer Module - Dependency Creation
=====================================
Maps workstream dependencies onto created tasks and writes the edges
as one validated batch.
"""

import logging
from typing import Dict, List, Sequence

from import_types import DependencyEdge, DependencyResult, Task, Workstream
from .graph_utils import validate_dependency_batch
from .matching import DEFAULT_MAX_DISTANCE, find_matching_task

logger = logging.getLogger(__name__)


def derived_edges(tasks: Sequence[Task]) -> List[DependencyEdge]:
    """Edges implied by each task's `depends_on` list."""
    titles = {t.id: t.title for t in tasks}
    edges = []
    for task in tasks:
        for source_id in task.depends_on:
            edges.append(DependencyEdge(
                source_task_id=source_id,
                target_task_id=task.id,
                source_label=titles.get(source_id, ""),
                target_label=task.title,
            ))
    return edges


async def create_dependencies(
    workstreams: Sequence[Workstream],
    project_id: str,
    store,
    max_distance: int = DEFAULT_MAX_DISTANCE,
) -> DependencyResult:
    """
    Create dependency edges between the project's tasks from workstream
    dependency references.

    Nothing is written unless the whole batch, together with the project's
    existing edges, is acyclic.
    """
    logger.info(f"🔗 Creating dependencies for {len(workstreams)} workstreams in project {project_id}")
    result = DependencyResult()

    tasks = await store.list_tasks(project_id)
    if not tasks:
        result.warnings.append("No tasks found in project - cannot create dependencies")
        return result

    by_name: Dict[str, Task] = {}
    by_id: Dict[str, Task] = {}
    unmatched: List[str] = []

    for workstream in workstreams:
        match = find_matching_task(workstream.name, tasks, max_distance=max_distance)
        if match is None:
            unmatched.append(workstream.name)
            logger.debug(f"No task match for workstream '{workstream.name}'")
            continue
        by_name[workstream.name] = match
        if workstream.id:
            by_id[workstream.id] = match

    if unmatched:
        result.warnings.append(
            f"Could not match {len(unmatched)} workstream(s) to tasks: {', '.join(unmatched)}"
        )

    proposed: List[DependencyEdge] = []
    for workstream in workstreams:
        target = by_name.get(workstream.name)
        if target is None:
            continue

        for reference in workstream.dependencies:
            source = by_id.get(reference) or by_name.get(reference)
            if source is None:
                result.warnings.append(f'Dependency "{reference}" for "{workstream.name}" not found in tasks')
                continue
            if source.id == target.id:
                result.warnings.append(f'Self-reference detected: "{workstream.name}" depends on itself')
                continue
            proposed.append(DependencyEdge(
                source_task_id=source.id,
                target_task_id=target.id,
                source_label=source.title,
                target_label=target.title,
            ))

    if not proposed:
        logger.info("No dependencies to create")
        return result

    existing = list(await store.list_edges(project_id)) + derived_edges(tasks)
    validation = validate_dependency_batch(proposed, existing)
    result.warnings.extend(validation.warnings)

    if validation.cycles:
        result.cycles = validation.cycles
        result.errors.append(validation.error)
        logger.error(f"❌ Dependency batch rejected: {validation.error}")
        return result

    for edge in validation.accepted:
        try:
            created = await store.insert_edge_if_absent(project_id, edge)
        except Exception as e:
            result.errors.append(
                f'Failed to create dependency "{edge.source_label}" → "{edge.target_label}": {e}'
            )
            logger.error(f"❌ Error creating dependency: {e}")
            continue

        if created:
            result.dependencies.append(edge)
        else:
            result.warnings.append(
                f'Dependency already exists: "{edge.source_label}" → "{edge.target_label}"'
            )

    logger.info(
        f"✓ Created {len(result.dependencies)} dependencies "
        f"({len(result.warnings)} warnings, {len(result.errors)} errors)"
    )
    return result
