"""
Importer Module - Hierarchical Task Builder
===========================================
Turns detected workstreams into persisted epics, tasks and subtasks.
"""

import logging
from datetime import date
from typing import Dict, List, Optional, Sequence

from import_types import HierarchyResult, Task, TaskCategory, Workstream
from .matching import DEFAULT_PARENT_RESOLVERS, Resolver, resolve_reference
from .scheduling import schedule_dates

logger = logging.getLogger(__name__)


def _level_of(workstream: Workstream) -> Optional[int]:
    """Stated hierarchy level, or None when missing or invalid."""
    level = workstream.hierarchy_level
    if not isinstance(level, int) or isinstance(level, bool) or level < 0:
        return None
    return level


def _sort_key(workstream: Workstream) -> int:
    level = _level_of(workstream)
    return 0 if level is None else level


def categorize_task(task: Task) -> TaskCategory:
    """Classify a created task by level and parent presence."""
    if task.hierarchy_level == 0:
        return TaskCategory.EPIC
    if task.parent_task_id is None:
        return TaskCategory.STANDALONE
    if task.hierarchy_level == 1:
        return TaskCategory.TASK
    return TaskCategory.SUBTASK


def _task_description(workstream: Workstream) -> str:
    description = workstream.description or ""
    if workstream.key_requirements:
        requirements = "\n".join(f"- {r}" for r in workstream.key_requirements)
        description = f"{description}\n\nKey requirements:\n{requirements}".strip()
    return description


async def create_hierarchy(
    workstreams: Sequence[Workstream],
    project_id: str,
    store,
    project_start_date: Optional[date] = None,
    name_map: Optional[Dict[str, str]] = None,
    resolvers: Sequence[Resolver] = DEFAULT_PARENT_RESOLVERS,
) -> HierarchyResult:
    """
    Create one task per workstream, parents before children.

    Workstreams are stably sorted by hierarchy level, so input order does
    not matter. Each created task's id is written back to
    `workstream.task_id` and recorded in the returned name map under both
    the workstream name and the workstream id.

    Args:
        workstreams: Detected workstreams
        project_id: Project the tasks belong to
        store: Task store exposing `async insert_task(task) -> id`
        project_start_date: Anchor for scheduling (defaults to today)
        name_map: Pre-seeded name -> task id map, extended in place
        resolvers: Parent resolution strategies, tried in order

    Returns:
        HierarchyResult with created tasks by category, errors and warnings
    """
    start_date = project_start_date or date.today()
    result = HierarchyResult(name_map=name_map if name_map is not None else {})
    ordered = sorted(workstreams, key=_sort_key)
    created_by_id: Dict[str, Task] = {}

    logger.info(f"Creating hierarchy for {len(ordered)} workstreams in project {project_id}")

    for workstream in ordered:
        stated_level = _level_of(workstream)

        parent_id = None
        if workstream.parent_ref:
            parent_id = resolve_reference(workstream.parent_ref, result.name_map, resolvers)
            if parent_id is None:
                result.warnings.append(
                    f'Parent "{workstream.parent_ref}" not found for "{workstream.name}"; created as a root task'
                )
                logger.warning(f"⚠ Unresolved parent '{workstream.parent_ref}' for '{workstream.name}'")

        # A child sits exactly one level below its parent
        parent = created_by_id.get(parent_id) if parent_id is not None else None
        if parent is not None:
            level = parent.hierarchy_level + 1
        elif stated_level is not None:
            level = stated_level
        else:
            level = 0

        if stated_level is None:
            result.warnings.append(
                f'"{workstream.name}" has no valid hierarchy level; using level {level}'
            )
            logger.warning(f"⚠ Missing hierarchy level on '{workstream.name}', using {level}")
        elif stated_level != level:
            result.warnings.append(
                f'"{workstream.name}" is listed at level {stated_level} but its parent is at level '
                f'{level - 1}; moved to level {level}'
            )
            logger.warning(f"⚠ Corrected level of '{workstream.name}' from {stated_level} to {level}")

        if workstream.is_epic and level != 0:
            result.warnings.append(
                f'"{workstream.name}" is marked as an epic at level {level}; epic flag removed'
            )
            logger.warning(f"⚠ Corrected epic flag on level-{level} item '{workstream.name}'")

        depends_on: List[str] = []
        if parent_id is not None:
            depends_on.append(parent_id)
            previous_sibling = next(
                (t for t in reversed(result.created) if t.parent_task_id == parent_id), None
            )
            if previous_sibling is not None:
                depends_on.append(previous_sibling.id)

        task = Task(
            id=None,
            project_id=project_id,
            title=workstream.name,
            description=_task_description(workstream),
            parent_task_id=parent_id,
            hierarchy_level=level,
            is_epic=level == 0,
            depends_on=depends_on,
            effort_estimate_hours=workstream.effort_hours,
        )
        dates = schedule_dates(task, result.created, start_date)
        task.start_date = dates.start_date
        task.due_date = dates.due_date

        try:
            task.id = await store.insert_task(task)
        except Exception as e:
            result.errors.append(f'Failed to create task "{workstream.name}": {e}')
            logger.error(f"❌ Failed to create task '{workstream.name}': {e}")
            continue

        workstream.task_id = task.id
        result.name_map[workstream.name] = task.id
        if workstream.id:
            result.name_map[workstream.id] = task.id
        result.created.append(task)
        created_by_id[task.id] = task

        category = categorize_task(task)
        if category == TaskCategory.EPIC:
            result.epics.append(task)
        elif category == TaskCategory.TASK:
            result.tasks.append(task)
        elif category == TaskCategory.SUBTASK:
            result.subtasks.append(task)
        else:
            result.standalone.append(task)

    logger.info(
        f"✓ Hierarchy created: {len(result.epics)} epics, {len(result.tasks)} tasks, "
        f"{len(result.subtasks)} subtasks, {len(result.standalone)} standalone, {len(result.errors)} errors"
    )
    return result
