"""
Importer Module - Hierarchical Date Scheduling
==============================================
Assigns start/due dates to tasks from their level, parent and siblings.
"""

import logging
from datetime import date, timedelta
from typing import Optional, Sequence

from import_types import ScheduledDates, Task

logger = logging.getLogger(__name__)

# Duration in calendar days by hierarchy level
LEVEL_DURATIONS = {0: 30, 1: 10, 2: 5}
DEEP_LEVEL_DURATION = 3       # level 3 and below
DEFAULT_DURATION = 7          # missing or unrecognised level

SIBLING_SPACING_DAYS = 2
EPIC_SPACING_DAYS = 5


def duration_for_level(level: Optional[int]) -> int:
    """Calendar-day duration for a task at the given hierarchy level."""
    if not isinstance(level, int) or isinstance(level, bool) or level < 0:
        return DEFAULT_DURATION
    if level in LEVEL_DURATIONS:
        return LEVEL_DURATIONS[level]
    return DEEP_LEVEL_DURATION


def schedule_dates(
    task: Task,
    prior_tasks: Sequence[Task],
    project_start_date: date,
) -> ScheduledDates:
    """
    Compute dates for a task given the tasks already scheduled before it.

    - Child with a scheduled parent: parent start + 2 days per earlier sibling
    - Otherwise: project start + 5 days per earlier epic
    - Due date: start + level duration (weekends included)

    Callers must pass tasks in creation order, parents first.
    """
    duration = duration_for_level(task.hierarchy_level)

    parent = None
    if task.parent_task_id is not None:
        parent = next((t for t in prior_tasks if t.id == task.parent_task_id), None)

    if parent is not None and parent.start_date is not None:
        sibling_index = sum(1 for t in prior_tasks if t.parent_task_id == task.parent_task_id)
        start = parent.start_date + timedelta(days=SIBLING_SPACING_DAYS * sibling_index)
    else:
        if task.parent_task_id is not None:
            logger.debug(f"Parent {task.parent_task_id} of '{task.title}' has no start date; scheduling as top-level")
        epic_index = sum(1 for t in prior_tasks if t.is_epic)
        start = project_start_date + timedelta(days=EPIC_SPACING_DAYS * epic_index)

    return ScheduledDates(
        start_date=start,
        due_date=start + timedelta(days=duration),
        duration_days=duration,
    )
