"""
Services Module - Resource Parsing
==================================
Extracts who-works-on-what-for-how-long from an effort document and
records it as resource assignments against the created tasks.

Three formats are recognised:
- markdown tables with task / resource / role / effort columns
- bullets: "- Data Migration: Jane Smith (Engineer) - 16 hours"
- prose: "Jane Smith (Engineer) will spend 2 days on Data Migration"

Effort is normalised to hours (1 day = 8 hours). Tasks are never
modified; assignments are stored as separate records.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from import_types import ProjectMember, Resource, ResourceAssignment, Task
from importer.matching import find_matching_task, levenshtein_distance

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 8
REVIEW_THRESHOLD = 0.9

_EFFORT = re.compile(r"(\d+(?:\.\d+)?)\s*(hours?|days?|hrs?|h|d)?", re.IGNORECASE)
_LIST_LINE = re.compile(
    r"^[-*]\s*([^:]+):\s*([^(]+)\(([^)]+)\)\s*[-–]\s*(\d+(?:\.\d+)?)\s*(hours?|days?|h|d)",
    re.IGNORECASE,
)
_SPEND_SENTENCE = re.compile(
    r"([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\s*\(([^)]+)\)\s+(?:will\s+)?spend\s+(\d+(?:\.\d+)?)\s*(hours?|days?|h|d)\s+on\s+([^.\n]+)",
)
_HANDLED_SENTENCE = re.compile(
    r"([^.\n]+?)\s+will\s+be\s+handled\s+by\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+)+)\s*\(([^)]+)\)\s*[-–]\s*(\d+(?:\.\d+)?)\s*(hours?|days?|h|d)",
)


def normalize_effort_to_hours(value: float, unit: Optional[str]) -> float:
    normalized = (unit or "hours").lower().rstrip("s")
    if normalized in ("day", "d"):
        return value * HOURS_PER_DAY
    if normalized not in ("hour", "h", "hr"):
        logger.warning(f"⚠ Unknown effort unit: {unit}, assuming hours")
    return value


def _resource(name: str, effort: float, unit: Optional[str], task: Optional[str], role: Optional[str]) -> Resource:
    return Resource(
        name=name.strip(),
        effort_hours=normalize_effort_to_hours(effort, unit),
        task=task.strip() if task else None,
        role=role.strip() if role else None,
        original_effort=effort,
        original_unit=unit or "hours",
    )


# =============================================================================
# PARSERS
# =============================================================================

def _column(headers: Sequence[str], *keywords: str) -> int:
    for index, header in enumerate(headers):
        if any(k in header for k in keywords):
            return index
    return -1


def parse_resource_table(text: str) -> List[Resource]:
    """Parse the first markdown table whose header mentions resource, task or effort."""
    lines = text.split("\n")
    header_index = -1
    headers: List[str] = []

    for i, line in enumerate(lines):
        line = line.strip()
        lowered = line.lower()
        if "|" in line and ("resource" in lowered or "task" in lowered or "effort" in lowered):
            headers = [h.strip().lower() for h in line.split("|") if h.strip()]
            header_index = i
            break

    if header_index == -1:
        return []

    task_col = _column(headers, "task", "component", "activity")
    name_col = _column(headers, "resource", "name", "assignee")
    role_col = _column(headers, "role", "position")
    effort_col = _column(headers, "effort", "hour", "time")

    resources = []
    # Skip the header and its separator row
    for line in lines[header_index + 2:]:
        line = line.strip()
        if not line or "|" not in line:
            break
        cells = [c.strip() for c in line.split("|") if c.strip()]
        if len(cells) < 2:
            continue

        def cell(col: int) -> Optional[str]:
            return cells[col] if 0 <= col < len(cells) else None

        effort, unit = None, "hours"
        effort_text = cell(effort_col)
        if effort_text:
            match = _EFFORT.search(effort_text)
            if match:
                effort = float(match.group(1))
                unit = match.group(2) or "hours"

        name = cell(name_col)
        if name and effort:
            resources.append(_resource(name, effort, unit, cell(task_col), cell(role_col)))

    return resources


def parse_resource_list(text: str) -> List[Resource]:
    resources = []
    for line in text.split("\n"):
        match = _LIST_LINE.match(line.strip())
        if match:
            resources.append(_resource(
                name=match.group(2),
                effort=float(match.group(4)),
                unit=match.group(5),
                task=match.group(1),
                role=match.group(3),
            ))
    return resources


def parse_resource_paragraphs(text: str) -> List[Resource]:
    resources = []
    for match in _SPEND_SENTENCE.finditer(text):
        resources.append(_resource(
            name=match.group(1),
            effort=float(match.group(3)),
            unit=match.group(4),
            task=match.group(5),
            role=match.group(2),
        ))
    for match in _HANDLED_SENTENCE.finditer(text):
        resources.append(_resource(
            name=match.group(2),
            effort=float(match.group(4)),
            unit=match.group(5),
            task=match.group(1),
            role=match.group(3),
        ))
    return resources


def deduplicate_resources(resources: Sequence[Resource]) -> List[Resource]:
    """Keep the first resource for each (name, task) pair."""
    seen = set()
    unique = []
    for resource in resources:
        key = f"{resource.name}::{resource.task or 'unknown'}".lower()
        if key in seen:
            logger.debug(f"Skipping duplicate: {resource.name} on {resource.task}")
            continue
        seen.add(key)
        unique.append(resource)
    return unique


def parse_resources(text: str) -> List[Resource]:
    """Run every parser over the text and de-duplicate the results."""
    found = parse_resource_table(text) + parse_resource_list(text) + parse_resource_paragraphs(text)
    unique = deduplicate_resources(found)
    logger.info(f"📊 Resources extracted: {len(found)} ({len(unique)} unique)")
    return unique


# =============================================================================
# MEMBER MATCHING
# =============================================================================

def find_matching_member(
    resource_name: str,
    members: Sequence[ProjectMember],
    max_distance: int = 3,
) -> Optional[Tuple[ProjectMember, float]]:
    """
    Match a resource name to a project member with a confidence score.

    1. Exact username match: 1.0
    2. First name equals the first segment of the username: 0.8
    3. Closest username within `max_distance` edits: scaled, floor 0.6
    """
    normalized = resource_name.lower().strip()
    if not normalized:
        return None

    for member in members:
        if member.username.lower() == normalized:
            return member, 1.0

    first_name = normalized.split()[0]
    for member in members:
        if re.split(r"[.\-_]", member.username.lower())[0] == first_name:
            return member, 0.8

    best, best_distance = None, None
    for member in members:
        distance = levenshtein_distance(normalized, member.username.lower())
        if best_distance is None or distance < best_distance:
            best, best_distance = member, distance

    if best is not None and best_distance <= max_distance:
        confidence = 1 - best_distance / max(len(normalized), len(best.username))
        return best, max(0.6, confidence)
    return None


def match_resources_to_members(resources: Sequence[Resource], members: Sequence[ProjectMember]) -> None:
    """Annotate resources in place with user id, confidence and review flag."""
    for resource in resources:
        match = find_matching_member(resource.name, members)
        if match is None:
            resource.user_id = None
            resource.match_confidence = 0.0
            resource.needs_review = True
            logger.warning(f"⚠ No member match for: {resource.name}")
            continue
        member, confidence = match
        resource.user_id = member.user_id
        resource.match_confidence = confidence
        resource.needs_review = confidence < REVIEW_THRESHOLD
        logger.debug(f"Matched '{resource.name}' → {member.username} ({confidence:.0%})")


# =============================================================================
# PARSER SERVICE
# =============================================================================

@dataclass
class ResourceParseResult:
    resources: List[Resource] = field(default_factory=list)
    assignments: List[ResourceAssignment] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def needs_review(self) -> List[Resource]:
        return [r for r in self.resources if r.needs_review]


class ResourceParser:
    """Parses an effort document and stores assignments for matched tasks."""

    def __init__(self, max_distance: int = 3):
        self.max_distance = max_distance

    async def parse_and_assign(
        self,
        text: str,
        project_id: str,
        tasks: Sequence[Task],
        store,
    ) -> ResourceParseResult:
        result = ResourceParseResult(resources=parse_resources(text))
        if not result.resources:
            result.warnings.append("No resources found in effort document")
            return result

        members = await store.list_project_members(project_id)
        if not members:
            result.warnings.append("No project members found - skipping resource matching")
            return result

        match_resources_to_members(result.resources, members)

        for resource in result.resources:
            if not resource.task or not resource.user_id:
                logger.debug(f"Skipping assignment for {resource.name}: missing task or member")
                continue

            task = find_matching_task(resource.task, tasks, max_distance=self.max_distance)
            if task is None:
                result.warnings.append(f'No task found for resource task "{resource.task}"')
                continue

            assignment = ResourceAssignment(
                project_id=project_id,
                task_id=task.id,
                task_title=task.title,
                user_id=resource.user_id,
                user_name=resource.name,
                effort_hours=resource.effort_hours,
                match_confidence=resource.match_confidence,
            )
            try:
                await store.insert_assignment(assignment)
            except Exception as e:
                result.warnings.append(f"Failed to assign {resource.name} to \"{task.title}\": {e}")
                logger.error(f"❌ Error assigning {resource.name}: {e}")
                continue
            result.assignments.append(assignment)
            logger.info(f"✓ Assigned {resource.name} to '{task.title}' ({resource.effort_hours} hours)")

        return result
