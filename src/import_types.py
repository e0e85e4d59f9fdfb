"""
Document Import — Type Definitions
==================================
Version 1.0 — October 2026

Core data structures for the document-to-project-structure pipeline.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class Complexity(str, Enum):
    """AI-estimated size of a workstream."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskCategory(str, Enum):
    """How a created task sits in the hierarchy."""
    EPIC = "epic"               # Level 0
    TASK = "task"               # Level 1 with a parent
    SUBTASK = "subtask"         # Level 2+ with a parent
    STANDALONE = "standalone"   # Level 1+ whose parent could not be resolved


class StageOutcome(str, Enum):
    """Outcome of a single pipeline stage, used for metrics and logs."""
    OK = "ok"
    SKIPPED = "skipped"         # Collaborator absent or preconditions unmet
    DEGRADED = "degraded"       # Collaborator failed, empty result substituted
    FAILED = "failed"           # Mandatory stage failed


# =============================================================================
# INPUT STRUCTURES
# =============================================================================

@dataclass
class Document:
    """An uploaded document, already converted to text."""
    filename: str
    text: str
    classification: Optional[str] = None  # e.g. "SOW", "Effort", "Requirements"


@dataclass
class Workstream:
    """
    AI-proposed unit of work.
    Consumed once by the hierarchy builder; only `task_id` outlives it.
    """
    id: str
    name: str                     # Matching key
    description: str = ""
    hierarchy_level: Optional[int] = 0
    parent_ref: Optional[str] = None      # Parent name or workstream id
    dependencies: List[str] = field(default_factory=list)  # Workstream ids or names
    estimated_complexity: Complexity = Complexity.MEDIUM
    key_requirements: List[str] = field(default_factory=list)
    document_sections: List[str] = field(default_factory=list)
    suggested_phase: str = "Implementation"
    is_epic: Optional[bool] = None        # Upstream classification, validated by the builder
    effort_hours: Optional[float] = None

    # Annotation written back by the hierarchy builder
    task_id: Optional[str] = None


# =============================================================================
# PERSISTED STRUCTURES
# =============================================================================

@dataclass
class Task:
    """A persisted work item with hierarchy, dates and dependencies."""
    id: Optional[str]             # Assigned by the store on insert
    project_id: str
    title: str
    description: str = ""

    # Hierarchy
    parent_task_id: Optional[str] = None
    hierarchy_level: int = 0
    is_epic: bool = False

    # Scheduling
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    depends_on: List[str] = field(default_factory=list)

    # Resourcing
    assignee: Optional[str] = None
    effort_estimate_hours: Optional[float] = None
    estimate_confidence: Optional[float] = None  # 0..1

    status: str = "To Do"
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class DependencyEdge:
    """`source` must complete before `target`."""
    source_task_id: str
    target_task_id: str
    source_label: str = ""
    target_label: str = ""
    relationship_type: str = "dependency"


@dataclass
class ProjectMember:
    """A user who can be assigned work in a project."""
    user_id: str
    username: str
    full_name: Optional[str] = None


@dataclass
class Phase:
    name: str
    description: str = ""
    timeframe: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    deliverables: List[str] = field(default_factory=list)


@dataclass
class Milestone:
    name: str
    description: str = ""
    timeframe: Optional[str] = None
    due_date: Optional[date] = None
    dependencies: List[str] = field(default_factory=list)


@dataclass
class Timeline:
    """Phases and milestones extracted from the corpus."""
    phases: List[Phase] = field(default_factory=list)
    milestones: List[Milestone] = field(default_factory=list)


@dataclass
class Resource:
    """A person/effort line parsed from an effort document."""
    name: str
    effort_hours: float
    task: Optional[str] = None
    role: Optional[str] = None
    original_effort: Optional[float] = None
    original_unit: Optional[str] = None

    # Filled in by member matching
    user_id: Optional[str] = None
    match_confidence: float = 0.0
    needs_review: bool = True


@dataclass
class ResourceAssignment:
    """A resource matched to a created task."""
    project_id: str
    task_id: str
    task_title: str
    user_id: str
    user_name: str
    effort_hours: float
    match_confidence: float = 1.0
    id: Optional[str] = None


@dataclass
class ChecklistItem:
    text: str
    required: bool = False


@dataclass
class ChecklistSection:
    name: str
    items: List[ChecklistItem] = field(default_factory=list)
    order: int = 0


@dataclass
class Checklist:
    """AI-generated checklist attached to a task."""
    project_id: str
    title: str
    description: str = ""
    related_task_id: Optional[str] = None
    sections: List[ChecklistSection] = field(default_factory=list)
    generation_source: str = "multi-document-import"
    id: Optional[str] = None

    @property
    def item_count(self) -> int:
        return sum(len(s.items) for s in self.sections)


@dataclass
class ImportRun:
    """
    Append-only audit record of one pipeline invocation.
    Written once, at the end, whether the run succeeded or not.
    """
    project_id: str
    user_id: Optional[str] = None
    documents_processed: int = 0
    workstreams_detected: int = 0
    tasks_created: int = 0
    phases_extracted: int = 0
    milestones_extracted: int = 0
    dependencies_created: int = 0
    resource_assignments: int = 0
    checklists_created: int = 0
    checklist_items_created: int = 0
    ai_cost_breakdown: Dict[str, float] = field(default_factory=dict)
    total_ai_cost_usd: float = 0.0
    success: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    duration_ms: int = 0
    created_at: datetime = field(default_factory=datetime.now)
    id: Optional[str] = None


# =============================================================================
# RESULT STRUCTURES
# =============================================================================

@dataclass
class ScheduledDates:
    start_date: date
    due_date: date
    duration_days: int


@dataclass
class HierarchyResult:
    """Outcome of building tasks from workstreams."""
    created: List[Task] = field(default_factory=list)
    epics: List[Task] = field(default_factory=list)
    tasks: List[Task] = field(default_factory=list)
    subtasks: List[Task] = field(default_factory=list)
    standalone: List[Task] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    name_map: Dict[str, str] = field(default_factory=dict)  # workstream name/id -> task id


@dataclass
class DependencyResult:
    """Outcome of the dependency-creation path."""
    dependencies: List[DependencyEdge] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cycles: List[str] = field(default_factory=list)


@dataclass
class ImportResult:
    """Everything one pipeline run produced, returned to the caller."""
    project_id: str
    success: bool = False
    documents_processed: int = 0
    workstreams: List[Workstream] = field(default_factory=list)
    task_ids: List[str] = field(default_factory=list)
    timeline: Timeline = field(default_factory=Timeline)
    dependencies: List[DependencyEdge] = field(default_factory=list)
    resource_assignments: List[ResourceAssignment] = field(default_factory=list)
    resources_needing_review: List[Resource] = field(default_factory=list)
    checklists_created: int = 0
    checklist_items_created: int = 0
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    ai_cost_breakdown: Dict[str, float] = field(default_factory=dict)
    total_cost: float = 0.0
    duration_ms: int = 0
    run_id: Optional[str] = None

    def add_cost(self, stage: str, cost_usd: float) -> None:
        """Record cost reported by a stage and add it to the running total."""
        self.ai_cost_breakdown[stage] = self.ai_cost_breakdown.get(stage, 0.0) + cost_usd
        self.total_cost += cost_usd


class ImportFatalError(Exception):
    """
    Raised when the mandatory workstream detection stage fails.
    The failed run record has already been persisted when this is raised.
    """

    def __init__(self, message: str, result: ImportResult):
        super().__init__(message)
        self.result = result


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================

def _date_or_none(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def task_to_dict(t: Task) -> Dict[str, Any]:
    return {
        "id": t.id,
        "project_id": t.project_id,
        "title": t.title,
        "description": t.description,
        "parent_task_id": t.parent_task_id,
        "hierarchy_level": t.hierarchy_level,
        "is_epic": t.is_epic,
        "start_date": t.start_date.isoformat() if t.start_date else None,
        "due_date": t.due_date.isoformat() if t.due_date else None,
        "depends_on": list(t.depends_on),
        "assignee": t.assignee,
        "effort_estimate_hours": t.effort_estimate_hours,
        "estimate_confidence": t.estimate_confidence,
        "status": t.status,
        "created_at": t.created_at.isoformat(),
    }


def _dict_to_task(data: Dict[str, Any]) -> Task:
    return Task(
        id=data.get("id"),
        project_id=data["project_id"],
        title=data["title"],
        description=data.get("description", ""),
        parent_task_id=data.get("parent_task_id"),
        hierarchy_level=data.get("hierarchy_level", 0),
        is_epic=bool(data.get("is_epic", False)),
        start_date=_date_or_none(data.get("start_date")),
        due_date=_date_or_none(data.get("due_date")),
        depends_on=list(data.get("depends_on") or []),
        assignee=data.get("assignee"),
        effort_estimate_hours=data.get("effort_estimate_hours"),
        estimate_confidence=data.get("estimate_confidence"),
        status=data.get("status", "To Do"),
        created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
    )


def workstream_to_dict(w: Workstream) -> Dict[str, Any]:
    return {
        "id": w.id,
        "name": w.name,
        "description": w.description,
        "hierarchy_level": w.hierarchy_level,
        "parent_ref": w.parent_ref,
        "dependencies": list(w.dependencies),
        "estimated_complexity": w.estimated_complexity.value,
        "key_requirements": list(w.key_requirements),
        "document_sections": list(w.document_sections),
        "suggested_phase": w.suggested_phase,
        "is_epic": w.is_epic,
        "effort_hours": w.effort_hours,
        "task_id": w.task_id,
    }


def dependency_edge_to_dict(e: DependencyEdge) -> Dict[str, Any]:
    return {
        "source_task_id": e.source_task_id,
        "target_task_id": e.target_task_id,
        "source_label": e.source_label,
        "target_label": e.target_label,
        "relationship_type": e.relationship_type,
    }


def _phase_to_dict(p: Phase) -> Dict[str, Any]:
    return {
        "name": p.name,
        "description": p.description,
        "timeframe": p.timeframe,
        "start_date": p.start_date.isoformat() if p.start_date else None,
        "end_date": p.end_date.isoformat() if p.end_date else None,
        "deliverables": list(p.deliverables),
    }


def _milestone_to_dict(m: Milestone) -> Dict[str, Any]:
    return {
        "name": m.name,
        "description": m.description,
        "timeframe": m.timeframe,
        "due_date": m.due_date.isoformat() if m.due_date else None,
        "dependencies": list(m.dependencies),
    }


def timeline_to_dict(t: Timeline) -> Dict[str, Any]:
    return {
        "phases": [_phase_to_dict(p) for p in t.phases],
        "milestones": [_milestone_to_dict(m) for m in t.milestones],
    }


def import_run_to_dict(r: ImportRun) -> Dict[str, Any]:
    return {
        "id": r.id,
        "project_id": r.project_id,
        "user_id": r.user_id,
        "documents_processed": r.documents_processed,
        "workstreams_detected": r.workstreams_detected,
        "tasks_created": r.tasks_created,
        "phases_extracted": r.phases_extracted,
        "milestones_extracted": r.milestones_extracted,
        "dependencies_created": r.dependencies_created,
        "resource_assignments": r.resource_assignments,
        "checklists_created": r.checklists_created,
        "checklist_items_created": r.checklist_items_created,
        "ai_cost_breakdown": dict(r.ai_cost_breakdown),
        "total_ai_cost_usd": r.total_ai_cost_usd,
        "success": r.success,
        "errors": list(r.errors),
        "warnings": list(r.warnings),
        "duration_ms": r.duration_ms,
        "created_at": r.created_at.isoformat(),
    }


def _dict_to_import_run(data: Dict[str, Any]) -> ImportRun:
    return ImportRun(
        id=data.get("id"),
        project_id=data["project_id"],
        user_id=data.get("user_id"),
        documents_processed=data.get("documents_processed", 0),
        workstreams_detected=data.get("workstreams_detected", 0),
        tasks_created=data.get("tasks_created", 0),
        phases_extracted=data.get("phases_extracted", 0),
        milestones_extracted=data.get("milestones_extracted", 0),
        dependencies_created=data.get("dependencies_created", 0),
        resource_assignments=data.get("resource_assignments", 0),
        checklists_created=data.get("checklists_created", 0),
        checklist_items_created=data.get("checklist_items_created", 0),
        ai_cost_breakdown=dict(data.get("ai_cost_breakdown") or {}),
        total_ai_cost_usd=float(data.get("total_ai_cost_usd", 0.0) or 0.0),
        success=bool(data.get("success", False)),
        errors=list(data.get("errors") or []),
        warnings=list(data.get("warnings") or []),
        duration_ms=data.get("duration_ms", 0),
        created_at=datetime.fromisoformat(data["created_at"]) if data.get("created_at") else datetime.now(),
    )


def import_result_to_dict(r: ImportResult) -> Dict[str, Any]:
    """Flatten an ImportResult for API responses and CLI output."""
    return {
        "run_id": r.run_id,
        "project_id": r.project_id,
        "success": r.success,
        "documents_processed": r.documents_processed,
        "workstreams": [workstream_to_dict(w) for w in r.workstreams],
        "task_ids": list(r.task_ids),
        "timeline": timeline_to_dict(r.timeline),
        "dependencies": [dependency_edge_to_dict(e) for e in r.dependencies],
        "resource_assignments": len(r.resource_assignments),
        "resources_needing_review": [res.name for res in r.resources_needing_review],
        "checklists_created": r.checklists_created,
        "checklist_items_created": r.checklist_items_created,
        "errors": list(r.errors),
        "warnings": list(r.warnings),
        "ai_cost_breakdown": dict(r.ai_cost_breakdown),
        "total_cost": r.total_cost,
        "duration_ms": r.duration_ms,
    }
