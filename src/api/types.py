"""
API Request/Response Types
===========================
Pydantic models for API request and response validation.
"""

from datetime import date
from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class DocumentPayload(BaseModel):
    """One uploaded document, already converted to text."""
    filename: str
    text: str
    classification: Optional[str] = None


class MemberPayload(BaseModel):
    """Project member available for resource assignment."""
    user_id: str
    username: str
    full_name: Optional[str] = None


class CreateImportRequest(BaseModel):
    """Request model for importing documents into a project."""
    documents: List[DocumentPayload] = Field(min_length=1)
    user_id: Optional[str] = None
    project_name: Optional[str] = None
    project_description: Optional[str] = None
    project_start_date: Optional[date] = None
    members: List[MemberPayload] = Field(default_factory=list)


class ImportRunSummary(BaseModel):
    """Stored audit record of one import run."""
    id: str
    project_id: str
    user_id: Optional[str] = None
    success: bool
    documents_processed: int
    workstreams_detected: int
    tasks_created: int
    phases_extracted: int
    milestones_extracted: int
    dependencies_created: int
    resource_assignments: int
    checklists_created: int
    checklist_items_created: int
    ai_cost_breakdown: Dict[str, float]
    total_ai_cost_usd: float
    errors: List[str]
    warnings: List[str]
    duration_ms: int
    created_at: str


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic paginated list response."""
    items: List[T]
    total: int
    limit: int
    offset: int
    has_more: bool


class ImportFailure(BaseModel):
    """Body returned when an import aborts."""
    error: str
    result: Dict[str, Any]
