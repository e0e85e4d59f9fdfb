"""
API Module
==========
Modular FastAPI application for the document import service.
"""

from .types import CreateImportRequest, DocumentPayload, MemberPayload, ImportRunSummary, PaginatedResponse

__all__ = [
    "CreateImportRequest",
    "DocumentPayload",
    "MemberPayload",
    "ImportRunSummary",
    "PaginatedResponse",
]
