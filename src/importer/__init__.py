"""
Importer Module - Document Import Core
======================================
Matching, graph validation, scheduling, hierarchy building and the
pipeline that ties them together.
"""

# Re-export all functions for clean imports
from .matching import (
    find_matching_task,
    levenshtein_distance,
    normalize_name,
    resolve_reference,
    DEFAULT_PARENT_RESOLVERS,
)
from .graph_utils import detect_circular_dependencies, validate_dependency_batch, BatchValidation
from .scheduling import schedule_dates, duration_for_level
from .hierarchy import create_hierarchy, categorize_task
from .dependencies import create_dependencies
from .analyzer import ImportPipeline, combine_documents, find_effort_document

__all__ = [
    # Matching
    "find_matching_task",
    "levenshtein_distance",
    "normalize_name",
    "resolve_reference",
    "DEFAULT_PARENT_RESOLVERS",
    # Graph validation
    "detect_circular_dependencies",
    "validate_dependency_batch",
    "BatchValidation",
    # Scheduling
    "schedule_dates",
    "duration_for_level",
    # Hierarchy
    "create_hierarchy",
    "categorize_task",
    # Dependencies
    "create_dependencies",
    # Pipeline
    "ImportPipeline",
    "combine_documents",
    "find_effort_document",
]
