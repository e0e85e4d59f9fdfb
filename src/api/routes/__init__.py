"""
API Routes
==========
FastAPI route modules for the import API.
"""

from .imports import router as imports_router, limiter
from .observability import router as observability_router

__all__ = [
    "imports_router",
    "observability_router",
    "limiter",
]
