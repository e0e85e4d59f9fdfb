"""
Observability API Routes
========================
Prometheus scrape endpoint and a readiness check for the import service.
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest

import api.state as api_state

logger = logging.getLogger(__name__)

# No /api/v1 prefix: these are scraped by infrastructure, not clients
router = APIRouter(tags=["observability"])


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Import runs, stage outcomes, created tasks and LLM usage in Prometheus text format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
async def health():
    """
    Readiness check.

    Answers 503 until server startup has wired a store and a pipeline.
    """
    ready = api_state.store is not None and api_state.pipeline is not None
    body = {
        "status": "ok" if ready else "starting",
        "store": type(api_state.store).__name__ if api_state.store is not None else None,
        "active_imports": int(REGISTRY.get_sample_value("import_active_runs") or 0),
    }
    if not ready:
        logger.warning("⚠ Health check before store/pipeline initialization")
    return JSONResponse(status_code=200 if ready else 503, content=body)
