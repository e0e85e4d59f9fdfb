"""
Imports API Routes
==================
FastAPI routes for running document imports and reading their records.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.types import CreateImportRequest, ImportFailure, ImportRunSummary, PaginatedResponse
from api.state import get_pipeline, get_store
from import_types import (
    Document,
    ImportFatalError,
    ProjectMember,
    import_result_to_dict,
    import_run_to_dict,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["imports"])

# Rate limiter
limiter = Limiter(key_func=get_remote_address)


def _summary(run) -> ImportRunSummary:
    return ImportRunSummary(**import_run_to_dict(run))


@router.post("/projects/{project_id}/imports", responses={422: {"model": ImportFailure}})
@limiter.limit("10/minute")
async def create_import(request: Request, project_id: str, import_request: CreateImportRequest):
    """
    Run the import pipeline over the posted documents.

    Returns the full import result. A run that aborts during workstream
    detection answers 422 with the partial result; its run record is
    still stored. Rate limited to 10 requests per minute per IP.
    """
    store = get_store()
    pipeline = get_pipeline()

    if import_request.project_name:
        await store.upsert_project(project_id, import_request.project_name, import_request.project_description)
    for member in import_request.members:
        await store.add_project_member(project_id, ProjectMember(**member.model_dump()))

    documents = [Document(**doc.model_dump()) for doc in import_request.documents]
    logger.info(f"📥 Import requested for project {project_id} ({len(documents)} documents)")

    try:
        result = await pipeline.analyze(
            documents,
            project_id,
            user_id=import_request.user_id,
            project_start_date=import_request.project_start_date,
        )
    except ImportFatalError as e:
        raise HTTPException(
            status_code=422,
            detail={"error": str(e), "result": import_result_to_dict(e.result)},
        )
    except Exception as e:
        logger.error(f"❌ Import failed for project {project_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    return import_result_to_dict(result)


@router.get("/projects/{project_id}/imports", response_model=PaginatedResponse[ImportRunSummary])
@limiter.limit("60/minute")
async def list_imports(
    request: Request,
    project_id: str,
    limit: int = Query(default=50, ge=1, le=100, description="Maximum number of runs to return"),
    offset: int = Query(default=0, ge=0, description="Number of runs to skip"),
):
    """List a project's import runs, most recent first."""
    try:
        runs = await get_store().list_runs(project_id)
    except Exception as e:
        logger.error(f"Error listing import runs for {project_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))

    total = len(runs)
    return PaginatedResponse[ImportRunSummary](
        items=[_summary(r) for r in runs[offset:offset + limit]],
        total=total,
        limit=limit,
        offset=offset,
        has_more=offset + limit < total,
    )


@router.get("/imports/{run_id}", response_model=ImportRunSummary)
@limiter.limit("100/minute")
async def get_import(request: Request, run_id: str):
    run = await get_store().load_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="Import run not found")
    return _summary(run)
