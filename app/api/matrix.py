"""API endpoints for data matrix generation, rows and Schema-1."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query

from app.chains.extract_schema_one import extract_schema_one
from app.core.exceptions import PipelineError
from app.core.job_registry import get_job_registry, matrix_job_id
from app.core.logging import get_logger
from app.core.matrix_pipeline import generate_data_matrix
from app.core.schemas_matrix import GenerateRequest, GenerateResponse
from app.db.matrix import get_schema_one, list_data_mapping_rows, list_matrix_rows
from app.db.verticals import get_vertical_context

logger = get_logger(__name__)

router = APIRouter()


def require_vertical(vertical_id: str) -> dict[str, Any]:
    """Load a vertical or raise 404."""
    vertical = get_vertical_context(vertical_id)
    if not vertical:
        raise HTTPException(status_code=404, detail="Vertical not found")
    return vertical


@router.post("/matrix/generate", response_model=GenerateResponse)
async def trigger_matrix_generation(request: GenerateRequest) -> GenerateResponse:
    """
    Start data matrix generation for a vertical.

    A second trigger while a run is in progress returns the running job
    instead of starting another.

    Args:
        request: GenerateRequest with vertical_id

    Returns:
        GenerateResponse with the job id to subscribe to

    Raises:
        HTTPException 404: If vertical not found
    """
    try:
        require_vertical(request.vertical_id)

        registry = get_job_registry()
        job_id = matrix_job_id(request.vertical_id)
        if registry.is_running(job_id):
            return GenerateResponse(job_id=job_id, status="already_running")

        registry.start(
            job_id,
            lambda emit: generate_data_matrix(request.vertical_id, on_progress=emit),
        )

        logger.info(
            f"Triggered matrix generation for vertical {request.vertical_id}",
            extra={"vertical_id": request.vertical_id, "job_id": job_id},
        )
        return GenerateResponse(job_id=job_id, status="started")

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to trigger matrix generation for {request.vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to start matrix generation") from e


@router.get("/matrix")
async def get_matrix_rows(
    vertical_id: str = Query(..., min_length=1, description="Vertical ID"),
) -> dict:
    """
    List the vertical's current matrix rows, highest risk first.

    Returns:
        Dict with rows and count
    """
    try:
        rows = list_matrix_rows(vertical_id)
        return {"rows": rows, "count": len(rows)}

    except Exception as e:
        logger.exception(f"Failed to list matrix rows for vertical {vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve matrix rows") from e


@router.get("/matrix/mapping")
async def get_data_mapping_rows(
    vertical_id: str = Query(..., min_length=1, description="Vertical ID"),
) -> dict:
    """
    List the vertical's data-mapping rows (from Schema-1 extraction) by s_no.

    Returns:
        Dict with rows and count
    """
    try:
        rows = list_data_mapping_rows(vertical_id)
        return {"rows": rows, "count": len(rows)}

    except Exception as e:
        logger.exception(f"Failed to list data mapping rows for vertical {vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve data mapping rows") from e


@router.post("/matrix/schema-one")
async def generate_schema_one(request: GenerateRequest) -> dict:
    """
    Extract Schema-1 and data-mapping rows from the vertical's transcripts.

    Runs inline (two LLM calls) and returns once both are stored.

    Raises:
        HTTPException 404: If vertical not found
        HTTPException 500: If generation fails unexpectedly
        PreconditionError: No transcript text (400 via the app handler)
        GenerationError: LLM calls failed (500 via the app handler)
    """
    try:
        require_vertical(request.vertical_id)
        result = await extract_schema_one(request.vertical_id)
        return {
            "success": True,
            "row_count": result["row_count"],
            "message": f"Generated {result['row_count']} data mapping rows.",
        }

    except (HTTPException, PipelineError):
        raise
    except Exception as e:
        logger.exception(f"Schema-1 generation failed for vertical {request.vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to generate Schema-1") from e


@router.get("/matrix/schema-one")
async def read_schema_one(
    vertical_id: str = Query(..., min_length=1, description="Vertical ID"),
) -> dict:
    """
    Get the stored Schema-1 document.

    Returns:
        Dict with meta, nodes, flows (empty when none is stored)
    """
    try:
        schema = get_schema_one(vertical_id)
        if not schema:
            return {"meta": None, "nodes": [], "flows": []}
        return {
            "meta": schema.get("meta"),
            "nodes": schema.get("nodes") or [],
            "flows": schema.get("flows") or [],
        }

    except Exception as e:
        logger.exception(f"Failed to get Schema-1 for vertical {vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve Schema-1") from e
