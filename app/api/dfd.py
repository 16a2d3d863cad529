"""API endpoints for data-flow diagrams."""

from fastapi import APIRouter, HTTPException, Query

from app.api.matrix import require_vertical
from app.core.dfd_pipeline import convert_schema_to_dfd, generate_dfd
from app.core.exceptions import PreconditionError
from app.core.job_registry import dfd_job_id, get_job_registry
from app.core.logging import get_logger
from app.core.schemas_dfd import ConvertDFDResponse
from app.core.schemas_matrix import GenerateRequest, GenerateResponse
from app.db.dfd import get_dfd_graph

logger = get_logger(__name__)

router = APIRouter()


@router.post("/dfd/generate", response_model=GenerateResponse)
async def trigger_dfd_generation(request: GenerateRequest) -> GenerateResponse:
    """
    Start AI DFD generation from the vertical's matrix rows.

    Raises:
        HTTPException 404: If vertical not found
    """
    try:
        require_vertical(request.vertical_id)

        registry = get_job_registry()
        job_id = dfd_job_id(request.vertical_id)
        if registry.is_running(job_id):
            return GenerateResponse(job_id=job_id, status="already_running")

        registry.start(job_id, lambda emit: generate_dfd(request.vertical_id, on_progress=emit))
        return GenerateResponse(job_id=job_id, status="started")

    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to trigger DFD generation for {request.vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to start DFD generation") from e


@router.post("/dfd/convert", response_model=ConvertDFDResponse)
async def convert_dfd(request: GenerateRequest) -> ConvertDFDResponse:
    """
    Convert the stored Schema-1 to Mermaid and store it as the DFD.

    Raises:
        HTTPException 400: If no valid Schema-1 is stored
    """
    try:
        mermaid_code = convert_schema_to_dfd(request.vertical_id)
        return ConvertDFDResponse(success=True, mermaid_code=mermaid_code)

    except PreconditionError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    except Exception as e:
        logger.exception(f"Failed to convert Schema-1 for vertical {request.vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to generate DFD") from e


@router.get("/dfd")
async def read_dfd(
    vertical_id: str = Query(..., min_length=1, description="Vertical ID"),
) -> dict:
    """Get the vertical's DFD (mermaid_code and graph_data are null when absent)."""
    try:
        graph = get_dfd_graph(vertical_id)
        if not graph:
            return {"mermaid_code": None, "graph_data": None}
        return {"mermaid_code": graph.get("mermaid_code"), "graph_data": graph.get("graph_data")}

    except Exception as e:
        logger.exception(f"Failed to get DFD for vertical {vertical_id}")
        raise HTTPException(status_code=500, detail="Failed to retrieve DFD") from e
