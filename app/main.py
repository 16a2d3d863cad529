"""FastAPI application entry point."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import router as api_router
from app.core.exceptions import PipelineError, PreconditionError
from app.core.logging import get_logger

logger = get_logger(__name__)

app = FastAPI(
    title="Privacy Inventory Engine",
    description="Turns interview transcripts into a risk-scored data matrix and data-flow diagrams",
    version="0.1.0",
)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, exc: PipelineError) -> JSONResponse:
    """Map pipeline failures that reach the app: missing inputs -> 400, anything else -> 500."""
    if isinstance(exc, PreconditionError):
        return JSONResponse(content=exc.to_dict(), status_code=400)

    logger.error(f"Pipeline error on {request.url.path}: {exc.message}")
    return JSONResponse(content=exc.to_dict(), status_code=500)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "ok"}, status_code=200)


# Include v1 API router
app.include_router(api_router, prefix="/v1", tags=["v1"])
