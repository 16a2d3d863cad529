"""API endpoints for job status and progress streams."""

import json
from collections.abc import AsyncIterator

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from app.core.job_registry import JobSubscription, get_job_registry
from app.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def list_all_jobs() -> dict:
    """List every job known to this process."""
    jobs = [job.to_dict() for job in get_job_registry().list_jobs()]
    return {"jobs": jobs, "count": len(jobs)}


@router.get("/{job_id}")
async def get_job_status(job_id: str) -> dict:
    """
    Get job status and progress log by job ID.

    Args:
        job_id: Job name (e.g. matrix-<vertical_id>)

    Returns:
        Job snapshot including status, progress, result, error, timestamps

    Raises:
        HTTPException 404: If job not found
    """
    job = get_job_registry().get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_dict()


async def _sse_generator(subscription: JobSubscription) -> AsyncIterator[str]:
    """
    Generate SSE events for a job.

    SSE format:
    data: {json event}

    Ends after the first done/error event.
    """
    try:
        async for event in subscription:
            yield f"data: {json.dumps(event.model_dump(exclude_none=True))}\n\n"
    finally:
        subscription.unsubscribe()
        logger.debug("Progress stream closed", extra={"job_id": subscription.job_id})


@router.get("/{job_id}/stream")
async def stream_job_progress(job_id: str) -> StreamingResponse:
    """
    Stream a job's progress as Server-Sent Events.

    Earlier events are replayed first, so a late subscriber sees the whole log.

    Raises:
        HTTPException 404: If job not found
    """
    subscription = get_job_registry().subscribe(job_id)
    if subscription is None:
        raise HTTPException(status_code=404, detail="Job not found")

    return StreamingResponse(
        _sse_generator(subscription),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable nginx buffering
        },
    )
