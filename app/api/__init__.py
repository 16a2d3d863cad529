"""API router for v1 endpoints."""

from fastapi import APIRouter

from app.api import dfd, jobs, matrix

router = APIRouter()

# Data matrix generation, rows and Schema-1
router.include_router(matrix.router, tags=["matrix"])

# Data-flow diagrams
router.include_router(dfd.router, tags=["dfd"])

# Job status and progress streams
router.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
