"""API router aggregation."""

from fastapi import APIRouter

from repofuse.routes.api import jobs, pipeline, repos

router = APIRouter(prefix="/api", tags=["api"])
router.include_router(repos.router)
router.include_router(pipeline.router)
router.include_router(jobs.router)
