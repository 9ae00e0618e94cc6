"""Asynchronous job routes: submit a pipeline run, then poll it."""

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from slowapi import Limiter
from slowapi.util import get_remote_address

from repofuse.services import get_container

router = APIRouter(prefix="/jobs", tags=["api-jobs"])
_limiter = Limiter(key_func=get_remote_address)


class JobInput(BaseModel):
    publish: bool = False


@router.post("")
@_limiter.limit("30/minute")
async def submit_job(request: Request, payload: JobInput | None = None) -> dict[str, object]:
    del request
    container = get_container()
    urls = [record.url for record in container.repos.list()]
    if not urls:
        raise HTTPException(status_code=400, detail="No repositories added")
    publish = payload.publish if payload is not None else False
    job = container.scheduler.submit(urls, publish=publish)
    return {"jobId": job.id, "status": job.status.value}


@router.get("")
def list_jobs() -> dict[str, object]:
    return {"jobs": [job.to_dict() for job in get_container().scheduler.list()]}


@router.get("/{job_id}")
def get_job(job_id: str) -> dict[str, object]:
    job = get_container().scheduler.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="job not found")
    return job.to_dict()
