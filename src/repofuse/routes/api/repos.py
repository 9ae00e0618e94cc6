"""Repository registration routes."""

import logging

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from repofuse.ids import is_repo_url
from repofuse.services import get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/repos", tags=["api-repos"])


class RepoInput(BaseModel):
    url: str = Field(min_length=1, max_length=500)


@router.get("")
def list_repos() -> dict[str, object]:
    container = get_container()
    analyzed = {summary.url for summary in container.repos.summaries()}
    return {
        "repos": [
            {**record.to_dict(), "analyzed": record.url in analyzed}
            for record in container.repos.list()
        ]
    }


@router.post("")
def add_repo(payload: RepoInput) -> dict[str, object]:
    if not is_repo_url(payload.url):
        raise HTTPException(status_code=400, detail="Invalid repository URL")
    record, created = get_container().repos.add(payload.url)
    if created:
        logger.info("Registered repository %s as %s", record.url, record.id)
    return record.to_dict()


@router.delete("/{repo_id}")
def delete_repo(repo_id: str) -> dict[str, object]:
    if not get_container().repos.remove(repo_id):
        raise HTTPException(status_code=404, detail="repository not found")
    return {"ok": True, "id": repo_id}
