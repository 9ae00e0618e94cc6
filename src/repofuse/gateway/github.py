"""Async client for the handful of GitHub REST endpoints the publisher needs."""

from __future__ import annotations

import base64
import logging
from typing import Any

import httpx

from repofuse.config import Settings, get_settings
from repofuse.errors import GitHubApiError
from repofuse.gateway.retry import SleepFn, call_with_retry

logger = logging.getLogger(__name__)


def _github_headers(token: str) -> dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": "2022-11-28",
        "User-Agent": "Repofuse-Publisher/1.0",
    }


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip() or f"HTTP {response.status_code}"
    if not isinstance(payload, dict):
        return f"HTTP {response.status_code}"
    message = str(payload.get("message") or f"HTTP {response.status_code}")
    details: list[str] = []
    errors = payload.get("errors")
    if isinstance(errors, list):
        for item in errors:
            if isinstance(item, dict):
                text = item.get("message") or item.get("field") or item.get("code")
                if text:
                    details.append(str(text))
            elif isinstance(item, str):
                details.append(item)
    if details:
        message = f"{message}: {'; '.join(details)}"
    return message


class GitHubClient:
    """One ``httpx.AsyncClient`` per instance; use as an async context manager."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> GitHubClient:
        settings = self._settings
        self._client = httpx.AsyncClient(
            base_url=settings.github_api_base_url.rstrip("/"),
            headers=_github_headers(settings.github_token),
            timeout=max(5, int(settings.github_timeout_seconds)),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        allow_404: bool = False,
    ) -> dict[str, Any] | None:
        if self._client is None:
            raise RuntimeError("GitHubClient used outside of its context manager")
        client = self._client
        settings = self._settings
        extra: dict[str, Any] = {}
        if self._sleep is not None:
            extra["sleep"] = self._sleep
        response = await call_with_retry(
            lambda: client.request(method, path, json=json_body, params=params),
            max_retries=settings.gateway_max_retries,
            backoff_seconds=settings.gateway_backoff_seconds,
            min_wait_seconds=settings.gateway_min_wait_seconds,
            label=f"github {method} {path}",
            **extra,
        )
        if allow_404 and response.status_code == 404:
            return None
        if response.status_code >= 400:
            detail = _error_message(response)
            raise GitHubApiError(
                f"{method} {path} failed: {detail}",
                status_code=response.status_code,
                detail=detail,
            )
        if not response.content:
            return {}
        payload = response.json()
        return payload if isinstance(payload, dict) else {"items": payload}

    async def get_repo(self, owner: str, repo: str) -> dict[str, Any] | None:
        return await self._request("GET", f"/repos/{owner}/{repo}", allow_404=True)

    async def create_fork(
        self, owner: str, repo: str, *, organization: str, name: str
    ) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/forks",
            json_body={"organization": organization, "name": name, "default_branch_only": True},
        )
        return payload or {}

    async def get_branch_sha(self, owner: str, repo: str, branch: str) -> str:
        payload = await self._request("GET", f"/repos/{owner}/{repo}/git/ref/heads/{branch}")
        obj = (payload or {}).get("object")
        sha = obj.get("sha") if isinstance(obj, dict) else None
        if not isinstance(sha, str) or not sha:
            raise GitHubApiError(f"ref heads/{branch} has no sha", status_code=0)
        return sha

    async def create_branch(self, owner: str, repo: str, branch: str, sha: str) -> None:
        await self._request(
            "POST",
            f"/repos/{owner}/{repo}/git/refs",
            json_body={"ref": f"refs/heads/{branch}", "sha": sha},
        )

    async def get_file_sha(self, owner: str, repo: str, path: str, *, ref: str) -> str | None:
        payload = await self._request(
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            params={"ref": ref},
            allow_404=True,
        )
        if not payload:
            return None
        sha = payload.get("sha")
        return sha if isinstance(sha, str) else None

    async def put_file(
        self,
        owner: str,
        repo: str,
        path: str,
        *,
        content: str,
        message: str,
        branch: str,
        sha: str | None = None,
    ) -> None:
        body: dict[str, Any] = {
            "message": message,
            "content": base64.b64encode(content.encode("utf-8")).decode("ascii"),
            "branch": branch,
        }
        if sha:
            body["sha"] = sha
        await self._request("PUT", f"/repos/{owner}/{repo}/contents/{path}", json_body=body)

    async def create_pull(
        self,
        owner: str,
        repo: str,
        *,
        title: str,
        head: str,
        base: str,
        body: str,
    ) -> dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/repos/{owner}/{repo}/pulls",
            json_body={"title": title, "head": head, "base": base, "body": body},
        )
        return payload or {}
