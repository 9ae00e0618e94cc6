"""Identifier helpers."""

import hashlib
import re
from uuid import uuid4

_HTTP_REPO_RE = re.compile(r"^https?://[A-Za-z0-9.\-]+(:\d+)?(/[A-Za-z0-9_.\-~]+){2,}(\.git)?$")
_SSH_REPO_RE = re.compile(r"^git@[A-Za-z0-9.\-]+:[A-Za-z0-9_.\-~]+(/[A-Za-z0-9_.\-~]+)+$")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def normalize_repo_url(url: str) -> str:
    return url.strip().rstrip("/")


def is_repo_url(url: str) -> bool:
    """True for ``http(s)://host/owner/name`` and ``git@host:owner/name`` forms."""
    candidate = normalize_repo_url(url)
    return bool(_HTTP_REPO_RE.match(candidate) or _SSH_REPO_RE.match(candidate))


def repo_id_for_url(url: str) -> str:
    digest = hashlib.sha256(normalize_repo_url(url).encode("utf-8")).hexdigest()
    return f"repo_{digest[:16]}"
