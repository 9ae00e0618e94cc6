import json
import os
import shutil
from pathlib import Path

import pytest

from repofuse.config import get_settings
from repofuse.errors import CloneError
from repofuse.services import reset_container


@pytest.fixture(autouse=True)
def test_env(tmp_path: Path, monkeypatch):
    os.environ["APP_ENV"] = "test"
    os.environ["WORKSPACE_DIR"] = str(tmp_path / "workspace")
    os.environ["GROQ_API_KEY"] = ""
    os.environ["GITHUB_TOKEN"] = ""
    os.environ["GITHUB_ORG"] = "repofuse"
    os.environ["FORK_SETTLE_SECONDS"] = "3"
    monkeypatch.delenv("GATEWAY_MAX_RETRIES", raising=False)
    get_settings.cache_clear()
    reset_container()
    yield
    get_settings.cache_clear()
    reset_container()


def _write(root: Path, files: dict[str, str]) -> Path:
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root


BACKEND_FILES = {
    "package.json": json.dumps(
        {"name": "api", "main": "server.js", "dependencies": {"express": "^4.18.2"}}
    ),
    "server.js": (
        "const express = require('express');\n"
        "const app = express();\n"
        "app.get('/users', (req, res) => res.json([]));\n"
        "app.get('/users/:id', (req, res) => res.json({}));\n"
        "app.post('/orders', (req, res) => res.status(201).json({}));\n"
        "app.listen(process.env.PORT || 8000);\n"
    ),
    ".env.example": "PORT=8000\nDATABASE_URL=\n",
}

FRONTEND_FILES = {
    "package.json": json.dumps(
        {"name": "web", "dependencies": {"react": "^18.2.0", "react-dom": "^18.2.0"}}
    ),
    "src/main.jsx": "import App from './App';\n",
    "src/App.jsx": (
        "export async function loadUsers() {\n"
        "  const res = await fetch('/users');\n"
        "  return res.json();\n"
        "}\n"
        "export async function loadUser(id) {\n"
        "  return fetch(`${API_URL}/users/${id}`);\n"
        "}\n"
        "export async function saveProfile(body) {\n"
        "  return fetch('/profile', { method: 'PUT', body: JSON.stringify(body) });\n"
        "}\n"
    ),
    "src/__tests__/App.test.jsx": "fetch('/only-in-tests');\n",
}


@pytest.fixture
def write_tree():
    return _write


@pytest.fixture
def sample_repos(tmp_path: Path) -> dict[str, Path]:
    """An Express backend (``api``) and a React frontend (``web``) on disk."""
    return {
        "api": _write(tmp_path / "fixtures" / "api", BACKEND_FILES),
        "web": _write(tmp_path / "fixtures" / "web", FRONTEND_FILES),
    }


@pytest.fixture
def copy_clone(sample_repos: dict[str, Path]):
    """Clone function that copies a fixture tree named after the URL's last segment."""

    def _clone(url: str, target: Path) -> None:
        name = url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git")
        source = sample_repos.get(name)
        if source is None:
            raise CloneError(f"failed to clone {url}: repository not found")
        shutil.copytree(source, target)

    return _clone
