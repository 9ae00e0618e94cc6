import json
from pathlib import Path

from repofuse.analysis.static import (
    analyze_path,
    collect_sample,
    detect_framework,
    detect_language,
    extract_calls,
    extract_routes,
    find_entry_points,
    read_dependencies,
    read_env_vars,
)


def test_express_backend_summary(sample_repos: dict[str, Path]) -> None:
    summary = analyze_path(sample_repos["api"], "https://github.com/acme/api")
    assert summary.language == "javascript"
    assert summary.framework == "express"
    assert summary.role == "backend"
    assert summary.entry_points == ["server.js"]
    assert summary.api_routes == ["/users", "/users/:id", "/orders"]
    assert summary.api_calls == []
    assert summary.env_vars == ["PORT", "DATABASE_URL"]
    assert summary.config_files == [".env.example"]
    assert summary.dependencies == {"express": "^4.18.2"}
    assert summary.enhanced is False


def test_react_frontend_calls(sample_repos: dict[str, Path]) -> None:
    summary = analyze_path(sample_repos["web"], "https://github.com/acme/web")
    assert summary.framework == "react"
    assert summary.role == "frontend"
    assert summary.entry_points == ["src/main.jsx"]
    calls = [(call.method, call.path, call.source) for call in summary.api_calls]
    assert calls == [
        ("GET", "/users", "src/App.jsx"),
        ("GET", "/users/{param}", "src/App.jsx"),
        ("PUT", "/profile", "src/App.jsx"),
    ]


def test_calls_in_test_directories_are_ignored(sample_repos: dict[str, Path]) -> None:
    paths = [call.path for call in extract_calls(sample_repos["web"])]
    assert "/only-in-tests" not in paths


def test_reanalysis_is_stable(sample_repos: dict[str, Path]) -> None:
    first = analyze_path(sample_repos["api"], "https://github.com/acme/api")
    second = analyze_path(sample_repos["api"], "https://github.com/acme/api")
    assert first.api_routes == second.api_routes
    assert first.to_dict() == second.to_dict()


def test_fastapi_backend(tmp_path: Path, write_tree) -> None:
    root = write_tree(
        tmp_path / "svc",
        {
            "requirements.txt": "fastapi==0.110.0\nuvicorn[standard]>=0.29  # server\n-e .\n",
            "main.py": (
                "from fastapi import FastAPI\n"
                "app = FastAPI()\n\n"
                '@app.get("/items/{item_id}")\n'
                "def read_item(item_id: int):\n"
                "    return {}\n\n"
                "@app.post('/items')\n"
                "def create_item():\n"
                "    return {}\n"
            ),
        },
    )
    summary = analyze_path(root, "https://github.com/acme/svc")
    assert summary.language == "python"
    assert summary.framework == "fastapi"
    assert summary.entry_points == ["main.py"]
    assert summary.api_routes == ["/items/{item_id}", "/items"]
    assert summary.dependencies == {"fastapi": "==0.110.0", "uvicorn": ">=0.29"}


def test_django_urls_and_python_client_calls(tmp_path: Path, write_tree) -> None:
    root = write_tree(
        tmp_path / "dj",
        {
            "pyproject.toml": '[project]\nname = "dj"\ndependencies = ["Django>=5.0", "requests"]\n',
            "manage.py": "",
            "shop/urls.py": (
                "from django.urls import path\n"
                "urlpatterns = [\n"
                "    path('api/users/<int:pk>/', views.user_detail),\n"
                "]\n"
            ),
            "shop/sync.py": (
                "import requests\n"
                'requests.get(f"{BASE_URL}/users/{user_id}")\n'
                "requests.post('https://billing.example.com/invoices', json={})\n"
            ),
        },
    )
    summary = analyze_path(root, "https://github.com/acme/dj")
    assert summary.framework == "django"
    assert "/api/users/<int:pk>/" in summary.api_routes
    calls = {(call.method, call.path) for call in summary.api_calls}
    assert calls == {("GET", "/users/{param}"), ("POST", "/invoices")}


def test_client_receivers_are_calls_not_routes(tmp_path: Path, write_tree) -> None:
    root = write_tree(
        tmp_path / "spa",
        {
            "package.json": json.dumps({"dependencies": {"vue": "^3.4.0", "axios": "^1.6.0"}}),
            "tsconfig.json": "{}",
            "src/api.ts": (
                "import axios from 'axios';\n"
                "export const create = (data) => axios.post('/api/orders', data);\n"
                "export const one = (id) => api.get(`/orders/${id}`);\n"
            ),
            "node_modules/lib/index.js": "app.get('/vendored', handler);\n",
        },
    )
    assert extract_routes(root) == []
    calls = {(call.method, call.path) for call in extract_calls(root)}
    assert calls == {("POST", "/api/orders"), ("GET", "/orders/{param}")}
    assert detect_language(root) == "typescript"
    assert detect_framework(read_dependencies(root)) == "vue"


def test_other_language_manifests(tmp_path: Path, write_tree) -> None:
    assert detect_language(write_tree(tmp_path / "go", {"go.mod": "module x\n"})) == "go"
    assert detect_language(write_tree(tmp_path / "rs", {"Cargo.toml": "[package]\n"})) == "rust"
    assert detect_language(write_tree(tmp_path / "jv", {"pom.xml": "<project/>"})) == "java"
    assert detect_language(tmp_path / "empty") is None


def test_nextjs_wins_over_react() -> None:
    assert detect_framework({"next": "14", "react": "18"}) == "nextjs"
    assert detect_framework({"lodash": "4"}) is None


def test_package_main_adds_entry_point(tmp_path: Path, write_tree) -> None:
    root = write_tree(
        tmp_path / "pkg",
        {"package.json": json.dumps({"main": "./lib/start.js"}), "lib/start.js": ""},
    )
    assert find_entry_points(root) == ["lib/start.js"]


def test_env_vars_skip_comments_and_values(tmp_path: Path, write_tree) -> None:
    root = write_tree(
        tmp_path / "env",
        {".env.sample": "# comment\nexport API_KEY=secret\nDEBUG=1\nAPI_KEY=dup\n"},
    )
    assert read_env_vars(root) == ["API_KEY", "DEBUG"]


def test_unparseable_manifest_does_not_raise(tmp_path: Path, write_tree) -> None:
    root = write_tree(tmp_path / "broken", {"package.json": "{not json"})
    summary = analyze_path(root, "https://github.com/acme/broken")
    assert summary.language == "javascript"
    assert summary.dependencies == {}


def test_collect_sample_is_bounded(sample_repos: dict[str, Path]) -> None:
    root = sample_repos["api"]
    summary = analyze_path(root, "https://github.com/acme/api")
    sample = collect_sample(root, summary, max_files=2, max_bytes=20)
    assert [path for path, _text in sample] == ["package.json", "server.js"]
    assert all(len(text) <= 20 for _path, text in sample)
