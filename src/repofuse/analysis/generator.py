"""Deterministic glue-artifact templates.

Every artifact is rendered from the summaries and the match result alone,
so the same inputs always produce byte-identical output.
"""

from __future__ import annotations

import re

from repofuse.analysis.matcher import WILDCARD, normalize_path
from repofuse.models import ApiCall, Artifact, GeneratedBundle, MatchResult, RepoSummary

ARTIFACT_DIR = "repofuse"
INTEGRATION_KEYS = ("FRONTEND_URL", "BACKEND_URL", "FRONTEND_PORT", "BACKEND_PORT")
FRONTEND_PORT = 3000
BACKEND_PORT = 8000
PY_FRAMEWORKS = frozenset({"fastapi", "flask", "django"})
BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

_IDENT_RE = re.compile(r"[^A-Za-z0-9]+")


def _artifact(name: str, content: str, target: str) -> Artifact:
    return Artifact(name=name, path=f"{ARTIFACT_DIR}/{name}", content=content, target=target)


def _camel(words: list[str]) -> str:
    parts = [w for w in words if w]
    if not parts:
        return "root"
    head, *rest = parts
    return head.lower() + "".join(word[:1].upper() + word[1:].lower() for word in rest)


def _pascal(word: str) -> str:
    return "".join(piece[:1].upper() + piece[1:] for piece in _IDENT_RE.split(word) if piece)


def _singular(word: str) -> str:
    if word.endswith("ies") and len(word) > 3:
        return word[:-3] + "y"
    if word.endswith("s") and not word.endswith("ss") and len(word) > 1:
        return word[:-1]
    return word


def _route_params(route: str) -> list[tuple[str, bool]]:
    """Segments of ``route`` as ``(text, is_param)``; param text is its name."""
    segments: list[tuple[str, bool]] = []
    used: set[str] = set()
    for raw, norm in zip(
        [part for part in route.split("?", 1)[0].split("#", 1)[0].split("/") if part],
        [part for part in normalize_path(route).split("/") if part],
        strict=True,
    ):
        if norm == WILDCARD or raw.isdigit():
            name = _IDENT_RE.sub("", raw.strip("{}<>:").split(":")[-1]) or "id"
            if raw.isdigit() or name == "param":
                name = "id"
            base = name
            counter = 2
            while name in used:
                name = f"{base}{counter}"
                counter += 1
            used.add(name)
            segments.append((name, True))
        else:
            segments.append((raw, False))
    return segments


def strategy_for(summaries: list[RepoSummary]) -> str:
    return "docker-compose" if len(summaries) > 1 else "monorepo"


def _route_methods(match_result: MatchResult) -> dict[str, str]:
    methods: dict[str, str] = {}
    for pair in match_result.matched:
        methods.setdefault(pair.route, pair.call.method)
    return methods


def render_api_client(routes: list[str], methods: dict[str, str]) -> str:
    lines = [
        "// Generated by repofuse: fetch wrappers for the backend routes.",
        'const BASE_URL = process.env.BACKEND_URL ?? "http://localhost:8000";',
        "",
        "async function request<T>(method: string, path: string, body?: unknown): Promise<T> {",
        "  const response = await fetch(`${BASE_URL}${path}`, {",
        "    method,",
        '    headers: { "Content-Type": "application/json" },',
        "    body: body === undefined ? undefined : JSON.stringify(body),",
        "  });",
        "  if (!response.ok) {",
        "    throw new Error(`${method} ${path} failed with ${response.status}`);",
        "  }",
        "  return (await response.json()) as T;",
        "}",
    ]
    names: set[str] = set()
    for route in routes:
        method = methods.get(route, "GET")
        segments = _route_params(route)
        words = [method.lower()]
        args: list[str] = []
        url_parts: list[str] = []
        for text, is_param in segments:
            if is_param:
                words.extend(["by", text])
                args.append(f"{text}: string | number")
                url_parts.append("${" + text + "}")
            else:
                words.extend(_IDENT_RE.split(text))
                url_parts.append(text)
        name = _camel(words)
        base, counter = name, 2
        while name in names:
            name = f"{base}{counter}"
            counter += 1
        names.add(name)
        if method in BODY_METHODS:
            args.append("body?: unknown")
        url = "/" + "/".join(url_parts)
        call_args = f'"{method}", `{url}`' + (", body" if method in BODY_METHODS else "")
        lines.extend(
            [
                "",
                f"export function {name}({', '.join(args)}): Promise<unknown> {{",
                f"  return request({call_args});",
                "}",
            ]
        )
    return "\n".join(lines) + "\n"


def render_shared_types(routes: list[str], data_models: list[str]) -> str:
    lines = [
        "// Generated by repofuse: response shapes inferred from route names.",
        "",
        "export interface ApiError {",
        "  error: string;",
        "}",
    ]
    seen: set[str] = set()
    for route in routes:
        statics = [text for text, is_param in _route_params(route) if not is_param]
        resource = next((s for s in statics if s.lower() != "api"), None)
        if resource is None:
            continue
        name = _pascal(_singular(resource))
        if not name or name in seen:
            continue
        seen.add(name)
        lines.extend(
            ["", f"export interface {name} {{", "  id: string | number;", "  [key: string]: unknown;", "}"]
        )
    for model in data_models:
        name = _pascal(model)
        if not name or name in seen:
            continue
        seen.add(name)
        lines.extend(["", f"export interface {name} {{", "  [key: string]: unknown;", "}"])
    return "\n".join(lines) + "\n"


def render_cors(framework: str | None) -> tuple[str, str] | None:
    """CORS snippet for the backend framework as ``(filename, content)``."""
    origin_js = "process.env.FRONTEND_URL || 'http://localhost:3000'"
    origin_py = 'os.environ.get("FRONTEND_URL", "http://localhost:3000")'
    if framework == "express":
        body = (
            "// Add to your Express app\n"
            "import cors from 'cors';\n"
            f"app.use(cors({{ origin: {origin_js}, credentials: true }}));\n"
        )
        return "cors.js", body
    if framework == "fastify":
        body = (
            "// Register on your Fastify instance\n"
            "import cors from '@fastify/cors';\n"
            f"await fastify.register(cors, {{ origin: {origin_js}, credentials: true }});\n"
        )
        return "cors.js", body
    if framework == "koa":
        body = (
            "// Add to your Koa app\n"
            "import cors from '@koa/cors';\n"
            f"app.use(cors({{ origin: {origin_js}, credentials: true }}));\n"
        )
        return "cors.js", body
    if framework == "nestjs":
        body = (
            "// Call in main.ts before app.listen()\n"
            f"app.enableCors({{ origin: {origin_js}, credentials: true }});\n"
        )
        return "cors.js", body
    if framework == "fastapi":
        body = (
            "# Add to your FastAPI app\n"
            "import os\n\n"
            "from fastapi.middleware.cors import CORSMiddleware\n\n"
            "app.add_middleware(\n"
            "    CORSMiddleware,\n"
            f"    allow_origins=[{origin_py}],\n"
            "    allow_credentials=True,\n"
            '    allow_methods=["*"],\n'
            '    allow_headers=["*"],\n'
            ")\n"
        )
        return "cors.py", body
    if framework == "flask":
        body = (
            "# Add to your Flask app\n"
            "import os\n\n"
            "from flask_cors import CORS\n\n"
            f"CORS(app, origins=[{origin_py}], supports_credentials=True)\n"
        )
        return "cors.py", body
    if framework == "django":
        body = (
            "# Add to settings.py (requires django-cors-headers)\n"
            "import os\n\n"
            'INSTALLED_APPS += ["corsheaders"]\n'
            'MIDDLEWARE.insert(0, "corsheaders.middleware.CorsMiddleware")\n'
            f"CORS_ALLOWED_ORIGINS = [{origin_py}]\n"
            "CORS_ALLOW_CREDENTIALS = True\n"
        )
        return "cors.py", body
    return None


def _unique_missing(missing: list[ApiCall]) -> list[tuple[str, str]]:
    seen: set[tuple[str, str]] = set()
    unique: list[tuple[str, str]] = []
    for call in missing:
        key = (call.method, normalize_path(call.path))
        if key in seen:
            continue
        seen.add(key)
        unique.append((call.method, call.path))
    return unique


def _styled_path(path: str, style: str) -> str:
    parts: list[str] = []
    for text, is_param in _route_params(path):
        if not is_param:
            parts.append(text)
        elif style == "express":
            parts.append(f":{text}")
        elif style == "flask":
            parts.append(f"<{text}>")
        else:
            parts.append("{" + text + "}")
    return "/" + "/".join(parts)


def render_missing_endpoints(
    missing: list[ApiCall], framework: str | None, language: str | None
) -> tuple[str, str] | None:
    endpoints = _unique_missing(missing)
    if not endpoints:
        return None
    python = framework in PY_FRAMEWORKS or (framework is None and language == "python")
    if python and framework == "flask":
        lines = [
            "# Stub handlers for endpoints the frontend calls but the backend lacks.",
            "from flask import Blueprint, jsonify",
            "",
            'bp = Blueprint("repofuse_missing", __name__)',
        ]
        for index, (method, path) in enumerate(endpoints, start=1):
            lines.extend(
                [
                    "",
                    "",
                    f'@bp.route("{_styled_path(path, "flask")}", methods=["{method}"])',
                    f"def missing_endpoint_{index}(**kwargs):",
                    '    return jsonify({"error": "Not implemented"}), 501',
                ]
            )
        return "missing-endpoints.py", "\n".join(lines) + "\n"
    if python:
        lines = [
            "# Stub handlers for endpoints the frontend calls but the backend lacks.",
            "from fastapi import APIRouter, HTTPException",
            "",
            "router = APIRouter()",
        ]
        for index, (method, path) in enumerate(endpoints, start=1):
            styled = _styled_path(path, "fastapi")
            params = [text for text, is_param in _route_params(path) if is_param]
            signature = ", ".join(f"{name}: str" for name in params)
            lines.extend(
                [
                    "",
                    "",
                    f'@router.{method.lower()}("{styled}")',
                    f"async def missing_endpoint_{index}({signature}):",
                    '    raise HTTPException(status_code=501, detail="Not implemented")',
                ]
            )
        return "missing-endpoints.py", "\n".join(lines) + "\n"

    receiver = "fastify" if framework == "fastify" else "router"
    lines = ["// Stub handlers for endpoints the frontend calls but the backend lacks."]
    if receiver == "router":
        lines.extend(["import { Router } from 'express';", "", "export const router = Router();"])
    else:
        lines.extend(["export default async function missingEndpoints(fastify) {"])
    for method, path in endpoints:
        styled = _styled_path(path, "express")
        if receiver == "router":
            lines.append(
                f"router.{method.lower()}('{styled}', (req, res) => "
                "res.status(501).json({ error: 'Not implemented' }));"
            )
        else:
            lines.append(
                f"  fastify.{method.lower()}('{styled}', async (request, reply) => "
                "reply.code(501).send({ error: 'Not implemented' }));"
            )
    if receiver == "fastify":
        lines.append("}")
    return "missing-endpoints.js", "\n".join(lines) + "\n"


def render_env_file(summaries: list[RepoSummary]) -> str:
    lines = [
        "# Generated .env file for the integrated project",
        "",
        "# Service URLs",
        f"FRONTEND_URL=http://localhost:{FRONTEND_PORT}",
        f"BACKEND_URL=http://localhost:{BACKEND_PORT}",
        "",
        "# Ports",
        f"FRONTEND_PORT={FRONTEND_PORT}",
        f"BACKEND_PORT={BACKEND_PORT}",
    ]
    discovered: list[str] = []
    for summary in summaries:
        for key in summary.env_vars:
            if key not in INTEGRATION_KEYS and key != "PORT" and key not in discovered:
                discovered.append(key)
    if discovered:
        lines.extend(["", "# Application variables"])
        lines.extend(f"{key}=" for key in discovered)
    return "\n".join(lines) + "\n"


def _install_and_run(summary: RepoSummary) -> tuple[str, str] | None:
    if summary.language in ("javascript", "typescript"):
        return "npm install", "npm run dev"
    if summary.language == "python":
        if summary.framework == "django":
            run = "python manage.py runserver"
        elif summary.framework == "flask":
            run = "flask run"
        else:
            run = "python -m uvicorn main:app --reload"
        return "pip install -r requirements.txt", run
    if summary.language == "go":
        return "go mod download", "go run ."
    if summary.language == "rust":
        return "cargo build", "cargo run"
    return None


def render_start_script(summaries: list[RepoSummary], strategy: str) -> str:
    lines = ["#!/bin/bash", "set -e", ""]
    if strategy == "docker-compose":
        lines.extend(
            [
                "# Start all services with Docker Compose",
                "docker compose up -d --build",
                "",
                'echo "Services started:"',
                f'echo "  Frontend: http://localhost:${{FRONTEND_PORT:-{FRONTEND_PORT}}}"',
                f'echo "  Backend:  http://localhost:${{BACKEND_PORT:-{BACKEND_PORT}}}"',
            ]
        )
        return "\n".join(lines) + "\n"
    commands = [(summary.name, _install_and_run(summary)) for summary in summaries]
    lines.append("# Install dependencies")
    for name, pair in commands:
        if pair is not None:
            lines.extend([f'echo "Installing {name}..."', f"(cd {name} && {pair[0]})"])
    lines.extend(["", "# Start services", 'echo "Starting services..."'])
    for name, pair in commands:
        if pair is not None:
            lines.append(f"(cd {name} && {pair[1]}) &")
    lines.append("wait")
    return "\n".join(lines) + "\n"


def render_compose(summaries: list[RepoSummary]) -> str:
    backends = [s.name for s in summaries if s.role == "backend"]
    lines = ["services:"]
    backend_index = 0
    frontend_index = 0
    for summary in summaries:
        if summary.role == "backend":
            port = BACKEND_PORT + backend_index
            backend_index += 1
            host = f"${{BACKEND_PORT:-{port}}}" if port == BACKEND_PORT else str(port)
        else:
            port = FRONTEND_PORT + frontend_index
            frontend_index += 1
            host = f"${{FRONTEND_PORT:-{port}}}" if port == FRONTEND_PORT else str(port)
        lines.extend(
            [
                f"  {summary.name}:",
                f"    build: ./{summary.name}",
                "    ports:",
                f'      - "{host}:{port}"',
                "    env_file:",
                "      - .env",
            ]
        )
        if summary.role == "frontend" and backends:
            lines.append("    depends_on:")
            lines.extend(f"      - {name}" for name in backends)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def render_project_structure(summaries: list[RepoSummary], strategy: str) -> list[str]:
    structure = ["integrated-project/", "├── .env", "├── .env.example"]
    if strategy == "docker-compose":
        structure.append("├── docker-compose.yml")
    structure.extend(["├── start.sh", "├── README.md" if summaries else "└── README.md"])
    for index, summary in enumerate(summaries):
        prefix = "└──" if index == len(summaries) - 1 else "├──"
        structure.append(f"{prefix} {summary.name}/")
    return structure


def render_analysis(summary: RepoSummary, match_result: MatchResult | None = None) -> str:
    """Fallback Markdown report committed when no templated artifact applies to a repo."""
    lines = [
        f"# repofuse analysis: {summary.name}",
        "",
        f"- Repository: {summary.url}",
        f"- Role: {summary.role}",
        f"- Language: {summary.language or 'unknown'}",
        f"- Framework: {summary.framework or 'unknown'}",
        f"- Entry points: {', '.join(summary.entry_points) or 'none found'}",
        f"- Routes declared: {len(summary.api_routes)}",
        f"- Outbound calls: {len(summary.api_calls)}",
    ]
    if summary.purpose:
        lines.extend(["", summary.purpose])
    if summary.env_vars:
        lines.extend(["", "## Environment variables", ""])
        lines.extend(f"- `{key}`" for key in summary.env_vars)
    if match_result is not None and match_result.missing_in_backend:
        lines.extend(["", "## Calls without a backend route", ""])
        lines.extend(
            f"- `{call.method} {call.path}` ({call.source})"
            for call in match_result.missing_in_backend
        )
    return "\n".join(lines) + "\n"


def generate(summaries: list[RepoSummary], match_result: MatchResult) -> GeneratedBundle:
    strategy = strategy_for(summaries)
    backend = next((s for s in summaries if s.role == "backend"), None)
    has_frontend = any(s.role == "frontend" for s in summaries)
    routes = [pair.route for pair in match_result.matched]
    routes = list(dict.fromkeys(routes + match_result.unused_in_backend))
    data_models = [model for s in summaries for model in s.data_models]

    artifacts: list[Artifact] = []
    if has_frontend and routes:
        artifacts.append(
            _artifact(
                "api-client.ts",
                render_api_client(routes, _route_methods(match_result)),
                "frontend",
            )
        )
        artifacts.append(
            _artifact("shared-types.ts", render_shared_types(routes, data_models), "frontend")
        )
    if backend is not None:
        cors = render_cors(backend.framework)
        if cors is not None:
            artifacts.append(_artifact(cors[0], cors[1], "backend"))
        stubs = render_missing_endpoints(
            match_result.missing_in_backend, backend.framework, backend.language
        )
        if stubs is not None:
            artifacts.append(_artifact(stubs[0], stubs[1], "backend"))
    if summaries:
        artifacts.append(_artifact(".env.example", render_env_file(summaries), "all"))
        artifacts.append(
            _artifact("start.sh", render_start_script(summaries, strategy), "backend")
        )
    if strategy == "docker-compose":
        artifacts.append(_artifact("docker-compose.yml", render_compose(summaries), "backend"))

    return GeneratedBundle(
        strategy=strategy,
        artifacts=artifacts,
        project_structure=render_project_structure(summaries, strategy),
    )
