"""Static extraction of a repository summary from a checked-out tree."""

from __future__ import annotations

import json
import logging
import os
import re
import tomllib
from collections.abc import Iterator
from pathlib import Path
from urllib.parse import urlsplit

from repofuse.models import ApiCall, RepoSummary

logger = logging.getLogger(__name__)

SKIP_DIRS = frozenset(
    {
        "node_modules",
        "bower_components",
        "venv",
        "env",
        "__pycache__",
        "dist",
        "build",
        "out",
        "target",
        "vendor",
        "site-packages",
        "coverage",
    }
)
# Calls made from test suites are not part of the integration surface.
TEST_DIRS = frozenset({"test", "tests", "__tests__", "e2e", "cypress", "spec"})

JS_SOURCE_EXTS = (".js", ".jsx", ".ts", ".tsx", ".mjs", ".cjs", ".vue", ".svelte")
JS_ROUTE_EXTS = (".js", ".ts", ".mjs", ".cjs")
PY_SOURCE_EXTS = (".py",)

MAX_SOURCE_BYTES = 512_000

ENTRY_CANDIDATES = (
    "index.js",
    "index.ts",
    "main.py",
    "app.py",
    "server.js",
    "server.ts",
    "manage.py",
    "main.ts",
    "main.tsx",
    "main.jsx",
    "index.tsx",
    "index.jsx",
    "main.go",
    "main.rs",
)
CONFIG_PATTERNS = (
    ".env.example",
    ".env.sample",
    ".env.template",
    "config.json",
    "config.yaml",
    "config.yml",
    "docker-compose.yml",
    "docker-compose.yaml",
    "Dockerfile",
)
ENV_SAMPLE_FILES = (".env.example", ".env.sample", ".env.template")

# First match wins, so meta-frameworks precede the libraries they bundle.
FRAMEWORK_TABLE: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("nextjs", ("next",)),
    ("react", ("react",)),
    ("vue", ("vue", "nuxt")),
    ("svelte", ("svelte", "@sveltejs/kit")),
    ("angular", ("@angular/core",)),
    ("nestjs", ("@nestjs/core",)),
    ("express", ("express",)),
    ("fastify", ("fastify",)),
    ("koa", ("koa",)),
    ("fastapi", ("fastapi",)),
    ("flask", ("flask",)),
    ("django", ("django",)),
)

LANGUAGE_MANIFESTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("python", ("requirements.txt", "pyproject.toml", "setup.py", "Pipfile")),
    ("go", ("go.mod",)),
    ("rust", ("Cargo.toml",)),
    ("java", ("pom.xml", "build.gradle", "build.gradle.kts")),
    ("ruby", ("Gemfile",)),
    ("php", ("composer.json",)),
)

HTTP_VERBS = "get|post|put|delete|patch"
CLIENT_RECEIVERS = frozenset(
    {"axios", "api", "http", "client", "apiClient", "instance", "request", "$http", "ky"}
)

_JS_ROUTE_RE = re.compile(
    r"(?P<recv>[A-Za-z_$][\w$]*)\s*\.\s*(?P<verb>" + HTTP_VERBS + r"|all)"
    r"\s*\(\s*(?P<q>['\"`])(?P<path>/[^'\"`]*)(?P=q)",
    re.IGNORECASE,
)
_PY_ROUTE_RE = re.compile(
    r"@(?P<recv>\w+)\.(?P<verb>" + HTTP_VERBS + r"|route|api_route)"
    r"\s*\(\s*[rf]?(?P<q>['\"])(?P<path>[^'\"]*)(?P=q)",
    re.IGNORECASE,
)
_DJANGO_PATH_RE = re.compile(r"\b(?:re_)?path\s*\(\s*r?(?P<q>['\"])(?P<path>[^'\"]*)(?P=q)")

_FETCH_RE = re.compile(r"\bfetch\s*\(\s*(?P<q>['\"`])(?P<url>[^'\"`]*)(?P=q)")
_FETCH_METHOD_RE = re.compile(r"method\s*:\s*['\"`](?P<method>\w+)['\"`]", re.IGNORECASE)
_JS_CLIENT_RE = re.compile(
    r"(?P<recv>[A-Za-z_$][\w$]*)\s*\.\s*(?P<verb>" + HTTP_VERBS + r")"
    r"\s*\(\s*(?P<q>['\"`])(?P<url>[^'\"`]*)(?P=q)",
    re.IGNORECASE,
)
_TEMPLATE_RE = re.compile(r"\$\{[^}]*\}(?P<path>/[A-Za-z0-9/_\-.${}]*)")
_PY_CLIENT_RE = re.compile(
    r"\b(?:requests|httpx|client|session)\.(?P<verb>" + HTTP_VERBS + r")"
    r"\s*\(\s*[rf]?(?P<q>['\"])(?P<url>[^'\"]*)(?P=q)",
    re.IGNORECASE,
)
_JS_PLACEHOLDER_RE = re.compile(r"\$\{[^}]*\}")
_PY_PLACEHOLDER_RE = re.compile(r"\{[^}/]*\}")
_REQUIREMENT_RE = re.compile(r"^\s*([A-Za-z0-9_.\-\[\]]+)\s*(.*)$")


def detect_language(root: Path) -> str | None:
    if (root / "package.json").is_file():
        return "typescript" if (root / "tsconfig.json").is_file() else "javascript"
    for language, manifests in LANGUAGE_MANIFESTS:
        if any((root / name).is_file() for name in manifests):
            return language
    return None


def _read_text(path: Path, limit: int = MAX_SOURCE_BYTES) -> str:
    try:
        with path.open("r", encoding="utf-8", errors="replace") as handle:
            return handle.read(limit)
    except OSError:
        return ""


def _requirement_name(spec: str) -> tuple[str, str] | None:
    line = spec.split("#", 1)[0].split(";", 1)[0].strip()
    if not line or line.startswith("-") or "://" in line:
        return None
    match = _REQUIREMENT_RE.match(line)
    if match is None:
        return None
    name = match.group(1).split("[", 1)[0].lower()
    version = match.group(2).strip() or "*"
    return name, version


def read_dependencies(root: Path) -> dict[str, str]:
    deps: dict[str, str] = {}
    package_json = root / "package.json"
    if package_json.is_file():
        try:
            pkg = json.loads(_read_text(package_json))
        except json.JSONDecodeError:
            logger.warning("Unparseable package.json in %s", root)
            pkg = {}
        if isinstance(pkg, dict):
            for section in ("dependencies", "devDependencies"):
                values = pkg.get(section)
                if isinstance(values, dict):
                    deps.update({str(k): str(v) for k, v in values.items()})

    requirements = root / "requirements.txt"
    if requirements.is_file():
        for line in _read_text(requirements).splitlines():
            parsed = _requirement_name(line)
            if parsed is not None:
                deps.setdefault(*parsed)

    pyproject = root / "pyproject.toml"
    if pyproject.is_file():
        try:
            data = tomllib.loads(_read_text(pyproject))
        except tomllib.TOMLDecodeError:
            logger.warning("Unparseable pyproject.toml in %s", root)
            data = {}
        project = data.get("project", {})
        for item in project.get("dependencies", []) if isinstance(project, dict) else []:
            parsed = _requirement_name(str(item))
            if parsed is not None:
                deps.setdefault(*parsed)
        poetry = data.get("tool", {}).get("poetry", {}).get("dependencies", {})
        if isinstance(poetry, dict):
            for name, version in poetry.items():
                if name.lower() != "python":
                    deps.setdefault(name.lower(), version if isinstance(version, str) else "*")
    return deps


def detect_framework(dependencies: dict[str, str]) -> str | None:
    names = {name.lower() for name in dependencies}
    for framework, packages in FRAMEWORK_TABLE:
        if any(package in names for package in packages):
            return framework
    return None


def find_entry_points(root: Path) -> list[str]:
    found: list[str] = []
    for base in ("", "src"):
        for candidate in ENTRY_CANDIDATES:
            rel = f"{base}/{candidate}" if base else candidate
            if (root / rel).is_file():
                found.append(rel)
    package_json = root / "package.json"
    if package_json.is_file():
        try:
            main = json.loads(_read_text(package_json)).get("main")
        except (json.JSONDecodeError, AttributeError):
            main = None
        if isinstance(main, str):
            rel = main.removeprefix("./")
            if (root / rel).is_file() and rel not in found:
                found.append(rel)
    return found


def find_config_files(root: Path) -> list[str]:
    try:
        names = sorted(entry.name for entry in root.iterdir() if entry.is_file())
    except OSError:
        return []
    return [name for name in names if any(pattern in name for pattern in CONFIG_PATTERNS)]


def read_env_vars(root: Path) -> list[str]:
    """Variable names declared in the first env sample file; values are never read."""
    for name in ENV_SAMPLE_FILES:
        path = root / name
        if not path.is_file():
            continue
        keys: list[str] = []
        for line in _read_text(path).splitlines():
            stripped = line.strip()
            if "=" not in stripped or stripped.startswith("#"):
                continue
            key = stripped.split("=", 1)[0].strip().removeprefix("export ").strip()
            if key and key not in keys:
                keys.append(key)
        return keys
    return []


def iter_source_files(root: Path, exts: tuple[str, ...]) -> Iterator[Path]:
    """Sorted walk that skips hidden and dependency-cache directories."""
    for current, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(
            name for name in dirnames if not name.startswith(".") and name not in SKIP_DIRS
        )
        for filename in sorted(filenames):
            if filename.endswith(exts):
                yield Path(current) / filename


def _in_test_dir(root: Path, path: Path) -> bool:
    parts = path.relative_to(root).parts[:-1]
    return any(part in TEST_DIRS for part in parts)


def _call_path(raw: str, placeholder: re.Pattern[str]) -> str | None:
    url = raw.strip()
    # Leading base-URL interpolation: `${API_URL}/users` or f"{BASE}/users".
    while True:
        match = placeholder.match(url)
        if match is None:
            break
        url = url[match.end() :]
    if url.startswith(("http://", "https://")):
        url = urlsplit(url).path or "/"
    if not url.startswith("/"):
        return None
    return placeholder.sub("{param}", url)


def extract_routes(root: Path) -> list[str]:
    routes: dict[str, None] = {}
    for path in iter_source_files(root, JS_ROUTE_EXTS + PY_SOURCE_EXTS):
        content = _read_text(path)
        if path.suffix in PY_SOURCE_EXTS:
            for match in _PY_ROUTE_RE.finditer(content):
                route = match.group("path") or "/"
                routes.setdefault(route if route.startswith("/") else f"/{route}", None)
            if path.name == "urls.py":
                for match in _DJANGO_PATH_RE.finditer(content):
                    route = match.group("path").lstrip("^").rstrip("$")
                    routes.setdefault(f"/{route.lstrip('/')}", None)
            continue
        for match in _JS_ROUTE_RE.finditer(content):
            if match.group("recv") in CLIENT_RECEIVERS:
                continue
            routes.setdefault(match.group("path"), None)
    return list(routes)


def _js_calls(content: str, source: str) -> list[ApiCall]:
    calls: list[ApiCall] = []
    covered: list[tuple[int, int]] = []
    for match in _FETCH_RE.finditer(content):
        path = _call_path(match.group("url"), _JS_PLACEHOLDER_RE)
        covered.append(match.span("url"))
        if path is None:
            continue
        tail = content[match.end() : match.end() + 300].split(")", 1)[0]
        method_match = _FETCH_METHOD_RE.search(tail)
        method = method_match.group("method").upper() if method_match else "GET"
        calls.append(ApiCall(method=method, path=path, source=source))
    for match in _JS_CLIENT_RE.finditer(content):
        if match.group("recv") not in CLIENT_RECEIVERS:
            continue
        covered.append(match.span("url"))
        path = _call_path(match.group("url"), _JS_PLACEHOLDER_RE)
        if path is not None:
            calls.append(ApiCall(method=match.group("verb").upper(), path=path, source=source))
    for match in _TEMPLATE_RE.finditer(content):
        start = match.start()
        if any(lo <= start < hi for lo, hi in covered):
            continue
        path = _JS_PLACEHOLDER_RE.sub("{param}", match.group("path")).rstrip(".")
        if len(path) > 1:
            calls.append(ApiCall(method="GET", path=path, source=source))
    return calls


def _py_calls(content: str, source: str) -> list[ApiCall]:
    calls: list[ApiCall] = []
    for match in _PY_CLIENT_RE.finditer(content):
        path = _call_path(match.group("url"), _PY_PLACEHOLDER_RE)
        if path is not None:
            calls.append(ApiCall(method=match.group("verb").upper(), path=path, source=source))
    return calls


def extract_calls(root: Path) -> list[ApiCall]:
    calls: dict[tuple[str, str, str], ApiCall] = {}
    for path in iter_source_files(root, JS_SOURCE_EXTS + PY_SOURCE_EXTS):
        if _in_test_dir(root, path):
            continue
        source = path.relative_to(root).as_posix()
        content = _read_text(path)
        if path.suffix in PY_SOURCE_EXTS:
            found = _py_calls(content, source)
        else:
            found = _js_calls(content, source)
        for call in found:
            calls.setdefault((call.method, call.path, call.source), call)
    return list(calls.values())


def analyze_path(root: Path, url: str) -> RepoSummary:
    """Build the static summary for a checked-out tree. Never raises for content problems."""
    dependencies = read_dependencies(root)
    return RepoSummary(
        url=url,
        language=detect_language(root),
        framework=detect_framework(dependencies),
        entry_points=find_entry_points(root),
        api_routes=extract_routes(root),
        api_calls=extract_calls(root),
        config_files=find_config_files(root),
        env_vars=read_env_vars(root),
        dependencies=dependencies,
    )


def collect_sample(
    root: Path,
    summary: RepoSummary,
    *,
    max_files: int,
    max_bytes: int,
) -> list[tuple[str, str]]:
    """Bounded sample of key files for enrichment prompts."""
    priority: list[str] = ["README.md", "package.json", "requirements.txt", "pyproject.toml"]
    priority.extend(summary.entry_points)
    priority.extend(call.source for call in summary.api_calls)
    for path in iter_source_files(root, JS_ROUTE_EXTS + PY_SOURCE_EXTS):
        if len(priority) > max_files * 4:
            break
        name = path.name.lower()
        if any(token in name for token in ("route", "api", "model", "schema", "server")):
            priority.append(path.relative_to(root).as_posix())

    sample: list[tuple[str, str]] = []
    seen: set[str] = set()
    for rel in priority:
        if len(sample) >= max_files:
            break
        if rel in seen or not (root / rel).is_file():
            continue
        seen.add(rel)
        sample.append((rel, _read_text(root / rel, limit=max_bytes)))
    return sample
