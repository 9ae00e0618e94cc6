"""Prompt templates for completion-backed enrichment."""

SYSTEM_PROMPT = (
    "You are a senior software engineer reviewing source repositories. "
    "Reply with a single JSON value inside a ```json code block and nothing else."
)

ANALYZE_REPO_PROMPT = """Repository: {url}

A static scan produced this summary:
{static_summary}

Key files (truncated):
{files}

Return a JSON object with these keys:
- "purpose": one sentence describing what the project does
- "type": one of "frontend", "backend", "fullstack", "library", "cli"
- "language": primary language, or null
- "framework": primary framework in lowercase (for example "react", "express", "fastapi"), or null
- "entryPoints": list of entry file paths
- "apiRoutes": list of HTTP route paths the project serves
- "apiCalls": list of {{"method": "GET", "path": "/..."}} HTTP calls the project makes
- "envVars": list of environment variable names the project reads
- "dataModels": list of domain model names
"""

INFER_CALLS_PROMPT = """Frontend repositories and the HTTP calls found statically:
{frontends}

Backend routes:
{routes}

List HTTP calls the frontends most likely make that the static scan missed.
Return a JSON array of {{"method": "GET", "path": "/...", "source": "file or component"}}.
Return [] when nothing is missing.
"""

INTEGRATION_NOTES_PROMPT = """Repositories being integrated:
{repos}

Matched endpoints: {matched}
Calls without a backend route: {missing}
Generated files: {files}

Write concise Markdown integration notes for a developer: how the pieces connect,
which endpoints still need backend work, and the order to start services in.
Return a JSON object {{"notes": "<markdown>"}}.
"""
