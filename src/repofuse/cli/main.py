"""Click CLI group: serve, analyze, and run commands."""

from __future__ import annotations

import asyncio
import json

import click

from repofuse.config import get_settings
from repofuse.errors import RepofuseError
from repofuse.logging import configure_logging
from repofuse.models import LogKind
from repofuse.pipeline.driver import ProgressEvent, ResultEvent
from repofuse.services import build_container

_KIND_COLORS = {
    LogKind.SUCCESS: "green",
    LogKind.WARNING: "yellow",
    LogKind.ERROR: "red",
}


@click.group()
def cli() -> None:
    """repofuse: analyze, match and integrate frontend and backend repositories."""


@cli.command()
@click.option("--host", type=str, default=None, help="Bind host (default: BIND_HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: BIND_PORT).")
@click.option("--reload", is_flag=True, help="Reload on source changes.")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "repofuse.main:app",
        host=host or settings.bind_host,
        port=port or settings.bind_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@cli.command()
@click.argument("url")
def analyze(url: str) -> None:
    """Analyze one repository URL (or local path) and print its summary as JSON."""
    settings = get_settings()
    configure_logging(settings)
    container = build_container(settings)
    try:
        summary = asyncio.run(container.analyzer.analyze(url))
    except RepofuseError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(summary.to_dict(), indent=2))


async def _run_pipeline(urls: list[str], publish: bool, json_output: bool) -> None:
    container = build_container(get_settings())
    async for event in container.driver.run(urls, publish=publish):
        if isinstance(event, ProgressEvent):
            click.secho(event.message, fg=_KIND_COLORS.get(LogKind(event.kind)))
        elif isinstance(event, ResultEvent) and json_output:
            click.echo(json.dumps(event.result.to_dict(), indent=2))


@cli.command()
@click.argument("urls", nargs=-1, required=True)
@click.option("--publish", is_flag=True, help="Open pull requests with the generated files.")
@click.option("--json", "json_output", is_flag=True, help="Print the full result as JSON.")
def run(urls: tuple[str, ...], publish: bool, json_output: bool) -> None:
    """Run the full pipeline in-process, echoing progress."""
    settings = get_settings()
    configure_logging(settings)
    try:
        asyncio.run(_run_pipeline(list(urls), publish, json_output))
    except RepofuseError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    cli()
