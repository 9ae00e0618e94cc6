"""FastAPI entrypoint."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded as ApiRateLimitExceeded
from slowapi.util import get_remote_address

from repofuse import __version__
from repofuse.config import get_settings, validate_settings_for_env
from repofuse.logging import configure_logging
from repofuse.routes.api import router as api_router
from repofuse.services import get_container

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    validate_settings_for_env(settings)
    configure_logging(settings)
    container = get_container()
    logger.info(
        "repofuse ready (enrichment=%s publishing=%s)",
        settings.enrichment_enabled,
        settings.publishing_enabled,
    )
    yield
    await container.runner.shutdown(timeout_s=float(settings.job_runner_shutdown_timeout_seconds))


limiter = Limiter(key_func=get_remote_address)

app = FastAPI(title="repofuse", version=__version__, lifespan=lifespan)
app.state.limiter = limiter


@app.exception_handler(ApiRateLimitExceeded)
async def _rate_limit_handler(request: Request, exc: ApiRateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"error": "rate limit exceeded", "detail": str(exc.detail)},
    )


settings = get_settings()
cors_origins = settings.cors_origins()
if cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
app.include_router(api_router)
