"""Application configuration contract."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from repofuse.errors import ConfigError


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = Field(alias="APP_ENV", default="dev")
    log_level: str = Field(alias="LOG_LEVEL", default="INFO")

    # Completion service; an empty key disables enrichment.
    groq_api_key: str = Field(alias="GROQ_API_KEY", default="")
    groq_model: str = Field(alias="GROQ_MODEL", default="llama-3.3-70b-versatile")
    completion_api_base_url: str = Field(
        alias="COMPLETION_API_BASE_URL", default="https://api.groq.com/openai/v1"
    )
    completion_timeout_seconds: int = Field(alias="COMPLETION_TIMEOUT_SECONDS", default=60)
    completion_max_tokens: int = Field(alias="COMPLETION_MAX_TOKENS", default=4096)

    github_token: str = Field(alias="GITHUB_TOKEN", default="")
    github_org: str = Field(alias="GITHUB_ORG", default="repofuse")
    github_api_base_url: str = Field(alias="GITHUB_API_BASE_URL", default="https://api.github.com")
    github_timeout_seconds: int = Field(alias="GITHUB_TIMEOUT_SECONDS", default=30)
    fork_settle_seconds: float = Field(alias="FORK_SETTLE_SECONDS", default=3.0)

    gateway_max_retries: int = Field(alias="GATEWAY_MAX_RETRIES", default=3)
    gateway_backoff_seconds: float = Field(alias="GATEWAY_BACKOFF_SECONDS", default=1.0)
    gateway_min_wait_seconds: float = Field(alias="GATEWAY_MIN_WAIT_SECONDS", default=0.2)

    workspace_dir: str = Field(alias="WORKSPACE_DIR", default="/tmp/repofuse")
    clone_timeout_seconds: int = Field(alias="CLONE_TIMEOUT_SECONDS", default=120)
    enrich_max_files: int = Field(alias="ENRICH_MAX_FILES", default=8)
    enrich_max_bytes: int = Field(alias="ENRICH_MAX_BYTES", default=4000)

    job_runner_max_concurrent: int = Field(alias="JOB_RUNNER_MAX_CONCURRENT", default=4)
    job_runner_shutdown_timeout_seconds: int = Field(
        alias="JOB_RUNNER_SHUTDOWN_TIMEOUT_SECONDS", default=30
    )

    web_cors_origins: str = Field(alias="WEB_CORS_ORIGINS", default="http://localhost:5173")

    # Security: bind host defaults to loopback
    bind_host: str = Field(alias="BIND_HOST", default="127.0.0.1")
    bind_port: int = Field(alias="BIND_PORT", default=8000)

    @property
    def enrichment_enabled(self) -> bool:
        return bool(self.groq_api_key.strip())

    @property
    def publishing_enabled(self) -> bool:
        return bool(self.github_token.strip())

    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.web_cors_origins.split(",") if item.strip()]


def validate_settings_for_env(settings: Settings) -> None:
    import logging as _logging
    import warnings

    _logger = _logging.getLogger(__name__)

    # Warn if binding to 0.0.0.0 in production
    if settings.app_env == "prod" and settings.bind_host == "0.0.0.0":
        msg = (
            "SECURITY WARNING: BIND_HOST=0.0.0.0 in production. "
            "This exposes the API to all network interfaces. "
            "Set BIND_HOST=127.0.0.1 and use a reverse proxy."
        )
        _logger.warning(msg)
        warnings.warn(msg, stacklevel=2)

    if settings.gateway_max_retries < 1:
        raise ConfigError("GATEWAY_MAX_RETRIES must be >= 1")
    if settings.fork_settle_seconds < 0:
        raise ConfigError("FORK_SETTLE_SECONDS must be >= 0")

    if settings.app_env != "prod":
        return

    missing: list[str] = []
    required_non_empty = {
        "GITHUB_ORG": settings.github_org,
        "GITHUB_API_BASE_URL": settings.github_api_base_url,
        "WORKSPACE_DIR": settings.workspace_dir,
    }
    for key, value in required_non_empty.items():
        if not str(value).strip():
            missing.append(key)
    if missing:
        raise ConfigError(f"missing required settings for prod: {', '.join(sorted(missing))}")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
