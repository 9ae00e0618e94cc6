"""Repofuse exception hierarchy.

All repofuse-specific exceptions inherit from RepofuseError,
enabling structured error handling and cleaner catch clauses.
"""


class RepofuseError(Exception):
    """Base exception for all repofuse errors."""

    def __init__(self, message: str = "", *, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class CloneError(RepofuseError):
    """Repository could not be fetched into the scratch workspace."""


class EnrichmentError(RepofuseError):
    """Completion-backed enrichment failed or returned unusable output."""


class InvalidUrlError(RepofuseError):
    """Repository URL cannot be parsed into owner/name."""


class GatewayError(RepofuseError):
    """Error communicating with a remote API."""

    def __init__(self, message: str = "", *, retryable: bool = True) -> None:
        super().__init__(message, retryable=retryable)


class RateLimitExceeded(GatewayError):
    """Remote API kept rate limiting after all retries were spent."""

    def __init__(self, message: str = "", *, attempts: int = 0) -> None:
        super().__init__(message, retryable=True)
        self.attempts = attempts


class GitHubApiError(GatewayError):
    """Non-success response from the code-hosting API."""

    def __init__(self, message: str = "", *, status_code: int = 0, detail: str = "") -> None:
        super().__init__(message, retryable=status_code >= 500)
        self.status_code = status_code
        self.detail = detail or message


class PublishError(RepofuseError):
    """Publishing generated artifacts to one repository failed."""


class PipelineError(RepofuseError):
    """Pipeline cannot continue for a reason not attributable to one repository."""


class ConfigError(RepofuseError):
    """Invalid or missing configuration."""
