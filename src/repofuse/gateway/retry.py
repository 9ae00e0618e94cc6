"""Rate-limit aware retry loop shared by the remote API clients."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable

import httpx

from repofuse.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

SleepFn = Callable[[float], Awaitable[None]]

_TRY_AGAIN_RE = re.compile(r"try again in\s+([\d.]+)\s*(ms|s)\b", re.IGNORECASE)


def suggested_wait(response: httpx.Response) -> float | None:
    """Server-suggested wait in seconds, from Retry-After or the error text."""
    header = response.headers.get("retry-after")
    if header:
        try:
            return max(0.0, float(header))
        except ValueError:
            pass
    match = _TRY_AGAIN_RE.search(response.text)
    if match is None:
        return None
    value = float(match.group(1))
    if match.group(2).lower() == "ms":
        return value / 1000.0
    return value


def is_rate_limited(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    return response.status_code >= 400 and "rate limit" in response.text.lower()


async def call_with_retry(
    send: Callable[[], Awaitable[httpx.Response]],
    *,
    max_retries: int,
    backoff_seconds: float,
    min_wait_seconds: float,
    sleep: SleepFn = asyncio.sleep,
    label: str = "request",
) -> httpx.Response:
    """Run ``send`` until it returns a response that is not rate limited.

    Each rate-limited attempt waits for the server-suggested delay when one is
    present, otherwise ``backoff_seconds * (attempt + 1)``; every wait is at
    least ``min_wait_seconds``. Non rate-limit responses are returned as-is
    for the caller to interpret.
    """
    attempts = max(1, int(max_retries))
    for attempt in range(attempts):
        response = await send()
        if not is_rate_limited(response):
            return response
        if attempt == attempts - 1:
            break
        wait = suggested_wait(response)
        if wait is None:
            wait = backoff_seconds * (attempt + 1)
        wait = max(wait, min_wait_seconds)
        logger.warning(
            "%s rate limited (attempt %d/%d); retrying in %.2fs",
            label,
            attempt + 1,
            attempts,
            wait,
        )
        await sleep(wait)
    raise RateLimitExceeded(
        f"{label} rate limited after {attempts} attempts", attempts=attempts
    )
