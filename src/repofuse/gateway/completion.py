"""Completion client for OpenAI-compatible chat completion APIs (Groq by default)."""

from __future__ import annotations

import json
import re
from typing import Any

import httpx

from repofuse.config import Settings, get_settings
from repofuse.errors import EnrichmentError, GatewayError
from repofuse.gateway.retry import SleepFn, call_with_retry

_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")


def extract_json(text: str) -> Any:
    """Decode the JSON payload of a model reply.

    Accepts a fenced ```json block or a bare object/array, and tolerates
    trailing commas before a closing bracket.
    """
    match = _FENCED_JSON_RE.search(text)
    candidate = match.group(1) if match else text
    candidate = candidate.strip()
    if not candidate.startswith(("{", "[")):
        start = min(
            (idx for idx in (candidate.find("{"), candidate.find("[")) if idx >= 0),
            default=-1,
        )
        if start < 0:
            raise EnrichmentError("completion reply contains no JSON")
        candidate = candidate[start:]
    candidate = _TRAILING_COMMA_RE.sub(r"\1", candidate)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass
    # Tolerate prose after the payload.
    try:
        decoded, _end = json.JSONDecoder().raw_decode(candidate)
    except json.JSONDecodeError as exc:
        raise EnrichmentError(f"completion reply is not valid JSON: {exc}") from exc
    return decoded


class CompletionClient:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: SleepFn | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return self._settings.enrichment_enabled

    @staticmethod
    def _parse_text(payload: object) -> str:
        if not isinstance(payload, dict):
            raise GatewayError("completion response is not an object", retryable=False)
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices:
            raise GatewayError("completion response missing choices", retryable=False)
        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        if not isinstance(message, dict):
            raise GatewayError("completion response message missing", retryable=False)
        content = message.get("content")
        return content if isinstance(content, str) else ""

    async def complete(
        self,
        prompt: str,
        *,
        system: str | None = None,
        temperature: float = 0.1,
    ) -> str:
        settings = self._settings
        if not self.enabled:
            raise EnrichmentError("completion API key is not configured")
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        body: dict[str, object] = {
            "model": settings.groq_model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": settings.completion_max_tokens,
        }
        endpoint = f"{settings.completion_api_base_url.rstrip('/')}/chat/completions"
        headers = {"Authorization": f"Bearer {settings.groq_api_key}"}
        timeout_seconds = max(5, int(settings.completion_timeout_seconds))
        extra: dict[str, Any] = {}
        if self._sleep is not None:
            extra["sleep"] = self._sleep
        async with httpx.AsyncClient(timeout=timeout_seconds, transport=self._transport) as client:
            response = await call_with_retry(
                lambda: client.post(endpoint, json=body, headers=headers),
                max_retries=settings.gateway_max_retries,
                backoff_seconds=settings.gateway_backoff_seconds,
                min_wait_seconds=settings.gateway_min_wait_seconds,
                label="completion",
                **extra,
            )
        if response.status_code >= 400:
            raise GatewayError(
                f"completion request failed with HTTP {response.status_code}",
                retryable=response.status_code >= 500,
            )
        return self._parse_text(response.json())

    async def complete_json(self, prompt: str, *, system: str | None = None) -> Any:
        text = await self.complete(prompt, system=system)
        return extract_json(text)
