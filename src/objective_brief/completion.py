"""Single-call wrapper around an OpenAI-compatible chat-completions endpoint.

The client owns the outbound retry policy (429, 5xx and timeouts share one
budget), the hard per-call timeout, and validation of the response envelope.
Callers only ever see model text or one of the CompletionError subclasses.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx
from openai import APIConnectionError, APIStatusError, APITimeoutError, AsyncOpenAI
from pydantic import ValidationError

from .config import Settings, get_settings
from .errors import (
    CompletionTimeout,
    MalformedEnvelope,
    TransportError,
    UpstreamRejected,
)
from .models import ChatCompletionEnvelope, PromptRequest
from .repair import repair_json
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

LOGGED_BODY_CHARS = 500


def is_retryable_completion_error(exc: BaseException) -> bool:
    if isinstance(exc, UpstreamRejected):
        return exc.retryable
    return isinstance(exc, CompletionTimeout)


def _require_api_key(settings: Settings) -> str:
    if not settings.openai_api_key:
        raise RuntimeError(
            "OPENAI_API_KEY is required. Set it in the environment or .env file."
        )
    return settings.openai_api_key


def _parse_envelope(body: str) -> Dict[str, Any]:
    """Parse the raw response body, falling back to the repair pass once."""
    result = repair_json(body)
    if not result.ok:
        logger.error(
            "Unparseable completion body: %s (%s)", result.error, body[:LOGGED_BODY_CHARS]
        )
        raise MalformedEnvelope(f"Failed to parse completion response: {result.error}")
    if result.repaired:
        logger.info("Completion body needed repair before parsing.")
    if not isinstance(result.value, dict):
        raise MalformedEnvelope("Completion response is not a JSON object.")
    return result.value


class CompletionClient:
    """Issue chat completions with timeout, retry, and envelope validation."""

    def __init__(
        self,
        client: AsyncOpenAI,
        *,
        model: str,
        timeout: float = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be > 0.")
        self._client = client
        self.model = model
        self.timeout = timeout
        self.retry_policy = retry_policy or RetryPolicy(
            retryable=is_retryable_completion_error
        )

    async def complete(self, request: PromptRequest) -> str:
        """Return the text of the first choice; empty content is an error."""
        envelope = await self.complete_envelope(request)
        try:
            text = ChatCompletionEnvelope.model_validate(envelope).text
        except ValidationError as exc:
            raise MalformedEnvelope(f"Unexpected completion envelope: {exc}") from exc
        if not text.strip():
            raise MalformedEnvelope("No content received from the completion endpoint.")
        return text

    async def complete_envelope(self, request: PromptRequest) -> Dict[str, Any]:
        """Return the parsed upstream envelope as-is."""
        return await self.retry_policy.run(
            lambda: self._attempt(request), label=f"Completion ({self.model})"
        )

    async def _attempt(self, request: PromptRequest) -> Dict[str, Any]:
        call = self._client.chat.completions.with_raw_response.create(
            model=self.model,
            temperature=request.temperature,
            messages=request.payload_messages(),
        )
        try:
            raw = await asyncio.wait_for(call, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise CompletionTimeout(
                f"Completion call exceeded {self.timeout:.0f}s and was cancelled."
            ) from exc
        except APITimeoutError as exc:
            raise CompletionTimeout(f"Completion call timed out: {exc}") from exc
        except APIStatusError as exc:
            body = exc.response.text if exc.response is not None else ""
            logger.error(
                "Completion endpoint error. Status: %s, Body: %s",
                exc.status_code,
                body[:LOGGED_BODY_CHARS],
            )
            raise UpstreamRejected(exc.status_code, body) from exc
        except APIConnectionError as exc:
            raise TransportError(f"Could not reach completion endpoint: {exc}") from exc
        return _parse_envelope(raw.text)


def build_completion_client(
    settings: Optional[Settings] = None,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
    sleep=None,
) -> CompletionClient:
    """Create a CompletionClient from settings; separated for easier testing."""
    settings = settings or get_settings()
    api_key = _require_api_key(settings)
    client = AsyncOpenAI(
        api_key=api_key,
        base_url=settings.openai_base_url,
        timeout=settings.request_timeout,
        max_retries=0,
        http_client=http_client,
    )
    policy_kwargs = {} if sleep is None else {"sleep": sleep}
    policy = RetryPolicy(
        max_attempts=settings.max_retries + 1,
        base_delay=settings.retry_base_delay,
        retryable=is_retryable_completion_error,
        **policy_kwargs,
    )
    return CompletionClient(
        client,
        model=settings.model,
        timeout=settings.request_timeout,
        retry_policy=policy,
    )
