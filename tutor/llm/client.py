"""Completion provider client.

Wraps the Anthropic Python SDK behind a small provider-neutral contract:

- request: model, ordered ``{role, content}`` messages, max tokens,
  temperature, opaque user tag
- response: ``{"choices": [{"message": {"content": ...}}],
  "usage": {"prompt_tokens", "completion_tokens", "total_tokens"},
  "model": ...}``

SDK exceptions are translated into :mod:`tutor.errors` here, so nothing
above this module imports ``anthropic``.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Protocol

import anthropic

from tutor.errors import UpstreamNonRetryableError, UpstreamTransientError

logger = logging.getLogger(__name__)

_NOT_CONFIGURED_MSG = "LLM not configured. Set ANTHROPIC_API_KEY."

# Status codes that are never worth retrying.
NON_RETRYABLE_STATUS = frozenset({400, 401, 403, 429})


# ---------------------------------------------------------------------------
# Request dataclass
# ---------------------------------------------------------------------------


@dataclass
class CompletionRequest:
    """One outbound completion call."""

    model: str
    messages: list[dict[str, str]] = field(default_factory=list)
    max_tokens: int = 300
    temperature: float = 0.7
    user: str = ""


class CompletionBackend(Protocol):
    async def complete(self, request: CompletionRequest) -> dict[str, Any]: ...


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class CompletionClient:
    """Async Anthropic client returning contract-shaped completions.

    Parameters
    ----------
    api_key : str | None
        Anthropic API key.  Falls back to the ``ANTHROPIC_API_KEY``
        environment variable when *None*.
    timeout : float
        Per-request timeout in seconds, passed to the SDK.
    client : anthropic.AsyncAnthropic | None
        Pre-built SDK client, mainly for tests.
    """

    def __init__(
        self,
        api_key: str | None = None,
        timeout: float = 30.0,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        if client is not None:
            self._client = client
        elif self.api_key:
            # Retries are owned by RetryPolicy, not the SDK.
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key, timeout=timeout, max_retries=0
            )
        else:
            self._client = None

    @property
    def configured(self) -> bool:
        """Return *True* if a client is available."""
        return self._client is not None

    async def complete(self, request: CompletionRequest) -> dict[str, Any]:
        """Send *request* and return the provider-neutral response dict.

        Raises ``UpstreamNonRetryableError`` or ``UpstreamTransientError``.
        """
        if self._client is None:
            raise UpstreamNonRetryableError(_NOT_CONFIGURED_MSG, status_code=401)

        system_parts = [m["content"] for m in request.messages if m["role"] == "system"]
        messages = [m for m in request.messages if m["role"] != "system"]

        kwargs: dict[str, Any] = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": messages,
        }
        if system_parts:
            kwargs["system"] = "\n\n".join(system_parts)
        if request.user:
            kwargs["metadata"] = {"user_id": request.user}

        start = time.monotonic()
        try:
            response = await self._client.messages.create(**kwargs)
        except (
            anthropic.AuthenticationError,
            anthropic.BadRequestError,
            anthropic.PermissionDeniedError,
            anthropic.RateLimitError,
        ) as exc:
            raise UpstreamNonRetryableError(str(exc), status_code=exc.status_code) from exc
        except anthropic.APIStatusError as exc:
            if exc.status_code in NON_RETRYABLE_STATUS:
                raise UpstreamNonRetryableError(str(exc), status_code=exc.status_code) from exc
            raise UpstreamTransientError(str(exc), status_code=exc.status_code) from exc
        except anthropic.APIConnectionError as exc:
            raise UpstreamTransientError(f"Connection to provider failed: {exc}") from exc

        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug("Completion from %s in %d ms", request.model, latency_ms)
        return to_contract(response)


def to_contract(response: Any) -> dict[str, Any]:
    """Reshape an SDK ``Message`` into the provider-neutral response dict."""
    text_blocks = [
        block.text for block in (response.content or []) if getattr(block, "type", "") == "text"
    ]
    choices = [{"message": {"content": "".join(text_blocks)}}] if text_blocks else []
    usage = getattr(response, "usage", None)
    prompt_tokens = getattr(usage, "input_tokens", 0) or 0
    completion_tokens = getattr(usage, "output_tokens", 0) or 0
    return {
        "choices": choices,
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
        "model": getattr(response, "model", ""),
    }
