"""Tests for the Anthropic-backed completion client."""

import asyncio
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from tutor.errors import UpstreamNonRetryableError, UpstreamTransientError
from tutor.llm.client import CompletionClient, CompletionRequest, to_contract

_REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


def sdk_message(*texts, input_tokens=12, output_tokens=5):
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=t) for t in texts],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        model="claude-test",
    )


class FakeMessages:
    def __init__(self, result):
        self.result = result
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def fake_sdk(result):
    return SimpleNamespace(messages=FakeMessages(result))


def make_request():
    return CompletionRequest(
        model="claude-test",
        messages=[
            {"role": "system", "content": "Be kind."},
            {"role": "user", "content": "Hi"},
        ],
        max_tokens=150,
        temperature=0.8,
        user="abc123",
    )


def test_to_contract_shape():
    contract = to_contract(sdk_message("Hello ", "there"))
    assert contract == {
        "choices": [{"message": {"content": "Hello there"}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
        "model": "claude-test",
    }


def test_to_contract_without_text_has_no_choices():
    message = SimpleNamespace(content=[], usage=None, model="claude-test")
    contract = to_contract(message)
    assert contract["choices"] == []
    assert contract["usage"]["total_tokens"] == 0


def test_system_message_is_split_out():
    sdk = fake_sdk(sdk_message("Hello"))
    client = CompletionClient(client=sdk)

    result = asyncio.run(client.complete(make_request()))

    kwargs = sdk.messages.calls[0]
    assert kwargs["system"] == "Be kind."
    assert kwargs["messages"] == [{"role": "user", "content": "Hi"}]
    assert kwargs["max_tokens"] == 150
    assert kwargs["temperature"] == 0.8
    assert kwargs["metadata"] == {"user_id": "abc123"}
    assert result["choices"][0]["message"]["content"] == "Hello"


def test_unconfigured_client_is_non_retryable(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    client = CompletionClient()

    assert not client.configured
    with pytest.raises(UpstreamNonRetryableError) as excinfo:
        asyncio.run(client.complete(make_request()))
    assert excinfo.value.status_code == 401


def status_error(cls, status):
    return cls(
        f"status {status}",
        response=httpx.Response(status, request=_REQUEST),
        body=None,
    )


@pytest.mark.parametrize(
    "error, expected",
    [
        (status_error(anthropic.AuthenticationError, 401), UpstreamNonRetryableError),
        (status_error(anthropic.BadRequestError, 400), UpstreamNonRetryableError),
        (status_error(anthropic.RateLimitError, 429), UpstreamNonRetryableError),
        (status_error(anthropic.InternalServerError, 500), UpstreamTransientError),
        (status_error(anthropic.APIStatusError, 503), UpstreamTransientError),
        (anthropic.APIConnectionError(request=_REQUEST), UpstreamTransientError),
    ],
)
def test_sdk_errors_are_classified(error, expected):
    client = CompletionClient(client=fake_sdk(error))
    with pytest.raises(expected):
        asyncio.run(client.complete(make_request()))
