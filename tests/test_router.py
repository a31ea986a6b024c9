import asyncio
import json

import httpx
import pytest

from codepilot.llm.models import normalize_endpoint, provider_for, provider_model_id
from codepilot.llm.router import LLMError, LLMRouter, _openai_delta, parse_sse_line
from codepilot.llm.schemas import ChatMessage, ModelEntry

MESSAGES = [
    ChatMessage(role="system", content="You are a planner."),
    ChatMessage(role="user", content="hello there"),
]


def _sse(*events) -> bytes:
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    return ("".join(lines) + "data: [DONE]\n\n").encode()


def _chat(router, model_id, api_key="key", custom_models=()):
    tokens = []

    async def run():
        return await router.stream_chat(MESSAGES, model_id, list(custom_models), api_key, tokens.append)

    return asyncio.run(run()), tokens


@pytest.fixture
def no_backoff(monkeypatch):
    monkeypatch.setattr(LLMRouter, "BACKOFF_S", 0)


def test_parse_sse_line_skips_noise() -> None:
    assert parse_sse_line(": keep-alive", _openai_delta) == ""
    assert parse_sse_line("data: [DONE]", _openai_delta) == ""
    assert parse_sse_line("data: {not json", _openai_delta) == ""
    assert parse_sse_line('data: {"choices": [{"delta": {"content": "Hi"}}]}', _openai_delta) == "Hi"


def test_openai_stream_emits_tokens_in_order() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            content=_sse(
                {"choices": [{"delta": {"role": "assistant"}}]},
                {"choices": [{"delta": {"content": "Hel"}}]},
                {"choices": [{"delta": {"content": "lo"}}]},
            ),
        )

    text, tokens = _chat(LLMRouter(httpx.MockTransport(handler)), "gpt-4o")

    assert tokens == ["Hel", "lo"]
    assert text == "Hello"
    assert seen["url"].endswith("/chat/completions")
    assert seen["auth"] == "Bearer key"
    assert seen["body"]["stream"] is True
    assert seen["body"]["messages"][0]["role"] == "system"


def test_anthropic_stream_moves_system_prompt() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            content=_sse(
                {"type": "message_start", "message": {}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "Sure"}},
                {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "!"}},
                {"type": "message_stop"},
            ),
        )

    text, tokens = _chat(LLMRouter(httpx.MockTransport(handler)), "claude-3.5-sonnet")

    assert text == "Sure!"
    assert tokens == ["Sure", "!"]
    assert seen["headers"]["x-api-key"] == "key"
    assert seen["body"]["model"] == "claude-3-5-sonnet-20241022"
    assert seen["body"]["system"] == "You are a planner."
    assert [m["role"] for m in seen["body"]["messages"]] == ["user"]


def test_gemini_stream() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert ":streamGenerateContent" in request.url.path
        body = json.loads(request.content)
        assert body["systemInstruction"]["parts"][0]["text"] == "You are a planner."
        return httpx.Response(
            200,
            content=_sse({"candidates": [{"content": {"parts": [{"text": "Hi "}, {"text": "you"}]}}]}),
        )

    text, _ = _chat(LLMRouter(httpx.MockTransport(handler)), "gemini-1.5-pro")

    assert text == "Hi you"


def test_missing_key_fails_before_any_request() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    with pytest.raises(LLMError, match="Missing API key"):
        _chat(LLMRouter(httpx.MockTransport(handler)), "gpt-4o", api_key=None)


def test_unknown_model_is_rejected() -> None:
    with pytest.raises(LLMError, match="Unsupported model"):
        _chat(LLMRouter(), "llama-local")


def test_auth_failure_is_not_retried(no_backoff) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401, json={"error": "bad key"})

    with pytest.raises(LLMError, match="Authentication failed"):
        _chat(LLMRouter(httpx.MockTransport(handler)), "gpt-4o")
    assert len(calls) == 1


def test_transient_failure_is_retried(no_backoff) -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(503, text="overloaded")
        return httpx.Response(200, content=_sse({"choices": [{"delta": {"content": "ok"}}]}))

    text, tokens = _chat(LLMRouter(httpx.MockTransport(handler)), "gpt-4o")

    assert text == "ok"
    assert tokens == ["ok"]
    assert len(calls) == 2


def test_retries_give_up(no_backoff) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(LLMError, match="after retries"):
        _chat(LLMRouter(httpx.MockTransport(handler)), "gpt-4o")


def test_custom_model_posts_to_normalized_endpoint() -> None:
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["authorization"]
        return httpx.Response(200, json={"choices": [{"message": {"content": "from custom"}}]})

    custom = ModelEntry(id="local", name="qwen", endpoint="http://llm.local:8080/v1/", api_key="secret")

    text, tokens = _chat(LLMRouter(httpx.MockTransport(handler)), "local", api_key=None, custom_models=[custom])

    assert text == "from custom"
    assert tokens == ["from custom"]
    assert seen["url"] == "http://llm.local:8080/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"


def test_mock_model_echoes_last_user_message() -> None:
    text, tokens = _chat(LLMRouter(), "mock", api_key=None)

    assert text == "Mock response: hello there"
    assert "".join(tokens) == text
    assert len(tokens) > 1


@pytest.mark.parametrize(
    "endpoint, expected",
    [
        ("https://api.example.com", "https://api.example.com/v1/chat/completions"),
        ("https://api.example.com/v2", "https://api.example.com/v2/chat/completions"),
        ("https://api.example.com/v1/chat/completions", "https://api.example.com/v1/chat/completions"),
    ],
)
def test_normalize_endpoint(endpoint, expected) -> None:
    assert normalize_endpoint(endpoint) == expected


def test_provider_routing() -> None:
    assert provider_for("gpt-4o-mini") == "openai"
    assert provider_for("o1-preview") == "openai"
    assert provider_for("claude-3-haiku") == "anthropic"
    assert provider_for("openrouter/meta/llama-3") == "openrouter"
    assert provider_for("mystery") is None
    assert provider_model_id("openrouter/meta/llama-3") == "meta/llama-3"
