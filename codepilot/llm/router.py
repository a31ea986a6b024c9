"""
LLM call wrapper and it does:
- Routes a model id to its provider (OpenAI, Anthropic, Gemini, OpenRouter, custom)
- Streams tokens from server-sent events as they arrive
- Handles retries for transient failures

Main purpose:
Central interface for all model calls.
"""


import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

import httpx

from codepilot.core.config import settings
from codepilot.core.logging import get_logger
from codepilot.llm.models import (
    ANTHROPIC_MAX_TOKENS,
    MAX_TOKENS,
    find_custom_model,
    normalize_endpoint,
    provider_for,
    provider_model_id,
)
from codepilot.llm.schemas import ChatMessage, ModelEntry

log = get_logger("llm.router")

OnToken = Callable[[str], None]
Extractor = Callable[[Dict[str, Any]], str]

TRANSIENT_STATUS = (429, 500, 502, 503, 504)
AUTH_STATUS = (401, 403)


class LLMError(RuntimeError):
    pass


class _TransientError(Exception):
    pass


def _safe_snippet(text: str, n: int = 400) -> str:
    return (text or "")[:n].replace("\n", "\\n").replace("\r", "\\r")


def _openai_delta(data: Dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        return ""
    return (choices[0].get("delta") or {}).get("content") or ""


def _anthropic_delta(data: Dict[str, Any]) -> str:
    if data.get("type") == "error":
        err = data.get("error") or {}
        raise LLMError(f"Anthropic stream error: {err.get('message') or err}")
    if data.get("type") != "content_block_delta":
        return ""
    delta = data.get("delta") or {}
    if delta.get("type") != "text_delta":
        return ""
    return delta.get("text") or ""


def _gemini_delta(data: Dict[str, Any]) -> str:
    if data.get("error"):
        err = data["error"]
        raise LLMError(f"Gemini stream error: {err.get('message') if isinstance(err, dict) else err}")
    candidates = data.get("candidates") or []
    if not candidates:
        feedback = data.get("promptFeedback") or {}
        if feedback.get("blockReason"):
            raise LLMError(f"Gemini blocked the prompt: {feedback['blockReason']}")
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text") or "" for p in parts)


def parse_sse_line(line: str, extract: Extractor) -> str:
    """Return the text token carried by one SSE line ("" if none)."""
    line = line.strip()
    if not line.startswith("data:"):
        return ""
    payload = line[5:].strip()
    if not payload or payload == "[DONE]":
        return ""
    try:
        data = json.loads(payload)
    except ValueError:
        log.warning(f"Skipping undecodable SSE payload: {_safe_snippet(payload, 120)}")
        return ""
    if not isinstance(data, dict):
        return ""
    return extract(data)


def _chat_payload(messages: List[ChatMessage]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


class LLMRouter:
    """Streams chat completions from whichever provider serves a model id.

    transport is only for tests (httpx.MockTransport).
    """

    BACKOFF_S = 0.6

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(settings.LLM_TIMEOUT_S, connect=10.0)
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def stream_chat(
        self,
        messages: List[ChatMessage],
        model_id: str,
        custom_models: Iterable[ModelEntry],
        api_key: Optional[str],
        on_token: OnToken,
    ) -> str:
        custom = find_custom_model(model_id, custom_models)
        if custom is not None:
            log.info(f"Using custom model {custom.name or custom.id}")
            return await self._custom_chat(messages, custom, on_token)

        provider = provider_for(model_id)
        if provider is None:
            raise LLMError(f"Unsupported model: {model_id}")
        if provider == "mock":
            return await self._mock_chat(messages, on_token)
        if not api_key:
            raise LLMError(f"Missing API key for {provider} model '{model_id}'")

        url, headers, payload, extract = self._build_request(provider, messages, model_id, api_key)
        log.info(f"Streaming {provider} model={model_id} messages={len(messages)}")
        return await self._stream(url, headers, payload, extract, on_token)

    def _build_request(
        self,
        provider: str,
        messages: List[ChatMessage],
        model_id: str,
        api_key: str,
    ) -> Tuple[str, Dict[str, str], Dict[str, Any], Extractor]:
        model = provider_model_id(model_id)

        if provider in ("openai", "openrouter"):
            base = settings.OPENAI_BASE_URL if provider == "openai" else settings.OPENROUTER_BASE_URL
            payload: Dict[str, Any] = {
                "model": model,
                "messages": _chat_payload(messages),
                "stream": True,
            }
            if model in MAX_TOKENS:
                payload["max_tokens"] = MAX_TOKENS[model]
            headers = {"Authorization": f"Bearer {api_key}"}
            return f"{base.rstrip('/')}/chat/completions", headers, payload, _openai_delta

        if provider == "anthropic":
            system = next((m.content for m in messages if m.role == "system"), "")
            payload = {
                "model": model,
                "max_tokens": ANTHROPIC_MAX_TOKENS,
                "system": system,
                "messages": _chat_payload([m for m in messages if m.role != "system"]),
                "stream": True,
            }
            headers = {"x-api-key": api_key, "anthropic-version": settings.ANTHROPIC_VERSION}
            return f"{settings.ANTHROPIC_BASE_URL.rstrip('/')}/messages", headers, payload, _anthropic_delta

        # gemini
        system = next((m.content for m in messages if m.role == "system"), None)
        payload = {
            "contents": [
                {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
                for m in messages
                if m.role != "system"
            ]
        }
        if system:
            payload["systemInstruction"] = {"parts": [{"text": system}]}
        url = f"{settings.GEMINI_BASE_URL.rstrip('/')}/models/{model}:streamGenerateContent?alt=sse&key={api_key}"
        return url, {}, payload, _gemini_delta

    async def _stream(
        self,
        url: str,
        headers: Dict[str, str],
        payload: Dict[str, Any],
        extract: Extractor,
        on_token: OnToken,
    ) -> str:
        parts: List[str] = []
        last_err: Exception | None = None
        attempts = max(1, settings.LLM_MAX_RETRIES)

        for attempt in range(attempts):
            try:
                async with self._client() as client:
                    async with client.stream("POST", url, headers=headers, json=payload) as r:
                        if r.status_code >= 400:
                            body = (await r.aread()).decode("utf-8", errors="replace")
                            if r.status_code in TRANSIENT_STATUS:
                                raise _TransientError(f"transient {r.status_code}: {_safe_snippet(body)}")
                            if r.status_code in AUTH_STATUS:
                                raise LLMError(f"Authentication failed ({r.status_code}): {_safe_snippet(body)}")
                            raise LLMError(f"Provider error {r.status_code}: {_safe_snippet(body)}")

                        async for line in r.aiter_lines():
                            token = parse_sse_line(line, extract)
                            if token:
                                parts.append(token)
                                on_token(token)
                return "".join(parts)

            except (httpx.HTTPError, _TransientError) as e:
                # Replaying after tokens went out would duplicate narration.
                if parts:
                    raise LLMError(f"Stream interrupted after {len(parts)} tokens: {e}") from e
                last_err = e
                if attempt + 1 < attempts:
                    backoff = self.BACKOFF_S * (2**attempt)
                    log.warning(f"LLM call failed: {e}. retrying in {backoff:.1f}s (attempt {attempt+1}/{attempts})")
                    await asyncio.sleep(backoff)

        raise LLMError(f"LLM call failed after retries: {last_err}")

    async def _custom_chat(self, messages: List[ChatMessage], model: ModelEntry, on_token: OnToken) -> str:
        url = normalize_endpoint(model.endpoint)
        headers = {"Authorization": f"Bearer {model.api_key}"}
        payload = {"model": model.name or model.id, "messages": _chat_payload(messages), "max_tokens": 16000}

        try:
            async with self._client() as client:
                r = await client.post(url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            raise LLMError(f"Network error calling {url}: {e}") from e

        if r.status_code in AUTH_STATUS:
            raise LLMError(f"Authentication failed ({r.status_code}) for custom model {model.id}")
        if r.status_code >= 400:
            raise LLMError(f"Custom model error {r.status_code}: {_safe_snippet(r.text)}")

        try:
            data = r.json()
        except ValueError as e:
            raise LLMError(f"Custom model returned non-JSON: {_safe_snippet(r.text)}") from e

        content = None
        if isinstance(data, dict):
            choices = data.get("choices") or []
            if choices:
                content = (choices[0].get("message") or {}).get("content")
            for key in ("response", "message", "text", "content"):
                if content:
                    break
                value = data.get(key)
                content = value if isinstance(value, str) else None
        if not content:
            raise LLMError(f"Unexpected custom model response: {_safe_snippet(json.dumps(data))}")

        # Not streamed: deliver the whole answer as one token.
        on_token(content)
        return content

    async def _mock_chat(self, messages: List[ChatMessage], on_token: OnToken) -> str:
        last_user = next((m.content for m in reversed(messages) if m.role == "user"), "")
        text = f"Mock response: {last_user}"
        for i, word in enumerate(text.split(" ")):
            token = word if i == 0 else f" {word}"
            on_token(token)
            await asyncio.sleep(0)
        return text
