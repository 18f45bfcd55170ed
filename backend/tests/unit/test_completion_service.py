"""Unit tests for streaming completions against mocked provider endpoints."""

import json
from typing import Callable, List

import httpx
import pytest

from backend.src.models.settings import ModelProvider, ModelRef
from backend.src.services.completion_service import CompletionService
from backend.src.services.errors import CompletionError

MESSAGES = [
    {"role": "system", "content": "Summarize the note."},
    {"role": "user", "content": "Some note content."},
]

OPENROUTER_MODEL = ModelRef(provider=ModelProvider.OPENROUTER, model_id="anthropic/claude-3.5-haiku")
GOOGLE_MODEL = ModelRef(provider=ModelProvider.GOOGLE, model_id="gemini-2.0-flash")


def _sse(*events: object) -> bytes:
    lines: List[str] = []
    for event in events:
        payload = event if isinstance(event, str) else json.dumps(event)
        lines.append(f"data: {payload}\n\n")
    return "".join(lines).encode("utf-8")


def _delta(text: str) -> dict:
    return {"choices": [{"delta": {"content": text}}]}


def _service(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> CompletionService:
    kwargs.setdefault("openrouter_api_key", "or-key")
    kwargs.setdefault("google_api_key", "g-key")
    return CompletionService(transport=httpx.MockTransport(handler), **kwargs)


class TestOpenRouterStreaming:
    @pytest.mark.asyncio
    async def test_accumulates_deltas_until_done(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = _sse(
                _delta("Hello"),
                ": keep-alive comment",
                _delta(", world"),
                "[DONE]",
                _delta(" ignored"),
            )
            return httpx.Response(200, content=body, headers={"Content-Type": "text/event-stream"})

        result = await _service(handler).complete(OPENROUTER_MODEL, MESSAGES)

        assert result == "Hello, world"
        request = seen[0]
        assert request.url.path.endswith("/chat/completions")
        assert request.headers["Authorization"] == "Bearer or-key"
        payload = json.loads(request.content)
        assert payload["model"] == "anthropic/claude-3.5-haiku"
        assert payload["stream"] is True
        assert payload["messages"] == MESSAGES

    @pytest.mark.asyncio
    async def test_skips_malformed_lines(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _sse("{not json", {"choices": []}, _delta("ok"), "[DONE]")
            return httpx.Response(200, content=body)

        assert await _service(handler).complete(OPENROUTER_MODEL, MESSAGES) == "ok"

    @pytest.mark.asyncio
    async def test_skips_payloads_of_unexpected_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _sse(
                {"choices": [{"delta": None}]},
                _delta("Hello"),
                42,
                '"just a string"',
                [1],
                {"choices": [None]},
                {"choices": "nope"},
                {"choices": [{"delta": {"content": 7}}]},
                _delta(" there"),
                "[DONE]",
            )
            return httpx.Response(200, content=body)

        assert await _service(handler).complete(OPENROUTER_MODEL, MESSAGES) == "Hello there"

    @pytest.mark.asyncio
    async def test_http_error_raises_completion_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500, json={"error": "upstream exploded"})

        with pytest.raises(CompletionError) as exc_info:
            await _service(handler).complete(OPENROUTER_MODEL, MESSAGES)

        assert exc_info.value.details["status_code"] == 500

    @pytest.mark.asyncio
    async def test_in_stream_error_payload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=_sse({"error": {"message": "context too long"}}))

        with pytest.raises(CompletionError, match="context too long"):
            await _service(handler).complete(OPENROUTER_MODEL, MESSAGES)

    @pytest.mark.asyncio
    async def test_timeout_raises_completion_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(CompletionError, match="timeout"):
            await _service(handler).complete(OPENROUTER_MODEL, MESSAGES)

    @pytest.mark.asyncio
    async def test_network_error_raises_completion_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(CompletionError, match="Network error"):
            await _service(handler).complete(OPENROUTER_MODEL, MESSAGES)

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        service = _service(handler, openrouter_api_key=None)

        with pytest.raises(CompletionError, match="not configured"):
            await service.complete(OPENROUTER_MODEL, MESSAGES)


class TestGoogleStreaming:
    @pytest.mark.asyncio
    async def test_streams_candidate_parts(self) -> None:
        seen: List[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            body = _sse(
                {"candidates": [{"content": {"parts": [{"text": "Part one"}]}}]},
                {"candidates": [{"content": {"parts": [{"text": " and two"}]}}]},
            )
            return httpx.Response(200, content=body)

        result = await _service(handler).complete(GOOGLE_MODEL, MESSAGES)

        assert result == "Part one and two"
        request = seen[0]
        assert request.url.path.endswith("/models/gemini-2.0-flash:streamGenerateContent")
        assert request.url.params["alt"] == "sse"
        assert request.url.params["key"] == "g-key"
        payload = json.loads(request.content)
        assert payload["systemInstruction"]["parts"][0]["text"] == "Summarize the note."
        assert payload["contents"] == [{"role": "user", "parts": [{"text": "Some note content."}]}]

    @pytest.mark.asyncio
    async def test_skips_payloads_of_unexpected_shape(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            body = _sse(
                {"candidates": [{"content": None}]},
                {"candidates": [{"content": {"parts": [{"text": "Kept"}, "stray", {"text": None}]}}]},
                [1],
                {"candidates": "nope"},
                {"candidates": [{"content": {"parts": [{"text": " text"}]}}]},
            )
            return httpx.Response(200, content=body)

        assert await _service(handler).complete(GOOGLE_MODEL, MESSAGES) == "Kept text"

    @pytest.mark.asyncio
    async def test_http_error_raises_completion_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, json={"error": {"message": "bad key"}})

        with pytest.raises(CompletionError) as exc_info:
            await _service(handler).complete(GOOGLE_MODEL, MESSAGES)

        assert exc_info.value.details == {"status_code": 403, "provider": "google"}

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        service = _service(lambda request: httpx.Response(200), google_api_key=None)

        with pytest.raises(CompletionError, match="Google API key"):
            await service.complete(GOOGLE_MODEL, MESSAGES)
