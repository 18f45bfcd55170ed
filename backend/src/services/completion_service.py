"""Streaming chat completions from OpenRouter or Google Gemini."""

from __future__ import annotations

import json
import logging
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from ..models.settings import ModelProvider, ModelRef
from .config import AppConfig, DEFAULT_OPENROUTER_BASE_URL
from .errors import CompletionError

logger = logging.getLogger(__name__)

GOOGLE_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

Message = Dict[str, str]


def _sse_payload(line: str) -> Optional[str]:
    """Return the payload of an SSE ``data:`` line, or None for other lines."""
    if not line.startswith("data:"):
        return None
    return line[5:].strip()


def _openrouter_delta(data: Any) -> Optional[str]:
    """Text of the first choice's delta; None for payloads of any other shape."""
    choices = data.get("choices") if isinstance(data, dict) else None
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


def _google_texts(data: Any) -> List[str]:
    """Text parts of the first candidate, skipping anything malformed."""
    candidates = data.get("candidates") if isinstance(data, dict) else None
    if not isinstance(candidates, list) or not candidates or not isinstance(candidates[0], dict):
        return []
    content = candidates[0].get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [
        part["text"]
        for part in parts
        if isinstance(part, dict) and isinstance(part.get("text"), str)
    ]


class CompletionService:
    """Send chat messages to a model and stream back text fragments.

    Messages use the OpenAI shape: ``{"role": "system"|"user"|"assistant", "content": ...}``.
    """

    def __init__(
        self,
        openrouter_api_key: Optional[str] = None,
        google_api_key: Optional[str] = None,
        openrouter_base_url: str = DEFAULT_OPENROUTER_BASE_URL,
        google_base_url: str = GOOGLE_BASE_URL,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.openrouter_api_key = openrouter_api_key
        self.google_api_key = google_api_key
        self.openrouter_base_url = openrouter_base_url.rstrip("/")
        self.google_base_url = google_base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig) -> "CompletionService":
        return cls(
            openrouter_api_key=config.openrouter_api_key,
            google_api_key=config.google_api_key,
            openrouter_base_url=config.openrouter_base_url,
            timeout=config.request_timeout,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self._transport)

    async def stream_complete(
        self, model: ModelRef, messages: List[Message]
    ) -> AsyncIterator[str]:
        """Yield text fragments of the model's answer as they arrive.

        Raises:
            CompletionError: Missing credentials, HTTP errors, timeouts or network failures.
        """
        if model.provider == ModelProvider.GOOGLE:
            stream = self._stream_google(model.model_id, messages)
        else:
            stream = self._stream_openrouter(model.model_id, messages)

        try:
            async for fragment in stream:
                yield fragment
        except httpx.HTTPStatusError as e:
            logger.error("Completion API error: %s", e.response.status_code)
            raise CompletionError(
                f"API error: {e.response.status_code}",
                {"status_code": e.response.status_code, "provider": model.provider.value},
            ) from e
        except httpx.TimeoutException as e:
            raise CompletionError("Request timeout", {"provider": model.provider.value}) from e
        except httpx.RequestError as e:
            raise CompletionError(
                f"Network error calling completion API: {e}", {"provider": model.provider.value}
            ) from e

    async def complete(self, model: ModelRef, messages: List[Message]) -> str:
        """Run a completion and return the accumulated text."""
        parts: List[str] = []
        async for fragment in self.stream_complete(model, messages):
            parts.append(fragment)
        return "".join(parts)

    async def _stream_openrouter(
        self, model_id: str, messages: List[Message]
    ) -> AsyncIterator[str]:
        if not self.openrouter_api_key:
            raise CompletionError("OpenRouter API key is not configured")

        async with self._client() as client:
            async with client.stream(
                "POST",
                f"{self.openrouter_base_url}/chat/completions",
                headers={
                    "Authorization": f"Bearer {self.openrouter_api_key}",
                    "X-Title": "Vault Insights",
                    "Content-Type": "application/json",
                },
                json={
                    "model": model_id,
                    "messages": messages,
                    "stream": True,
                    "temperature": 0.3,
                },
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                response.raise_for_status()

                async for line in response.aiter_lines():
                    data_str = _sse_payload(line)
                    if data_str is None:
                        continue
                    if data_str == "[DONE]":
                        break
                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    if isinstance(data, dict) and "error" in data:
                        error = data["error"]
                        message = error.get("message", "unknown error") if isinstance(error, dict) else str(error)
                        raise CompletionError(f"Model error: {message}", {"provider": "openrouter"})
                    content = _openrouter_delta(data)
                    if content:
                        yield content

    async def _stream_google(
        self, model_id: str, messages: List[Message]
    ) -> AsyncIterator[str]:
        if not self.google_api_key:
            raise CompletionError("Google API key is not configured")

        system_parts = [m["content"] for m in messages if m["role"] == "system"]
        contents: List[Dict[str, Any]] = [
            {
                "role": "model" if m["role"] == "assistant" else "user",
                "parts": [{"text": m["content"]}],
            }
            for m in messages
            if m["role"] != "system"
        ]
        body: Dict[str, Any] = {"contents": contents, "generationConfig": {"temperature": 0.3}}
        if system_parts:
            body["systemInstruction"] = {"parts": [{"text": "\n\n".join(system_parts)}]}

        async with self._client() as client:
            async with client.stream(
                "POST",
                f"{self.google_base_url}/models/{model_id}:streamGenerateContent",
                params={"alt": "sse", "key": self.google_api_key},
                headers={"Content-Type": "application/json"},
                json=body,
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                response.raise_for_status()

                async for line in response.aiter_lines():
                    data_str = _sse_payload(line)
                    if not data_str:
                        continue
                    try:
                        data = json.loads(data_str)
                    except json.JSONDecodeError:
                        continue
                    for text in _google_texts(data):
                        if text:
                            yield text


__all__ = ["CompletionService", "GOOGLE_BASE_URL"]
