"""Text embeddings through the OpenRouter (OpenAI-compatible) embeddings API."""

from __future__ import annotations

import logging
from typing import List, Optional

import httpx

from .config import AppConfig, DEFAULT_EMBEDDING_MODEL, DEFAULT_OPENROUTER_BASE_URL
from .errors import EmbeddingError

logger = logging.getLogger(__name__)


class EmbeddingService:
    """Embed text for insight similarity search.

    ``embed`` returns None when no API key is configured so callers can degrade
    gracefully; provider failures raise EmbeddingError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_EMBEDDING_MODEL,
        base_url: str = DEFAULT_OPENROUTER_BASE_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_config(cls, config: AppConfig) -> "EmbeddingService":
        return cls(
            api_key=config.openrouter_api_key,
            model=config.embedding_model,
            base_url=config.openrouter_base_url,
            timeout=config.request_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def embed(self, text: str) -> Optional[List[float]]:
        """Return the embedding vector for ``text``, or None if not configured.

        Raises:
            EmbeddingError: Rate limiting, non-200 responses, malformed payloads,
                timeouts and network failures.
        """
        if not self.api_key:
            return None

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    f"{self.base_url}/embeddings",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                    },
                    json={"model": self.model, "input": text},
                )

            if response.status_code == 429:
                retry_after = response.headers.get("Retry-After", "60")
                raise EmbeddingError(
                    f"Rate limited. Retry after {retry_after} seconds.",
                    {"retry_after": retry_after},
                )

            if response.status_code != 200:
                raise EmbeddingError(
                    f"Embedding API returned {response.status_code}: {response.text}",
                    {"status_code": response.status_code},
                )

            data = response.json()
            if not data.get("data"):
                raise EmbeddingError("No embedding data in API response")

            embedding = data["data"][0].get("embedding")
            if not isinstance(embedding, list) or not all(
                isinstance(x, (int, float)) for x in embedding
            ):
                raise EmbeddingError("Invalid embedding format from API")

            return [float(x) for x in embedding]

        except httpx.TimeoutException as e:
            raise EmbeddingError("Embedding API request timed out") from e
        except httpx.RequestError as e:
            raise EmbeddingError(f"Network error calling embedding API: {e}") from e
        except ValueError as e:
            raise EmbeddingError(f"Malformed embedding response: {e}") from e


__all__ = ["EmbeddingService"]
