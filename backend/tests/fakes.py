"""Test doubles for the model and embedding providers."""

from __future__ import annotations

from typing import Callable, Dict, List, Optional, Union

from backend.src.models.settings import ModelRef
from backend.src.services.errors import CompletionError, EmbeddingError

Messages = List[Dict[str, str]]

LONG_TEXT = (
    "Distributed systems trade consistency for availability under partitions. "
    "Consensus protocols such as Raft keep a replicated log in agreement. "
    "Leader election, log replication and safety are the three pieces of Raft."
)


def char_tokens(text: str) -> int:
    """Deterministic stand-in for tiktoken: one token per four characters."""
    return (len(text) + 3) // 4


def system_prompt(messages: Messages) -> str:
    return next(m["content"] for m in messages if m["role"] == "system")


class FakeCompletion:
    """Completion client that records calls and answers from a responder.

    A responder may return an exception instance, which is raised.
    """

    def __init__(self, responder: Optional[Callable[[Messages], Union[str, Exception]]] = None):
        self.calls: List[Dict[str, object]] = []
        self.responder = responder or (lambda messages: "A concise summary of the content.")

    async def complete(self, model: ModelRef, messages: Messages) -> str:
        self.calls.append({"model": model, "messages": messages})
        answer = self.responder(messages)
        if isinstance(answer, Exception):
            raise answer
        return answer


class FakeEmbeddings:
    """Embedding client producing letter-frequency vectors."""

    def __init__(self, configured: bool = True, fail: bool = False):
        self.configured = configured
        self.fail = fail
        self.calls: List[str] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def embed(self, text: str) -> Optional[List[float]]:
        self.calls.append(text)
        if not self.configured:
            return None
        if self.fail:
            raise EmbeddingError("embedding backend down")
        lowered = text.lower()
        return [float(lowered.count(chr(ord("a") + i))) + 0.01 for i in range(26)]


def failing_for(marker: str, answer: str = "Model answer with enough substance.") -> Callable:
    """Responder that fails when the system prompt contains ``marker``."""

    def _respond(messages: Messages):
        if marker in system_prompt(messages):
            return CompletionError("API error: 500", {"status_code": 500})
        return answer

    return _respond
