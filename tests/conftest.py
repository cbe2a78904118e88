from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any

import httpx
import pytest

from paperchat.core.repositories.implementations.memory.key_value_storage import InMemoryKeyValueStorage
from paperchat.session.api_client import CompletionApiClient
from paperchat.session.chat_session import ChatSession

PDF_BYTES = b"%PDF-1.4 fake paper"


def sse(*deltas: str, done: bool = True) -> bytes:
    """Encode deltas the way the completion route streams them."""
    chunks = []
    for delta in deltas:
        chunks.append(f"event: delta\ndata: {json.dumps({'type': 'delta', 'delta': delta})}\n\n")
    if done:
        chunks.append(f"event: done\ndata: {json.dumps({'type': 'done'})}\n\n")
    return "".join(chunks).encode("utf-8")


class BrokenStream(httpx.AsyncByteStream):
    """Yields some bytes, then fails like a dropped connection."""

    def __init__(self, body: bytes) -> None:
        self._body = body

    async def __aiter__(self):
        yield self._body
        raise httpx.ReadError("connection reset")

    async def aclose(self) -> None:
        pass


Handler = Callable[[dict[str, Any]], httpx.Response]


@dataclass
class FakeCompletionServer:
    """Scripted stand-in for the completion route.

    Each flavor has a handler returning an ``httpx.Response``; every decoded
    request body is recorded in ``requests`` with its flavor.
    """

    requests: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    chat: Handler = lambda body: httpx.Response(200, content=sse("Hello", " there"))
    summary: Handler = lambda body: httpx.Response(200, content=sse("Summary", " text"))
    suggestions: Handler = lambda body: httpx.Response(
        200, json={"suggestions": ["What is the main contribution?", "How is it evaluated?", "What are the limits?"]}
    )
    title: Handler = lambda body: httpx.Response(200, json={"title": "Sparse Attention Paper"})

    def flavors(self) -> list[str]:
        return [flavor for flavor, _ in self.requests]

    def bodies(self, flavor: str) -> list[dict[str, Any]]:
        return [body for f, body in self.requests if f == flavor]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if body.get("isSuggestionRequest"):
            flavor = "suggestions"
        elif body.get("isTitleRequest"):
            flavor = "title"
        elif body.get("messages") and body["messages"][-1]["content"] == "GENERATE_SUMMARY":
            flavor = "summary"
        else:
            flavor = "chat"
        self.requests.append((flavor, body))
        return getattr(self, flavor)(body)


@pytest.fixture
def server() -> FakeCompletionServer:
    return FakeCompletionServer()


@pytest.fixture
def storage() -> InMemoryKeyValueStorage:
    return InMemoryKeyValueStorage()


@pytest.fixture
def api(server: FakeCompletionServer) -> CompletionApiClient:
    http = httpx.AsyncClient(base_url="http://paperchat.test/api/v1", transport=httpx.MockTransport(server))
    return CompletionApiClient(http_client=http)


@pytest.fixture
def session(api: CompletionApiClient, storage: InMemoryKeyValueStorage) -> ChatSession:
    return ChatSession(api, storage)


def stream_event(event_type: str, **fields: Any) -> SimpleNamespace:
    return SimpleNamespace(type=event_type, **fields)


class FakeResponseStream:
    def __init__(self, events: list[Any], error: Exception | None = None) -> None:
        self._events = events
        self._error = error

    async def __aenter__(self) -> FakeResponseStream:
        return self

    async def __aexit__(self, *exc_info: object) -> bool:
        return False

    async def __aiter__(self):
        for event in self._events:
            yield event
        if self._error is not None:
            raise self._error


class FakeResponses:
    """Records Responses API calls and replays scripted results."""

    def __init__(self) -> None:
        self.stream_calls: list[dict[str, Any]] = []
        self.parse_calls: list[dict[str, Any]] = []
        self.events: list[Any] = [
            stream_event("response.output_text.delta", delta="Hi"),
            stream_event("response.output_text.delta", delta=" reader"),
            stream_event("response.completed"),
        ]
        self.stream_error: Exception | None = None
        self.parsed: Any = None
        self.refusal: str | None = None
        self.parse_error: Exception | None = None

    def stream(self, **kwargs: Any) -> FakeResponseStream:
        self.stream_calls.append(kwargs)
        return FakeResponseStream(self.events, self.stream_error)

    async def parse(self, **kwargs: Any) -> SimpleNamespace:
        self.parse_calls.append(kwargs)
        if self.parse_error is not None:
            raise self.parse_error
        return SimpleNamespace(output_parsed=self.parsed, refusal=self.refusal)


class FakeOpenAI:
    def __init__(self) -> None:
        self.responses = FakeResponses()


@pytest.fixture
def openai_client() -> FakeOpenAI:
    return FakeOpenAI()
