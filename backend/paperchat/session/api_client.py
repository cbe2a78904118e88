from __future__ import annotations

import asyncio
import contextlib
import json
from typing import TYPE_CHECKING, Any

import httpx

from paperchat.config import settings
from paperchat.core.exceptions import (
    ResponseParseError,
    StreamInterruptedError,
    TransportError,
    UpstreamError,
)
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from paperchat.session.cancellation import CancellationToken

logger = get_logger(__name__)

CHAT_PATH = "/chat"

_CANCELLED = object()


async def _pull(events: AsyncIterator[Any]) -> Any:
    try:
        return await events.__anext__()
    except StopAsyncIteration:
        return None


async def _next_or_cancel(events: AsyncIterator[Any], cancel: CancellationToken | None) -> Any:
    """Next item of ``events``, None at the end, or ``_CANCELLED`` once ``cancel`` fires."""
    if cancel is None:
        return await _pull(events)
    read = asyncio.ensure_future(_pull(events))
    cancelled = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        cancelled.cancel()
        if not read.done():
            read.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await read
    if read.cancelled():
        return _CANCELLED
    return read.result()


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or response.reason_phrase
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return response.reason_phrase


class CompletionApiClient:
    """HTTP client for the single completion route.

    Chat and summary requests come back as an SSE stream of ``delta`` events
    closed by ``done``; suggestion and title requests come back as JSON.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ) -> None:
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout or settings.request_timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )

    async def __aenter__(self) -> CompletionApiClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    async def post_json(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Issue a one-shot request and return the decoded JSON object."""
        try:
            response = await self._http.post(CHAT_PATH, json=payload)
        except httpx.HTTPError as err:
            raise TransportError(f"Request failed: {err}") from err

        if not response.is_success:
            raise TransportError(_error_message(response), status_code=response.status_code)
        try:
            body = response.json()
        except ValueError as err:
            raise ResponseParseError("Response body is not valid JSON") from err
        if not isinstance(body, dict):
            raise ResponseParseError("Response body is not a JSON object")
        return body

    async def stream_text(
        self,
        payload: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield text increments until the stream's completion marker.

        Each read is raced against ``cancel``; when it fires the pending read is
        abandoned, the connection is closed and the generator returns quietly.
        A token that is already cancelled sends nothing. Raises
        ``StreamInterruptedError`` if the body ends or breaks before ``done``.
        """
        if cancel is not None and cancel.cancelled:
            logger.info("Stream skipped", extra={"reason": cancel.reason})
            return

        started = False
        try:
            async with self._http.stream("POST", CHAT_PATH, json=payload) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError(_error_message(response), status_code=response.status_code)

                started = True
                events = self._iter_events(response)
                try:
                    while True:
                        item = await _next_or_cancel(events, cancel)
                        if item is _CANCELLED:
                            logger.info("Stream abandoned", extra={"reason": cancel.reason})
                            return
                        if item is None:
                            break
                        event_type, data = item
                        if event_type == "delta":
                            delta = data.get("delta")
                            if delta:
                                yield str(delta)
                        elif event_type == "error":
                            raise UpstreamError(str(data.get("message") or "Streaming failed."))
                        elif event_type == "done":
                            return
                finally:
                    await events.aclose()
                if cancel is not None and cancel.cancelled:
                    return
                raise StreamInterruptedError("Stream ended before completion")
        except httpx.HTTPError as err:
            if not started:
                raise TransportError(f"Request failed: {err}") from err
            raise StreamInterruptedError(f"Stream read failed: {err}") from err

    @staticmethod
    async def _iter_events(response: httpx.Response) -> AsyncIterator[tuple[str, dict[str, Any]]]:
        event_type = "message"
        data_lines: list[str] = []
        async for line in response.aiter_lines():
            if line.startswith("event:"):
                event_type = line[len("event:"):].strip()
            elif line.startswith("data:"):
                data_lines.append(line[len("data:"):].strip())
            elif not line.strip():
                if data_lines:
                    raw = "\n".join(data_lines)
                    try:
                        data = json.loads(raw)
                    except json.JSONDecodeError as err:
                        raise ResponseParseError(f"Malformed stream chunk: {raw[:80]}") from err
                    if not isinstance(data, dict):
                        raise ResponseParseError(f"Unexpected stream chunk: {raw[:80]}")
                    yield data.get("type", event_type), data
                event_type = "message"
                data_lines = []
