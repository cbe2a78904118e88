from __future__ import annotations

import asyncio


class CancellationToken:
    """Abort signal for one in-flight request.

    The UI action that supersedes a request (new chat, thread switch, close)
    calls ``cancel()``; the stream reader races each read against ``wait()``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()
