from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import TYPE_CHECKING

from pydantic import ValidationError

from paperchat.core.exceptions import PaperChatError
from paperchat.core.schemas.completion import SuggestionResult
from paperchat.session.payloads import build_suggestion_payload
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from paperchat.core.models.message import Message
    from paperchat.session.api_client import CompletionApiClient
    from paperchat.session.pdf_context import PdfContext
    from paperchat.session.preferences import PreferenceState

logger = get_logger(__name__)


class SuggestionFetcher:
    """Side-channel requests for follow-up question suggestions.

    Every request is tagged with a per-thread sequence number. A response only
    replaces the displayed list if it answers the latest request issued, for the
    thread that was refreshed last.
    """

    def __init__(
        self,
        api: CompletionApiClient,
        preferences: PreferenceState,
        pdf: PdfContext,
    ) -> None:
        self._api = api
        self._preferences = preferences
        self._pdf = pdf
        self._suggestions: list[str] = []
        self._seq: defaultdict[str, int] = defaultdict(int)
        self._current_thread: str | None = None
        self._task: asyncio.Task[list[str]] | None = None

    @property
    def suggestions(self) -> list[str]:
        return list(self._suggestions)

    def clear(self) -> None:
        self._suggestions = []

    async def fetch(self, thread_id: str, messages: Sequence[Message]) -> list[str]:
        """Request suggestions; never raises, returns [] on any failure."""
        if not self._pdf.has_document:
            logger.debug("Skipping suggestions: no document loaded")
            return []

        self._seq[thread_id] += 1
        seq = self._seq[thread_id]
        self._current_thread = thread_id
        payload = build_suggestion_payload(messages, self._preferences.preferences, self._pdf)

        try:
            body = await self._api.post_json(payload)
            suggestions = SuggestionResult.model_validate(body).suggestions
        except (PaperChatError, ValidationError) as err:
            logger.warning("Error fetching suggestions: %s", err, extra={"thread_id": thread_id})
            suggestions = []

        if self._is_latest(thread_id, seq):
            self._suggestions = list(suggestions)
        else:
            logger.debug("Discarding stale suggestions", extra={"thread_id": thread_id, "seq": seq})
        return suggestions

    def refresh(self, thread_id: str, messages: Sequence[Message]) -> asyncio.Task[list[str]]:
        """Fire-and-forget fetch that supersedes any pending one."""
        self.cancel()
        self._task = asyncio.create_task(self.fetch(thread_id, list(messages)))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait_idle(self) -> None:
        """Wait for the pending refresh, if any, to settle."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    def _is_latest(self, thread_id: str, seq: int) -> bool:
        return thread_id == self._current_thread and seq == self._seq[thread_id]
