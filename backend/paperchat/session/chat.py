from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from paperchat.core.exceptions import ChatBusyError, MissingContextError, PaperChatError
from paperchat.core.models.message import Message
from paperchat.session.notifications import Variant
from paperchat.session.payloads import build_chat_payload
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from paperchat.session.api_client import CompletionApiClient
    from paperchat.session.cancellation import CancellationToken
    from paperchat.session.notifications import NotificationCenter
    from paperchat.session.pdf_context import PdfContext
    from paperchat.session.preferences import PreferenceState
    from paperchat.session.suggestions import SuggestionFetcher
    from paperchat.session.thread_store import ThreadStore

logger = get_logger(__name__)

SEND_FAILED = "Failed to get a response. Please try again."

DeltaCallback = Callable[[str], None]


@dataclass
class ChatTurnResult:
    """Outcome of one streamed reply."""

    thread_id: str
    text: str = ""
    completed: bool = False
    cancelled: bool = False
    error: str | None = None


class ChatOrchestrator:
    """Streams assistant replies into the thread that was active at send time."""

    def __init__(
        self,
        api: CompletionApiClient,
        threads: ThreadStore,
        preferences: PreferenceState,
        pdf: PdfContext,
        suggestions: SuggestionFetcher,
        notifications: NotificationCenter,
    ) -> None:
        self._api = api
        self._threads = threads
        self._preferences = preferences
        self._pdf = pdf
        self._suggestions = suggestions
        self._notifications = notifications
        self.is_loading = False
        self.error: str | None = None

    def dismiss_error(self) -> None:
        self.error = None

    async def send(
        self,
        text: str,
        *,
        cancel: CancellationToken | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> ChatTurnResult | None:
        """Append the user's message to the active thread and stream the reply."""
        if self.is_loading:
            raise ChatBusyError("A response is still streaming")
        if not text.strip():
            return None
        thread_id = self._threads.active_id
        if thread_id is None:
            raise MissingContextError("No active thread")

        # Claimed before the first await so a concurrent send sees the turn.
        self.is_loading = True
        try:
            self.error = None
            history = [*self._thread_messages(thread_id), Message.user(text)]
            await self._threads.replace_messages(thread_id, history, name_hint=text)
            result = await self._stream(thread_id, history, None, cancel, on_delta)
        finally:
            self.is_loading = False

        if result.completed:
            self._suggestions.refresh(thread_id, self._thread_messages(thread_id))
        return result

    async def stream_reply(
        self,
        thread_id: str,
        history: Sequence[Message],
        *,
        summary_template: str | None = None,
        cancel: CancellationToken | None = None,
        on_delta: DeltaCallback | None = None,
    ) -> ChatTurnResult:
        """Stream one assistant message after ``history`` into ``thread_id``.

        The placeholder message is replaced, not appended to, on every increment.
        On failure the partial text is kept; an empty placeholder is removed.
        """
        if self.is_loading:
            raise ChatBusyError("A response is still streaming")
        self.is_loading = True
        try:
            return await self._stream(thread_id, list(history), summary_template, cancel, on_delta)
        finally:
            self.is_loading = False

    async def _stream(
        self,
        thread_id: str,
        history: list[Message],
        summary_template: str | None,
        cancel: CancellationToken | None,
        on_delta: DeltaCallback | None,
    ) -> ChatTurnResult:
        payload = build_chat_payload(
            history,
            self._preferences.preferences,
            self._pdf,
            summary_template=summary_template,
        )
        placeholder = Message.assistant()
        result = ChatTurnResult(thread_id=thread_id)
        buffer = ""

        try:
            await self._threads.replace_messages(thread_id, [*history, placeholder], persist=False)
            async for delta in self._api.stream_text(payload, cancel):
                buffer += delta
                await self._threads.replace_messages(
                    thread_id, [*history, placeholder.with_text(buffer)], persist=False
                )
                if on_delta is not None:
                    on_delta(delta)
            result.cancelled = cancel is not None and cancel.cancelled
            result.completed = not result.cancelled
        except PaperChatError as err:
            logger.error(
                "Error in chat submission: %s",
                err,
                extra={"thread_id": thread_id, "received_chars": len(buffer), "error_type": type(err).__name__},
            )
            result.error = SEND_FAILED
            self.error = SEND_FAILED
            self._notifications.notify("Error getting response", str(err) or SEND_FAILED, Variant.DESTRUCTIVE)
        finally:
            result.text = buffer
            final = [*history, placeholder.with_text(buffer)] if buffer else history
            await self._threads.replace_messages(thread_id, final)

        logger.info(
            "Chat reply finished",
            extra={"thread_id": thread_id, "chars": len(buffer), "completed": result.completed},
        )
        return result

    def _thread_messages(self, thread_id: str) -> list[Message]:
        thread = self._threads.get(thread_id)
        return list(thread.messages) if thread else []
