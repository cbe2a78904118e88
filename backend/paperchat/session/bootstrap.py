from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from pydantic import ValidationError

from paperchat.core.exceptions import ChatBusyError, PaperChatError
from paperchat.core.models.message import Message
from paperchat.core.prompts import SUMMARY_FAILED_NOTICE, select_summary_template
from paperchat.core.schemas.completion import TitleResult
from paperchat.session.payloads import build_title_payload
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from paperchat.session.api_client import CompletionApiClient
    from paperchat.session.cancellation import CancellationToken
    from paperchat.session.chat import ChatOrchestrator
    from paperchat.session.pdf_context import PdfContext
    from paperchat.session.preferences import PreferenceState
    from paperchat.session.suggestions import SuggestionFetcher
    from paperchat.session.thread_store import ThreadStore

logger = get_logger(__name__)


def _cancelled(cancel: CancellationToken | None) -> bool:
    return cancel is not None and cancel.cancelled


class BootstrapState(str, Enum):
    AWAITING_SURVEY = "awaiting_survey"
    GENERATING_TITLE = "generating_title"
    STREAMING_SUMMARY = "streaming_summary"
    READY = "ready"


class Bootstrap:
    """One-time title, summary and suggestion run after the survey.

    Auxiliary failures are logged and never block the transition to READY, so
    the reader can always chat.
    """

    def __init__(
        self,
        api: CompletionApiClient,
        threads: ThreadStore,
        preferences: PreferenceState,
        pdf: PdfContext,
        chat: ChatOrchestrator,
        suggestions: SuggestionFetcher,
    ) -> None:
        self._api = api
        self._threads = threads
        self._preferences = preferences
        self._pdf = pdf
        self._chat = chat
        self._suggestions = suggestions
        self.state = BootstrapState.AWAITING_SURVEY
        self.summary_template: str | None = None
        self._generation = 0

    @property
    def is_ready(self) -> bool:
        return self.state == BootstrapState.READY

    def reset(self) -> None:
        self._generation += 1
        self.state = BootstrapState.AWAITING_SURVEY
        self.summary_template = None

    def abandon(self) -> None:
        """Stop a running sequence without asking for the survey again."""
        if self.state in (BootstrapState.GENERATING_TITLE, BootstrapState.STREAMING_SUMMARY):
            self._generation += 1
            self.state = BootstrapState.READY
            logger.info("Bootstrap abandoned")

    async def run(self, cancel: CancellationToken | None = None) -> BootstrapState:
        thread_id = self._threads.active_id
        if thread_id is None:
            logger.warning("Bootstrap started without an active thread")
            self.state = BootstrapState.READY
            return self.state

        generation = self._generation
        try:
            self.state = BootstrapState.GENERATING_TITLE
            await self._generate_title(thread_id)

            if generation == self._generation and not _cancelled(cancel):
                self.state = BootstrapState.STREAMING_SUMMARY
                await self._stream_summary(thread_id, cancel)
        finally:
            # A reset or abandon while running hands the state to the newer owner.
            if generation == self._generation:
                self.state = BootstrapState.READY

        if generation != self._generation or _cancelled(cancel):
            logger.info("Bootstrap superseded", extra={"thread_id": thread_id})
            return self.state

        thread = self._threads.get(thread_id)
        self._suggestions.refresh(thread_id, thread.messages if thread else [])
        return self.state

    async def _generate_title(self, thread_id: str) -> None:
        if not self._pdf.has_document:
            return
        try:
            body = await self._api.post_json(build_title_payload(self._pdf))
            title = TitleResult.model_validate(body).title
        except (PaperChatError, ValidationError) as err:
            logger.warning("Title generation failed: %s", err, extra={"thread_id": thread_id})
            return
        await self._threads.rename(thread_id, title)
        logger.info("Thread renamed", extra={"thread_id": thread_id, "title": title})

    async def _stream_summary(self, thread_id: str, cancel: CancellationToken | None) -> None:
        if not self._pdf.has_document:
            return
        prefs = self._preferences.preferences
        self.summary_template = select_summary_template(prefs.familiarity, prefs.goal)
        thread = self._threads.get(thread_id)
        history = list(thread.messages) if thread else []

        try:
            result = await self._chat.stream_reply(
                thread_id,
                history,
                summary_template=self.summary_template,
                cancel=cancel,
            )
        except ChatBusyError:
            logger.warning("Skipping summary: a reply is still streaming", extra={"thread_id": thread_id})
            return
        if result.error is not None and not result.text:
            self._chat.dismiss_error()
            await self._threads.replace_messages(thread_id, [*history, Message.notice(SUMMARY_FAILED_NOTICE)])
