from __future__ import annotations

from typing import TYPE_CHECKING

from paperchat.core.exceptions import ChatBusyError, MissingContextError
from paperchat.core.models.message import Message
from paperchat.core.prompts import PREFERENCES_UPDATED_NOTICE, UPLOAD_INTRO
from paperchat.session.bootstrap import Bootstrap, BootstrapState
from paperchat.session.cancellation import CancellationToken
from paperchat.session.chat import ChatOrchestrator
from paperchat.session.notifications import NotificationCenter
from paperchat.session.pdf_context import PdfContext, UploadBridge
from paperchat.session.preferences import PreferenceState
from paperchat.session.suggestions import SuggestionFetcher
from paperchat.session.thread_store import ThreadStore
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from paperchat.core.models.preferences import Familiarity, Goal, Preferences
    from paperchat.core.models.thread import Thread
    from paperchat.core.repositories.key_value_storage import KeyValueStorage
    from paperchat.session.api_client import CompletionApiClient
    from paperchat.session.chat import ChatTurnResult, DeltaCallback

logger = get_logger(__name__)


class ChatSession:
    """Application root wiring the chat components together.

    Exposes the reader's actions (upload, survey, send, new chat, switch,
    highlight, adjust preferences) and read-only views for rendering.
    """

    def __init__(
        self,
        api: CompletionApiClient,
        storage: KeyValueStorage,
        notifications: NotificationCenter | None = None,
    ) -> None:
        self.api = api
        self.notifications = notifications or NotificationCenter()
        self.threads = ThreadStore(storage)
        self.preferences = PreferenceState(storage)
        self.pdf = PdfContext()
        self.upload_bridge = UploadBridge(storage)
        self.suggestion_fetcher = SuggestionFetcher(api, self.preferences, self.pdf)
        self.chat = ChatOrchestrator(
            api,
            self.threads,
            self.preferences,
            self.pdf,
            self.suggestion_fetcher,
            self.notifications,
        )
        self.bootstrap = Bootstrap(
            api,
            self.threads,
            self.preferences,
            self.pdf,
            self.chat,
            self.suggestion_fetcher,
        )
        self._chat_cancel: CancellationToken | None = None

    # Views

    @property
    def messages(self) -> list[Message]:
        return self.threads.visible_messages()

    @property
    def thread_list(self) -> tuple[Thread, ...]:
        return self.threads.threads

    @property
    def active_thread_id(self) -> str | None:
        return self.threads.active_id

    @property
    def suggestions(self) -> list[str]:
        return self.suggestion_fetcher.suggestions

    @property
    def is_loading(self) -> bool:
        return self.chat.is_loading

    @property
    def error(self) -> str | None:
        return self.chat.error

    @property
    def bootstrap_state(self) -> BootstrapState:
        return self.bootstrap.state

    @property
    def input_enabled(self) -> bool:
        return self.bootstrap.is_ready and not self.chat.is_loading

    # Actions

    async def start(self, *, expect_upload: bool = False) -> None:
        """Rehydrate stored threads and preferences and pick up a pending upload.

        An empty thread is created only when there is nothing to show and no
        upload is about to follow.
        """
        await self.threads.load()
        await self.preferences.load()
        uploaded = await self.upload_bridge.consume()
        if uploaded is not None:
            data, filename = uploaded
            await self.upload_pdf(data, filename)
        elif self.threads.active_id is None and not expect_upload:
            await self.threads.create_thread()

    async def upload_pdf(self, data: bytes, filename: str = "paper.pdf") -> str:
        if not data:
            raise MissingContextError("Uploaded document is empty")
        self._cancel_inflight("new upload")
        self.pdf.load(data, filename)
        self.preferences.reset_survey()
        self.bootstrap.reset()
        self.suggestion_fetcher.clear()
        thread_id = await self.threads.create_thread([Message.with_attachment(UPLOAD_INTRO, filename)])
        logger.info("PDF loaded", extra={"thread_id": thread_id, "size": len(data), "pdf_filename": filename})
        return thread_id

    async def submit_survey(self, familiarity: Familiarity | str, goal: Goal | str) -> BootstrapState:
        await self.preferences.submit_survey(familiarity, goal)
        return await self.bootstrap.run(cancel=self._new_chat_token())

    async def send_message(self, text: str, on_delta: DeltaCallback | None = None) -> ChatTurnResult | None:
        if not self.bootstrap.is_ready:
            raise ChatBusyError("Chat is locked until the paper is prepared")
        if self.chat.is_loading:
            raise ChatBusyError("A response is still streaming")
        return await self.chat.send(text, cancel=self._new_chat_token(), on_delta=on_delta)

    async def new_chat(self) -> str:
        self._cancel_inflight("new chat")
        self.bootstrap.abandon()
        self.pdf.clear_selection()
        self.suggestion_fetcher.clear()
        return await self.threads.create_thread(name="Untitled")

    def switch_thread(self, thread_id: str) -> bool:
        if self.threads.get(thread_id) is None:
            return False
        self._cancel_inflight("thread switch")
        self.bootstrap.abandon()
        self.pdf.clear_selection()
        return self.threads.switch_thread(thread_id)

    def select_text(self, text: str) -> None:
        self.pdf.select_text(text)

    def clear_selected_text(self) -> None:
        self.pdf.clear_selection()

    async def update_preferences(self, familiarity: Familiarity | str, goal: Goal | str) -> Preferences:
        prefs = await self.preferences.update_preferences(familiarity, goal)
        thread_id = self.threads.active_id
        if thread_id is not None:
            thread = self.threads.get(thread_id)
            messages = [*(thread.messages if thread else []), Message.notice(PREFERENCES_UPDATED_NOTICE)]
            await self.threads.replace_messages(thread_id, messages)
            self.suggestion_fetcher.refresh(thread_id, messages)
        return prefs

    async def aclose(self) -> None:
        self._cancel_inflight("session closed")
        await self.api.aclose()

    def _new_chat_token(self) -> CancellationToken:
        if self._chat_cancel is not None:
            self._chat_cancel.cancel("superseded")
        self._chat_cancel = CancellationToken()
        return self._chat_cancel

    def _cancel_inflight(self, reason: str) -> None:
        if self._chat_cancel is not None:
            self._chat_cancel.cancel(reason)
            self._chat_cancel = None
        self.suggestion_fetcher.cancel()
