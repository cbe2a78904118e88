from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import TypeAdapter, ValidationError

from paperchat.core.exceptions import StorageError
from paperchat.core.models.thread import DEFAULT_THREAD_NAME, NAME_HINT_LENGTH, Thread
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from paperchat.core.models.message import Message
    from paperchat.core.repositories.key_value_storage import KeyValueStorage

logger = get_logger(__name__)

THREADS_KEY = "chatThreads"

_threads_adapter = TypeAdapter(list[Thread])


class ThreadStore:
    """Owns the conversation threads and the active thread id.

    The full thread list is written to storage after every mutation. Storage
    failures are logged and otherwise ignored: the in-memory list stays the
    source of truth for the session.
    """

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._threads: list[Thread] = []
        self._active_id: str | None = None
        self._messages: list[Message] = []

    @property
    def threads(self) -> tuple[Thread, ...]:
        """Threads, newest first."""
        return tuple(self._threads)

    @property
    def active_id(self) -> str | None:
        return self._active_id

    @property
    def active_thread(self) -> Thread | None:
        return self.get(self._active_id) if self._active_id else None

    @property
    def messages(self) -> list[Message]:
        """Live message buffer of the active thread."""
        return list(self._messages)

    def visible_messages(self) -> list[Message]:
        return [m for m in self._messages if not m.is_sentinel]

    def get(self, thread_id: str) -> Thread | None:
        for thread in self._threads:
            if thread.id == thread_id:
                return thread
        return None

    async def load(self) -> None:
        """Rehydrate threads from storage and activate the most recent one."""
        try:
            raw = await self._storage.read(THREADS_KEY)
        except StorageError as err:
            logger.error("Error loading chat threads: %s", err)
            return
        if not raw:
            return
        try:
            threads = _threads_adapter.validate_json(raw)
        except ValidationError as err:
            logger.error("Discarding unreadable chat threads: %s", err)
            return

        self._threads = threads
        if threads:
            self._active_id = threads[0].id
            self._messages = list(threads[0].messages)
        logger.info("Loaded %d chat threads", len(threads))

    async def create_thread(
        self,
        initial_messages: Sequence[Message] | None = None,
        name: str = DEFAULT_THREAD_NAME,
    ) -> str:
        thread = Thread(name=name, messages=list(initial_messages or []))
        self._threads.insert(0, thread)
        self._active_id = thread.id
        self._messages = list(thread.messages)
        logger.debug("Created thread %s", thread.id)
        await self.persist()
        return thread.id

    def switch_thread(self, thread_id: str) -> bool:
        """Activate a stored thread. Unknown ids are ignored."""
        thread = self.get(thread_id)
        if thread is None:
            logger.debug("Ignoring switch to unknown thread %s", thread_id)
            return False
        self._active_id = thread_id
        self._messages = list(thread.messages)
        return True

    async def replace_messages(
        self,
        thread_id: str,
        messages: Sequence[Message],
        *,
        name_hint: str | None = None,
        persist: bool = True,
    ) -> None:
        """Overwrite a thread's message list with a complete snapshot.

        While the thread still carries a placeholder name, ``name_hint`` (the
        user's first message) becomes its name.
        """
        thread = self.get(thread_id)
        if thread is None:
            logger.warning("Dropping messages for unknown thread %s", thread_id)
            return
        thread.messages = list(messages)
        if name_hint and thread.has_placeholder_name:
            thread.name = name_hint.strip()[:NAME_HINT_LENGTH] or thread.name
        if thread_id == self._active_id:
            self._messages = list(messages)
        if persist:
            await self.persist()

    async def rename(self, thread_id: str, name: str) -> None:
        thread = self.get(thread_id)
        if thread is None:
            return
        thread.name = name
        await self.persist()

    async def persist(self) -> None:
        try:
            payload = _threads_adapter.dump_json(self._threads).decode("utf-8")
            await self._storage.write(THREADS_KEY, payload)
        except StorageError as err:
            logger.error("Failed to persist chat threads: %s", err)
