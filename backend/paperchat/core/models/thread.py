from __future__ import annotations

from pydantic import Field

from .base import TimestampedModel, new_id
from .message import Message  # noqa: TCH001

DEFAULT_THREAD_NAME = "New Chat"
PLACEHOLDER_NAMES = frozenset({DEFAULT_THREAD_NAME, "Untitled"})

# Length of the thread name derived from the first user message.
NAME_HINT_LENGTH = 30


class Thread(TimestampedModel):
    """One persisted conversation about the loaded paper."""

    id: str = Field(default_factory=new_id, frozen=True)
    name: str = Field(default=DEFAULT_THREAD_NAME)
    messages: list[Message] = Field(default_factory=list)

    @property
    def has_placeholder_name(self) -> bool:
        return self.name in PLACEHOLDER_NAMES
