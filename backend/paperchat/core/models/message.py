from __future__ import annotations

from datetime import datetime  # noqa: TCH003
from enum import Enum
from typing import Annotated, Literal

from pydantic import Field

from .base import AppBaseModel, new_id, utcnow

# Control message content that asks the completion endpoint for a summary.
SUMMARY_SENTINEL = "GENERATE_SUMMARY"

PDF_MEDIA_TYPE = "application/pdf"


class Role(str, Enum):
    """Author of a message."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TextSegment(AppBaseModel):
    type: Literal["text"] = "text"
    text: str


class FileSegment(AppBaseModel):
    """Marker for the attached document; the bytes travel separately."""

    type: Literal["file"] = "file"
    filename: str = "paper.pdf"
    media_type: str = PDF_MEDIA_TYPE


Segment = Annotated[TextSegment | FileSegment, Field(discriminator="type")]


class PlainText(AppBaseModel):
    kind: Literal["plain"] = "plain"
    text: str = ""

    def as_text(self) -> str:
        return self.text


class Segments(AppBaseModel):
    kind: Literal["segments"] = "segments"
    parts: list[Segment] = Field(default_factory=list)

    def as_text(self) -> str:
        return "".join(part.text for part in self.parts if isinstance(part, TextSegment))

    @property
    def has_file(self) -> bool:
        return any(isinstance(part, FileSegment) for part in self.parts)


MessageContent = Annotated[PlainText | Segments, Field(discriminator="kind")]


class Message(AppBaseModel):
    """One entry of a thread's conversation."""

    id: str = Field(default_factory=new_id)
    role: Role
    content: MessageContent
    created_at: datetime | None = Field(default_factory=utcnow)

    @classmethod
    def user(cls, text: str) -> Message:
        return cls(role=Role.USER, content=PlainText(text=text))

    @classmethod
    def assistant(cls, text: str = "") -> Message:
        return cls(role=Role.ASSISTANT, content=PlainText(text=text))

    @classmethod
    def notice(cls, text: str) -> Message:
        """Inline, non-bubble system notice."""
        return cls(role=Role.SYSTEM, content=PlainText(text=text))

    @classmethod
    def with_attachment(cls, text: str, filename: str) -> Message:
        """User message carrying a text segment plus the document marker."""
        return cls(
            role=Role.USER,
            content=Segments(parts=[TextSegment(text=text), FileSegment(filename=filename)]),
        )

    @property
    def text(self) -> str:
        return self.content.as_text()

    @property
    def is_sentinel(self) -> bool:
        return self.text == SUMMARY_SENTINEL

    def with_text(self, text: str) -> Message:
        """Copy of this message with its content replaced by plain text."""
        return self.model_copy(update={"content": PlainText(text=text)})
