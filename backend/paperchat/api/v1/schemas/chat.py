from __future__ import annotations

import base64
import binascii
from typing import Any, Literal

from pydantic import Field, field_validator

from paperchat.core.models.base import AppBaseModel
from paperchat.core.models.message import SUMMARY_SENTINEL


class ContentPart(AppBaseModel):
    """One part of a multi-part turn: text, or the attached document marker."""

    type: Literal["text", "file"]
    text: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")
    filename: str | None = None


class ChatTurn(AppBaseModel):
    role: Literal["user", "assistant", "system"]
    content: str | list[ContentPart]

    @property
    def text(self) -> str:
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text or "" for part in self.content if part.type == "text")

    @property
    def has_file(self) -> bool:
        return not isinstance(self.content, str) and any(p.type == "file" for p in self.content)


class ChatRequest(AppBaseModel):
    """Body of the single completion route; flags select the response flavor."""

    messages: list[ChatTurn] = Field(default_factory=list)
    pdf_data: bytes | None = Field(
        default=None,
        alias="pdfData",
        description="Document bytes, base64 encoded or as an array of byte values",
    )
    system_prompt: str | None = Field(default=None, alias="systemPrompt")
    familiarity: str | None = None
    goal: str | None = None
    selected_text: str | None = Field(default=None, alias="selectedText")
    is_suggestion_request: bool = Field(default=False, alias="isSuggestionRequest")
    is_title_request: bool = Field(default=False, alias="isTitleRequest")
    id: str | None = Field(default=None, description="Client thread id, used for logging only")

    @field_validator("pdf_data", mode="before")
    @classmethod
    def decode_pdf(cls, v: Any) -> bytes | None:
        if v is None or v == "":
            return None
        if isinstance(v, bytes):
            return v
        if isinstance(v, list):
            try:
                return bytes(v)
            except (TypeError, ValueError) as err:
                raise ValueError("pdfData array must contain byte values") from err
        if isinstance(v, str):
            try:
                return base64.b64decode(v, validate=True)
            except (binascii.Error, ValueError) as err:
                raise ValueError("pdfData must be valid base64") from err
        raise ValueError("Unsupported pdfData encoding")

    @property
    def is_summary_request(self) -> bool:
        return bool(self.messages) and self.messages[-1].text == SUMMARY_SENTINEL


class SuggestionsResponse(AppBaseModel):
    suggestions: list[str]


class TitleResponse(AppBaseModel):
    title: str


class ErrorResponse(AppBaseModel):
    error: str
