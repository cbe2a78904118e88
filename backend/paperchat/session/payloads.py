"""Request bodies for the completion route.

Every builder returns a plain dict ready for JSON encoding, using the route's
camelCase field names.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

from paperchat.core.models.message import PDF_MEDIA_TYPE, SUMMARY_SENTINEL, Role
from paperchat.core.prompts import build_instruction_prompt

if TYPE_CHECKING:
    from collections.abc import Sequence

    from paperchat.core.models.message import Message
    from paperchat.core.models.preferences import Preferences
    from paperchat.session.pdf_context import PdfContext

SUGGESTION_CONTEXT_SIZE = 4


def conversation_turns(messages: Sequence[Message]) -> list[Message]:
    """Messages that belong in model context: no sentinels, no inline notices."""
    return [m for m in messages if m.role != Role.SYSTEM and not m.is_sentinel]


def suggestion_context(messages: Sequence[Message], size: int = SUGGESTION_CONTEXT_SIZE) -> list[Message]:
    return conversation_turns(messages)[-size:]


def _wire_turn(message: Message) -> dict[str, Any]:
    return {"role": message.role.value, "content": message.text}


def _attachment_turn(message: Message, filename: str) -> dict[str, Any]:
    return {
        "role": message.role.value,
        "content": [
            {"type": "text", "text": message.text},
            {"type": "file", "mimeType": PDF_MEDIA_TYPE, "filename": filename},
        ],
    }


def build_chat_payload(
    messages: Sequence[Message],
    preferences: Preferences,
    pdf: PdfContext,
    *,
    summary_template: str | None = None,
) -> dict[str, Any]:
    """Body of a streamed chat turn, or of the summary when a template is given.

    A leading user-role instruction turn carries the reader's preferences and
    the highlighted excerpt. Only the first user turn carries the document.
    """
    selected_text = pdf.selected_text or None
    turns: list[dict[str, Any]] = [
        {"role": Role.USER.value, "content": build_instruction_prompt(preferences, selected_text)}
    ]
    attached = False
    for message in conversation_turns(messages):
        if not attached and pdf.has_document and message.role == Role.USER:
            turns.append(_attachment_turn(message, pdf.filename or "paper.pdf"))
            attached = True
        else:
            turns.append(_wire_turn(message))

    system_prompt = summary_template or build_instruction_prompt(preferences, selected_text)
    if summary_template is not None:
        turns.append({"role": Role.USER.value, "content": SUMMARY_SENTINEL})

    payload: dict[str, Any] = {
        "messages": turns,
        "pdfData": pdf.encoded(),
        "systemPrompt": system_prompt,
        "familiarity": preferences.familiarity.value,
        "goal": preferences.goal.value,
    }
    if selected_text:
        payload["selectedText"] = selected_text
    return payload


def build_suggestion_payload(
    messages: Sequence[Message],
    preferences: Preferences,
    pdf: PdfContext,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "messages": [_wire_turn(m) for m in suggestion_context(messages)],
        "pdfData": pdf.encoded(),
        "systemPrompt": preferences.summary_line(),
        "isSuggestionRequest": True,
    }
    if pdf.selected_text:
        payload["selectedText"] = pdf.selected_text
    return payload


def build_title_payload(pdf: PdfContext) -> dict[str, Any]:
    return {"messages": [], "pdfData": pdf.encoded(), "isTitleRequest": True}
