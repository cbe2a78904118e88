from __future__ import annotations

import base64
from typing import TYPE_CHECKING, Any

from paperchat.config import settings
from paperchat.core.exceptions import CompletionError, MissingContextError
from paperchat.core.models.message import PDF_MEDIA_TYPE, SUMMARY_SENTINEL
from paperchat.core.prompts import (
    ASSISTANT_PROMPT,
    SUGGESTION_INSTRUCTIONS,
    TITLE_INSTRUCTIONS,
    build_suggestion_input,
    select_summary_template,
)
from paperchat.core.schemas.completion import SuggestionResult, TitleResult
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from openai import AsyncOpenAI  # type: ignore[import-not-found]

    from paperchat.api.v1.schemas.chat import ChatRequest, ChatTurn

logger = get_logger(__name__)

STREAM_FAILED = "Streaming failed."


class CompletionService:
    """Adapts completion requests to the OpenAI Responses API.

    Chat and summary flavors stream ``delta`` events followed by ``done``;
    suggestion and title flavors return validated structured output.
    """

    def __init__(self, openai_client: AsyncOpenAI) -> None:
        self._client = openai_client

    @staticmethod
    def _file_part(pdf_data: bytes, filename: str | None) -> dict[str, Any]:
        encoded = base64.b64encode(pdf_data).decode("ascii")
        return {
            "type": "input_file",
            "filename": filename or "paper.pdf",
            "file_data": f"data:{PDF_MEDIA_TYPE};base64,{encoded}",
        }

    def _build_input(self, request: ChatRequest, turns: list[ChatTurn]) -> list[dict[str, Any]]:
        """Translate client turns into Responses API input items.

        The document is attached where the client placed its file marker, or to
        the first user turn when no marker is present.
        """
        pdf = request.pdf_data
        attach_at: int | None = None
        if pdf:
            marked = [i for i, t in enumerate(turns) if t.role == "user" and t.has_file]
            first_user = [i for i, t in enumerate(turns) if t.role == "user"]
            attach_at = (marked or first_user or [None])[0]

        items: list[dict[str, Any]] = []
        for index, turn in enumerate(turns):
            if turn.role == "assistant":
                items.append({"role": "assistant", "content": turn.text})
                continue
            role = "system" if turn.role == "system" else "user"
            if index == attach_at:
                filename = None
                if not isinstance(turn.content, str):
                    filename = next((p.filename for p in turn.content if p.type == "file"), None)
                content = [{"type": "input_text", "text": turn.text}, self._file_part(pdf, filename)]
                items.append({"role": role, "content": content})
            else:
                items.append({"role": role, "content": turn.text})

        if pdf and attach_at is None:
            items.insert(0, {"role": "user", "content": [self._file_part(pdf, None)]})
        return items

    def _stream_kwargs(self, *, instructions: str, input_items: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "model": settings.chat_model,
            "instructions": instructions,
            "input": input_items,
            "temperature": settings.chat_temperature,
            "max_output_tokens": settings.chat_max_output_tokens,
            "store": False,
        }

    async def stream_chat(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        """Stream an ordinary chat reply."""
        turns = [t for t in request.messages if t.text != SUMMARY_SENTINEL]
        kwargs = self._stream_kwargs(instructions=ASSISTANT_PROMPT, input_items=self._build_input(request, turns))
        async for event in self._relay(kwargs, flavor="chat"):
            yield event

    async def stream_summary(self, request: ChatRequest) -> AsyncIterator[dict[str, Any]]:
        """Stream the first summary; instructions come from the familiarity × goal matrix."""
        if not request.pdf_data:
            raise MissingContextError("A summary needs the document")
        instructions = request.system_prompt
        if not instructions:
            try:
                instructions = select_summary_template(request.familiarity or "Beginner", request.goal or "Just skimming")
            except ValueError:
                instructions = select_summary_template("Beginner", "Just skimming")

        turns = [t for t in request.messages if t.text != SUMMARY_SENTINEL and t.role != "assistant"]
        # Keep only the turn that carries the document; the summary starts fresh.
        turns = [t for t in turns if t.has_file][:1]
        input_items = self._build_input(request, turns)
        input_items.append({"role": "user", "content": "Summarize the attached paper."})
        kwargs = self._stream_kwargs(instructions=instructions, input_items=input_items)
        async for event in self._relay(kwargs, flavor="summary"):
            yield event

    async def _relay(self, kwargs: dict[str, Any], *, flavor: str) -> AsyncIterator[dict[str, Any]]:
        try:
            async with self._client.responses.stream(**kwargs) as stream:  # type: ignore[attr-defined]
                async for event in stream:
                    etype = getattr(event, "type", None)
                    if etype is None and isinstance(event, dict):
                        etype = event.get("type")

                    if etype == "response.output_text.delta":
                        delta = getattr(event, "delta", None)
                        if delta is None and isinstance(event, dict):
                            delta = event.get("delta")
                        if delta:
                            yield {"type": "delta", "delta": str(delta)}
                    elif etype in {"response.error", "error", "response.failed"}:
                        msg = getattr(event, "error", None) or getattr(event, "message", None)
                        if isinstance(msg, dict):
                            msg = msg.get("message")
                        yield {"type": "error", "message": str(msg or STREAM_FAILED)}
                        return
                    elif etype == "response.completed":
                        yield {"type": "done"}
                        return
        except Exception as err:
            logger.error("Responses API stream failed: %s", err, extra={"flavor": flavor})
            yield {"type": "error", "message": STREAM_FAILED}
            return
        yield {"type": "done"}

    async def generate_suggestions(self, request: ChatRequest) -> list[str]:
        if not request.pdf_data:
            raise MissingContextError("Suggestions need the document")
        history = [(t.role, t.text) for t in request.messages if t.text != SUMMARY_SENTINEL][-4:]
        composed = build_suggestion_input(request.system_prompt, history, request.selected_text)
        input_items = [
            {"role": "user", "content": [{"type": "input_text", "text": composed}, self._file_part(request.pdf_data, None)]}
        ]
        result = await self._parse(SUGGESTION_INSTRUCTIONS, input_items, SuggestionResult)
        logger.info("Suggestions generated", extra={"count": len(result.suggestions)})
        return result.suggestions

    async def generate_title(self, request: ChatRequest) -> str:
        if not request.pdf_data:
            raise MissingContextError("A title needs the document")
        input_items = [
            {
                "role": "user",
                "content": [
                    {"type": "input_text", "text": "Suggest a title for a chat about this paper."},
                    self._file_part(request.pdf_data, None),
                ],
            }
        ]
        result = await self._parse(TITLE_INSTRUCTIONS, input_items, TitleResult)
        return result.title

    async def _parse(self, instructions: str, input_items: list[dict[str, Any]], text_format: type) -> Any:
        try:
            response = await self._client.responses.parse(
                model=settings.structured_model,
                instructions=instructions,
                input=input_items,
                text_format=text_format,
                store=False,
            )
        except Exception as err:
            logger.error("Structured completion failed: %s", err)
            logger.error("Error type: %s", type(err).__name__)
            raise CompletionError(str(err) or "Structured completion failed") from err

        if getattr(response, "refusal", None):
            logger.warning("Model refused structured request: %s", response.refusal)
            raise CompletionError("The model refused the request")

        result = getattr(response, "output_parsed", None)
        if result is None:
            raise CompletionError("The model returned no structured output")
        return result
