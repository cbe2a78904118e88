import base64

import pytest

from conftest import PDF_BYTES, stream_event
from paperchat.api.v1.schemas.chat import ChatRequest
from paperchat.core.exceptions import CompletionError, MissingContextError
from paperchat.core.models.message import SUMMARY_SENTINEL
from paperchat.core.prompts import ASSISTANT_PROMPT, select_summary_template
from paperchat.core.schemas.completion import SuggestionResult, TitleResult
from paperchat.core.services.completion_service import CompletionService

PDF_B64 = base64.b64encode(PDF_BYTES).decode("ascii")


def _request(**fields):
    body = {"pdfData": PDF_B64, **fields}
    return ChatRequest.model_validate(body)


def _attached_turn(text="Read this"):
    return {
        "role": "user",
        "content": [
            {"type": "text", "text": text},
            {"type": "file", "mimeType": "application/pdf", "filename": "attention.pdf"},
        ],
    }


async def _collect(events):
    return [event async for event in events]


@pytest.mark.asyncio
async def test_chat_stream_relays_deltas_then_done(openai_client):
    service = CompletionService(openai_client)
    request = _request(messages=[{"role": "user", "content": "instructions"}, _attached_turn(), {"role": "user", "content": "Q?"}])

    events = await _collect(service.stream_chat(request))

    assert events == [
        {"type": "delta", "delta": "Hi"},
        {"type": "delta", "delta": " reader"},
        {"type": "done"},
    ]
    call = openai_client.responses.stream_calls[0]
    assert call["instructions"] == ASSISTANT_PROMPT
    assert call["input"][0] == {"role": "user", "content": "instructions"}
    assert call["input"][2] == {"role": "user", "content": "Q?"}


@pytest.mark.asyncio
async def test_document_is_attached_at_marked_turn(openai_client):
    service = CompletionService(openai_client)
    request = _request(messages=[{"role": "user", "content": "instructions"}, _attached_turn("Intro")])

    await _collect(service.stream_chat(request))

    content = openai_client.responses.stream_calls[0]["input"][1]["content"]
    assert content[0] == {"type": "input_text", "text": "Intro"}
    assert content[1]["type"] == "input_file"
    assert content[1]["filename"] == "attention.pdf"
    assert content[1]["file_data"] == f"data:application/pdf;base64,{PDF_B64}"


@pytest.mark.asyncio
async def test_document_falls_back_to_first_user_turn(openai_client):
    service = CompletionService(openai_client)
    request = _request(messages=[{"role": "assistant", "content": "Hello"}, {"role": "user", "content": "Q?"}])

    await _collect(service.stream_chat(request))

    items = openai_client.responses.stream_calls[0]["input"]
    assert items[0] == {"role": "assistant", "content": "Hello"}
    assert items[1]["content"][1]["type"] == "input_file"


@pytest.mark.asyncio
async def test_chat_without_document_sends_plain_turns(openai_client):
    service = CompletionService(openai_client)
    request = ChatRequest.model_validate({"messages": [{"role": "user", "content": "Q?"}]})

    await _collect(service.stream_chat(request))

    assert openai_client.responses.stream_calls[0]["input"] == [{"role": "user", "content": "Q?"}]


@pytest.mark.asyncio
async def test_summary_uses_client_template_and_drops_sentinel(openai_client):
    service = CompletionService(openai_client)
    template = select_summary_template("Expert", "Deep dive")
    request = _request(
        messages=[{"role": "user", "content": "instructions"}, _attached_turn(), {"role": "user", "content": SUMMARY_SENTINEL}],
        systemPrompt=template,
    )
    assert request.is_summary_request

    await _collect(service.stream_summary(request))

    call = openai_client.responses.stream_calls[0]
    assert call["instructions"] == template
    texts = [item["content"] for item in call["input"] if isinstance(item["content"], str)]
    assert SUMMARY_SENTINEL not in texts
    assert texts[-1] == "Summarize the attached paper."
    assert call["input"][0]["content"][1]["type"] == "input_file"


@pytest.mark.asyncio
async def test_summary_falls_back_to_matrix_template(openai_client):
    service = CompletionService(openai_client)
    request = _request(messages=[{"role": "user", "content": SUMMARY_SENTINEL}], familiarity="Beginner", goal="Deep dive")

    await _collect(service.stream_summary(request))

    assert openai_client.responses.stream_calls[0]["instructions"] == select_summary_template("Beginner", "Deep dive")


@pytest.mark.asyncio
async def test_summary_without_document_is_rejected(openai_client):
    service = CompletionService(openai_client)
    request = ChatRequest.model_validate({"messages": [{"role": "user", "content": SUMMARY_SENTINEL}]})

    with pytest.raises(MissingContextError):
        await _collect(service.stream_summary(request))


@pytest.mark.asyncio
async def test_upstream_error_event_is_relayed(openai_client):
    openai_client.responses.events = [
        stream_event("response.output_text.delta", delta="par"),
        stream_event("error", message="rate limited"),
    ]
    service = CompletionService(openai_client)

    events = await _collect(service.stream_chat(_request(messages=[{"role": "user", "content": "Q"}])))

    assert events == [{"type": "delta", "delta": "par"}, {"type": "error", "message": "rate limited"}]


@pytest.mark.asyncio
async def test_stream_exception_becomes_error_event(openai_client):
    openai_client.responses.events = [stream_event("response.output_text.delta", delta="par")]
    openai_client.responses.stream_error = RuntimeError("connection dropped")
    service = CompletionService(openai_client)

    events = await _collect(service.stream_chat(_request(messages=[{"role": "user", "content": "Q"}])))

    assert events[-1] == {"type": "error", "message": "Streaming failed."}
    assert {"type": "done"} not in events


@pytest.mark.asyncio
async def test_suggestions_are_parsed_from_structured_output(openai_client):
    openai_client.responses.parsed = SuggestionResult(suggestions=["What is new?", "How is it tested?"])
    service = CompletionService(openai_client)
    history = [{"role": "user", "content": f"q{i}"} for i in range(6)]
    request = _request(
        messages=[*history, {"role": "user", "content": SUMMARY_SENTINEL}],
        systemPrompt="How familiar are you with the topic? Expert",
        selectedText="Table 2",
        isSuggestionRequest=True,
    )

    assert await service.generate_suggestions(request) == ["What is new?", "How is it tested?"]

    call = openai_client.responses.parse_calls[0]
    assert call["text_format"] is SuggestionResult
    composed = call["input"][0]["content"][0]["text"]
    assert SUMMARY_SENTINEL not in composed
    assert "q1" not in composed and "q2" in composed and "q5" in composed
    assert "Table 2" in composed
    assert call["input"][0]["content"][1]["type"] == "input_file"


@pytest.mark.asyncio
async def test_title_is_parsed_from_structured_output(openai_client):
    openai_client.responses.parsed = TitleResult(title="Sparse Attention")
    service = CompletionService(openai_client)

    assert await service.generate_title(_request(isTitleRequest=True)) == "Sparse Attention"
    assert openai_client.responses.parse_calls[0]["text_format"] is TitleResult


@pytest.mark.asyncio
async def test_structured_requests_need_the_document(openai_client):
    service = CompletionService(openai_client)
    request = ChatRequest.model_validate({"isTitleRequest": True})

    with pytest.raises(MissingContextError):
        await service.generate_title(request)
    with pytest.raises(MissingContextError):
        await service.generate_suggestions(request)
    assert openai_client.responses.parse_calls == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("parsed", "refusal", "error"),
    [
        (None, None, RuntimeError("timeout")),
        (None, "I can't help with that", None),
        (None, None, None),
    ],
)
async def test_structured_failures_raise_completion_error(openai_client, parsed, refusal, error):
    openai_client.responses.parsed = parsed
    openai_client.responses.refusal = refusal
    openai_client.responses.parse_error = error
    service = CompletionService(openai_client)

    with pytest.raises(CompletionError):
        await service.generate_title(_request(isTitleRequest=True))
