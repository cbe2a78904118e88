import asyncio

import httpx
import pytest

from conftest import PDF_BYTES, BrokenStream, sse
from paperchat.core.exceptions import ChatBusyError
from paperchat.core.models.message import SUMMARY_SENTINEL, Message, Role
from paperchat.core.prompts import UPLOAD_INTRO
from paperchat.session.cancellation import CancellationToken


async def _ready_session(session):
    await session.start()
    await session.upload_pdf(PDF_BYTES, "paper.pdf")
    await session.submit_survey("Beginner", "Just skimming")
    await session.suggestion_fetcher.wait_idle()
    return session


@pytest.mark.asyncio
async def test_streamed_reply_accumulates_into_last_message(session, server):
    await _ready_session(session)
    server.chat = lambda body: httpx.Response(200, content=sse("The ", "main ", "contribution."))

    result = await session.send_message("What is the main contribution?")

    assert result.completed
    assert result.text == "The main contribution."
    assert session.messages[-2].text == "What is the main contribution?"
    assert session.messages[-1].role == Role.ASSISTANT
    assert session.messages[-1].text == "The main contribution."
    assert not session.is_loading
    assert session.error is None


@pytest.mark.asyncio
async def test_placeholder_is_replaced_not_appended(session, server, monkeypatch):
    await _ready_session(session)
    server.chat = lambda body: httpx.Response(200, content=sse("a", "b", "c"))
    snapshots = []
    original = session.threads.replace_messages

    async def spy(thread_id, messages, **kwargs):
        snapshots.append([m.text for m in messages])
        await original(thread_id, messages, **kwargs)

    monkeypatch.setattr(session.threads, "replace_messages", spy)
    await session.send_message("go")

    tails = [s[-1] for s in snapshots if s[-2:-1] == ["go"]]
    assert tails == ["", "a", "ab", "abc", "abc"]
    assert all(len(s) == len(snapshots[-1]) for s in snapshots[1:])


@pytest.mark.asyncio
async def test_payload_carries_instruction_turn_and_pdf_on_first_user_turn(session, server):
    await _ready_session(session)
    await session.send_message("First question")
    await session.suggestion_fetcher.wait_idle()
    await session.send_message("Second question")

    body = server.bodies("chat")[-1]
    turns = body["messages"]
    assert turns[0]["role"] == "user"
    assert "How familiar are you with the topic? Beginner" in turns[0]["content"]

    attached = [t for t in turns if isinstance(t["content"], list)]
    assert len(attached) == 1
    assert attached[0]["content"][0] == {"type": "text", "text": UPLOAD_INTRO}
    assert attached[0]["content"][1]["type"] == "file"

    texts = [t["content"] for t in turns[1:] if isinstance(t["content"], str)]
    assert SUMMARY_SENTINEL not in texts
    assert texts[-1] == "Second question"
    assert body["pdfData"]
    assert body["familiarity"] == "Beginner"
    assert body["goal"] == "Just skimming"


@pytest.mark.asyncio
async def test_selected_excerpt_is_sent_then_omitted_after_clearing(session, server):
    await _ready_session(session)
    excerpt = "Theorem 2. The estimator is unbiased."

    session.select_text(excerpt)
    await session.send_message("Explain this")
    first = server.bodies("chat")[-1]
    assert first["messages"][0]["content"].endswith(excerpt)
    assert first["selectedText"] == excerpt

    await session.suggestion_fetcher.wait_idle()
    session.clear_selected_text()
    await session.send_message("And now?")
    second = server.bodies("chat")[-1]
    assert excerpt not in second["messages"][0]["content"]
    assert "selectedText" not in second


@pytest.mark.asyncio
async def test_http_error_removes_placeholder_and_sets_error(session, server):
    await _ready_session(session)
    before = [m.id for m in session.messages]
    server.chat = lambda body: httpx.Response(500, json={"error": "model unavailable"})

    result = await session.send_message("Will this fail?")

    assert result.error is not None
    assert session.error is not None
    assert [m.text for m in session.messages][-1] == "Will this fail?"
    assert len(session.messages) == len(before) + 1
    assert not session.is_loading
    assert session.notifications.notifications[-1].description == "model unavailable"


@pytest.mark.asyncio
async def test_interrupted_stream_keeps_received_text_and_reenables_input(session, server):
    await _ready_session(session)
    server.chat = lambda body: httpx.Response(200, stream=BrokenStream(sse("Partial ", "answer", done=False)))

    result = await session.send_message("Tell me everything")

    assert not result.completed
    assert session.messages[-1].role == Role.ASSISTANT
    assert session.messages[-1].text == "Partial answer"
    assert session.input_enabled
    assert session.error is not None


@pytest.mark.asyncio
async def test_stream_without_done_marker_is_treated_as_interrupted(session, server):
    await _ready_session(session)
    server.chat = lambda body: httpx.Response(200, content=sse("cut", done=False))

    result = await session.send_message("Short")

    assert result.text == "cut"
    assert not result.completed
    assert session.messages[-1].text == "cut"


@pytest.mark.asyncio
async def test_malformed_chunk_stops_accumulating(session, server):
    await _ready_session(session)
    body = sse("kept", done=False) + b"event: delta\ndata: {oops\n\n" + sse("lost")
    server.chat = lambda _: httpx.Response(200, content=body)

    result = await session.send_message("Parse me")

    assert result.text == "kept"
    assert session.messages[-1].text == "kept"


@pytest.mark.asyncio
async def test_successful_turn_triggers_suggestion_refresh(session, server):
    await _ready_session(session)
    count = len(server.bodies("suggestions"))

    await session.send_message("Anything")
    await session.suggestion_fetcher.wait_idle()

    assert len(server.bodies("suggestions")) == count + 1


@pytest.mark.asyncio
async def test_failed_suggestions_do_not_affect_chat_result(session, server):
    await _ready_session(session)
    server.suggestions = lambda body: httpx.Response(500, json={"error": "boom"})

    result = await session.send_message("Anything")
    await session.suggestion_fetcher.wait_idle()

    assert result.completed
    assert session.messages[-1].text == "Hello there"
    assert session.suggestions == []


@pytest.mark.asyncio
async def test_reply_is_written_to_thread_captured_at_send(session, server):
    await _ready_session(session)
    origin = session.active_thread_id
    other = await session.new_chat()
    session.switch_thread(origin)

    release = asyncio.Event()

    async def slow_stream():
        yield sse("first ", done=False)
        await release.wait()
        yield sse("second")

    class SlowStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            async for chunk in slow_stream():
                yield chunk

    server.chat = lambda body: httpx.Response(200, stream=SlowStream())
    send = asyncio.create_task(session.chat.send("Long question"))
    await asyncio.sleep(0.01)

    session.threads.switch_thread(other)
    release.set()
    result = await send

    assert result.thread_id == origin
    assert session.threads.get(origin).messages[-1].text == "first second"
    assert session.threads.get(other).messages == []
    assert session.messages == []


@pytest.mark.asyncio
async def test_cancelled_stream_keeps_partial_text(session, server):
    await _ready_session(session)
    token = CancellationToken()
    release = asyncio.Event()

    class SlowStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield sse("partial", done=False)
            await release.wait()
            yield sse(" rest")

    server.chat = lambda body: httpx.Response(200, stream=SlowStream())
    send = asyncio.create_task(session.chat.send("Cancel me", cancel=token))
    await asyncio.sleep(0.01)
    token.cancel("new chat")
    release.set()
    result = await send

    assert result.cancelled
    assert not result.completed
    assert result.text == "partial"
    assert not session.is_loading


@pytest.mark.asyncio
async def test_sending_while_streaming_is_rejected(session, server):
    await _ready_session(session)
    release = asyncio.Event()

    class SlowStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            await release.wait()
            yield sse("done")

    server.chat = lambda body: httpx.Response(200, stream=SlowStream())
    send = asyncio.create_task(session.send_message("first"))
    await asyncio.sleep(0.01)

    assert not session.input_enabled
    with pytest.raises(ChatBusyError):
        await session.send_message("second")

    release.set()
    await send
    assert session.input_enabled


@pytest.mark.asyncio
async def test_blank_message_is_ignored(session, server):
    await _ready_session(session)
    count = len(server.requests)
    assert await session.send_message("   ") is None
    assert len(server.requests) == count


@pytest.mark.asyncio
async def test_system_notices_are_not_sent_to_the_model(session, server):
    await _ready_session(session)
    await session.update_preferences("Expert", "Deep dive")
    await session.suggestion_fetcher.wait_idle()
    await session.send_message("Go deeper")

    turns = server.bodies("chat")[-1]["messages"]
    assert all(t["content"] != "User preference updated" for t in turns)
    assert session.messages[-3].role == Role.SYSTEM
    assert isinstance(session.messages[-3], Message)


@pytest.mark.asyncio
async def test_new_chat_abandons_a_stream_that_never_resumes(session, server):
    await _ready_session(session)
    origin = session.active_thread_id
    stalled = asyncio.Event()

    class StalledStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            yield sse("partial", done=False)
            await stalled.wait()
            yield sse(" never")

    server.chat = lambda body: httpx.Response(200, stream=StalledStream())
    send = asyncio.create_task(session.send_message("Hang on"))
    await asyncio.sleep(0.01)

    await session.new_chat()
    result = await asyncio.wait_for(send, 1)

    assert result.cancelled
    assert result.text == "partial"
    assert session.threads.get(origin).messages[-1].text == "partial"
    assert not session.is_loading
    assert session.input_enabled


@pytest.mark.asyncio
async def test_already_cancelled_token_sends_nothing(api, server):
    token = CancellationToken()
    token.cancel("session closed")

    chunks = [chunk async for chunk in api.stream_text({"messages": []}, token)]

    assert chunks == []
    assert server.requests == []


@pytest.mark.asyncio
async def test_concurrent_sends_stream_a_single_reply(session, server):
    await _ready_session(session)
    release = asyncio.Event()

    class SlowStream(httpx.AsyncByteStream):
        async def __aiter__(self):
            await release.wait()
            yield sse("only reply")

    server.chat = lambda body: httpx.Response(200, stream=SlowStream())
    first = asyncio.create_task(session.send_message("one"))
    second = asyncio.create_task(session.send_message("two"))
    await asyncio.sleep(0.01)
    release.set()
    results = await asyncio.gather(first, second, return_exceptions=True)

    assert results[0].completed
    assert isinstance(results[1], ChatBusyError)
    assert len(server.bodies("chat")) == 1
    assert [m.text for m in session.messages][-2:] == ["one", "only reply"]
    assert "two" not in [m.text for m in session.messages]


@pytest.mark.asyncio
async def test_deltas_reach_the_callback_as_they_arrive(session, server):
    await _ready_session(session)
    seen = []

    result = await session.send_message("Stream it", on_delta=seen.append)

    assert seen == ["Hello", " there"]
    assert result.text == "".join(seen)
