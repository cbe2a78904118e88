"""
PaperChat CLI: run the completion API or chat about a paper from the terminal.

Registered as the `paperchat` console script via pyproject.toml.
"""
from __future__ import annotations

import asyncio
from pathlib import Path

import click

from paperchat.config import settings
from paperchat.core.exceptions import PaperChatError
from paperchat.core.models.message import Role
from paperchat.core.models.preferences import Familiarity, Goal
from paperchat.core.repositories.implementations.file.key_value_storage import FileKeyValueStorage
from paperchat.session.api_client import CompletionApiClient
from paperchat.session.chat_session import ChatSession
from paperchat.utils.logging import setup_logging

HELP_TEXT = """Commands:
  /new                 start a new chat
  /threads             list chats
  /switch ID           open a chat by id (prefix is enough)
  /select TEXT         attach a highlighted excerpt to the next question
  /clear               drop the highlighted excerpt
  /prefs FAM GOAL      update preferences, e.g. /prefs Expert "Deep dive"
  /suggest N           ask suggestion N
  /quit                leave"""


@click.group()
@click.option("--log-level", default=None, help="Log level [default: PAPERCHAT_LOG_LEVEL, WARNING for chat].")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """PaperChat: chat with a research paper."""
    ctx.obj = {"log_level": log_level}


@main.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str, port: int, reload: bool) -> None:
    """Run the completion API."""
    import uvicorn

    setup_logging(ctx.obj["log_level"])
    uvicorn.run("paperchat.main:app", host=host, port=port, reload=reload)


@main.command()
@click.argument("pdf", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--familiarity",
    type=click.Choice([f.value for f in Familiarity]),
    default=Familiarity.BEGINNER.value,
    show_default=True,
)
@click.option(
    "--goal",
    type=click.Choice([g.value for g in Goal]),
    default=Goal.SKIMMING.value,
    show_default=True,
)
@click.option("--api-url", default=None, help=f"Completion API base URL [default: {settings.api_base_url}]")
@click.option(
    "--storage-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help=f"Where chats are kept [default: {settings.storage_dir}]",
)
@click.pass_context
def chat(
    ctx: click.Context,
    pdf: Path,
    familiarity: str,
    goal: str,
    api_url: str | None,
    storage_dir: Path | None,
) -> None:
    """Upload PDF, answer the survey, then chat about it."""
    setup_logging(ctx.obj["log_level"] or "WARNING")
    storage = FileKeyValueStorage(storage_dir or settings.storage_dir)
    try:
        asyncio.run(_chat_loop(pdf, familiarity, goal, api_url, storage))
    except (KeyboardInterrupt, EOFError):
        click.echo()


async def _chat_loop(pdf: Path, familiarity: str, goal: str, api_url: str | None, storage: FileKeyValueStorage) -> None:
    session = ChatSession(CompletionApiClient(api_url), storage)
    session.notifications.subscribe(_print_notifications)
    try:
        await session.start(expect_upload=True)
        await session.upload_pdf(pdf.read_bytes(), pdf.name)
        click.secho(f"Loaded {pdf.name}. Preparing a summary...", fg="cyan")
        await session.submit_survey(familiarity, goal)
        await session.suggestion_fetcher.wait_idle()
        _print_thread(session)
        click.echo(HELP_TEXT)

        while True:
            _print_suggestions(session)
            line = (await asyncio.to_thread(click.prompt, "you", prompt_suffix="> ")).strip()
            if not line:
                continue
            if line.startswith("/"):
                if not await _run_command(session, line):
                    break
                continue
            await _ask(session, line)
    finally:
        await session.aclose()


async def _ask(session: ChatSession, text: str) -> None:
    try:
        result = await session.send_message(text, on_delta=lambda delta: click.echo(delta, nl=False))
    except PaperChatError as err:
        click.secho(f"Error: {err}", fg="red", err=True)
        return
    if result is None:
        return
    if result.text:
        click.echo()
    await session.suggestion_fetcher.wait_idle()


async def _run_command(session: ChatSession, line: str) -> bool:
    command, _, arg = line.partition(" ")
    arg = arg.strip()
    try:
        if command == "/quit":
            return False
        if command == "/new":
            thread_id = await session.new_chat()
            click.secho(f"New chat {thread_id[:8]}", fg="cyan")
        elif command == "/threads":
            for thread in session.thread_list:
                marker = "*" if thread.id == session.active_thread_id else " "
                click.echo(f"{marker} {thread.id[:8]}  {thread.created_at:%Y-%m-%d}  {thread.name}")
        elif command == "/switch":
            match = next((t for t in session.thread_list if t.id.startswith(arg)), None) if arg else None
            if match is None or not session.switch_thread(match.id):
                click.secho("No such chat", fg="red")
            else:
                _print_thread(session)
        elif command == "/select":
            session.select_text(arg)
            click.secho("Excerpt attached", fg="cyan")
        elif command == "/clear":
            session.clear_selected_text()
        elif command == "/prefs":
            fam, goal = _split_prefs(arg)
            await session.update_preferences(fam, goal)
            await session.suggestion_fetcher.wait_idle()
        elif command == "/suggest":
            suggestions = session.suggestions
            index = int(arg) - 1 if arg.isdigit() else -1
            if 0 <= index < len(suggestions):
                await _ask(session, suggestions[index])
            else:
                click.secho("No such suggestion", fg="red")
        else:
            click.echo(HELP_TEXT)
    except PaperChatError as err:
        click.secho(f"Error: {err}", fg="red", err=True)
    return True


def _split_prefs(arg: str) -> tuple[str, str]:
    for fam in Familiarity:
        if arg.startswith(fam.value):
            return fam.value, arg[len(fam.value):].strip().strip('"')
    head, _, tail = arg.partition(" ")
    return head, tail.strip().strip('"')


def _print_thread(session: ChatSession) -> None:
    thread = session.threads.active_thread
    if thread is not None:
        click.secho(f"== {thread.name}", bold=True)
    for message in session.messages:
        if message.role == Role.SYSTEM:
            click.secho(f"-- {message.text}", dim=True)
        elif message.role == Role.ASSISTANT:
            click.echo(message.text)
        else:
            click.secho(f"you> {message.text}", fg="green")


def _print_suggestions(session: ChatSession) -> None:
    for index, suggestion in enumerate(session.suggestions, start=1):
        click.secho(f"  [{index}] {suggestion}", dim=True)


def _print_notifications(notifications) -> None:
    if notifications:
        latest = notifications[-1]
        click.secho(f"! {latest.title}: {latest.description or ''}", fg="yellow", err=True)
