from __future__ import annotations


class PaperChatError(Exception):
    """Base class for errors raised by the chat session and completion service."""


class TransportError(PaperChatError):
    """Network failure or non-success HTTP status from the completion endpoint."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class UpstreamError(PaperChatError):
    """The completion endpoint reported an error inside a streamed response."""


class ResponseParseError(PaperChatError):
    """A streamed chunk or a JSON body could not be decoded."""


class StreamInterruptedError(PaperChatError):
    """The stream ended before its completion marker arrived."""


class MissingContextError(PaperChatError):
    """A request was skipped because required context (e.g. PDF bytes) is absent."""


class StorageError(PaperChatError):
    """Reading or writing local durable storage failed."""


class PreferenceError(PaperChatError, ValueError):
    """A familiarity or goal value outside the supported choices."""


class ChatBusyError(PaperChatError):
    """A chat turn was started while another one is still streaming."""


class CompletionError(PaperChatError):
    """The model provider call failed on the server side."""
