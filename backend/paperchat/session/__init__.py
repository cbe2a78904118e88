from .api_client import CompletionApiClient
from .bootstrap import Bootstrap, BootstrapState
from .cancellation import CancellationToken
from .chat import ChatOrchestrator, ChatTurnResult
from .chat_session import ChatSession
from .notifications import Notification, NotificationCenter
from .suggestions import SuggestionFetcher
from .thread_store import ThreadStore

__all__ = [
    "Bootstrap",
    "BootstrapState",
    "CancellationToken",
    "ChatOrchestrator",
    "ChatSession",
    "ChatTurnResult",
    "CompletionApiClient",
    "Notification",
    "NotificationCenter",
    "SuggestionFetcher",
    "ThreadStore",
]
