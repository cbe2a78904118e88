from __future__ import annotations

from paperchat.core.services.completion_service import CompletionService
from paperchat.utils.openai_client import get_openai_client


def get_completion_service() -> CompletionService:
    """Construct CompletionService with the shared OpenAI client."""
    return CompletionService(get_openai_client())
