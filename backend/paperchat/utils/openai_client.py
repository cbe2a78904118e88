from __future__ import annotations

from functools import lru_cache

from openai import AsyncOpenAI

from paperchat.config import settings
from paperchat.utils.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_openai_client() -> AsyncOpenAI:
    """Shared Responses API client for the completion route.

    Falls back to the SDK's own OPENAI_API_KEY and base URL lookup when the
    PAPERCHAT_ overrides are unset. Timeout and retry budget always come from
    settings.
    """
    options: dict[str, object] = {
        "timeout": settings.openai_timeout,
        "max_retries": settings.openai_max_retries,
    }
    if settings.openai_api_key:
        options["api_key"] = settings.openai_api_key
    if settings.openai_base_url:
        options["base_url"] = settings.openai_base_url

    logger.debug(
        "Initializing OpenAI client",
        extra={
            "explicit_key": bool(settings.openai_api_key),
            "base_url": settings.openai_base_url or "default",
            "timeout": settings.openai_timeout,
            "max_retries": settings.openai_max_retries,
        },
    )
    return AsyncOpenAI(**options)
