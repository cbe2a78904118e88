from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAPERCHAT_",
        extra="ignore",
        case_sensitive=False,
    )

    # Application
    debug: bool = False
    log_level: str = "INFO"

    # API
    api_prefix: str = "/api/v1"
    cors_origins: list[str] = [
        "http://localhost:3000",
        "http://localhost:8000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:8000",
    ]

    cors_origin_regex: str | None = None
    trusted_hosts: list[str] = ["*"]
    root_path: str = ""

    # OpenAI
    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_timeout: float = 60.0
    openai_max_retries: int = 2
    chat_model: str = "gpt-4.1-mini"
    chat_temperature: float = 0.7
    chat_max_output_tokens: int = 4096

    structured_model: str = "gpt-4.1-mini"

    # Chat session (client side)
    api_base_url: str = "http://127.0.0.1:8000/api/v1"
    request_timeout: float = 120.0
    storage_dir: Path = Path(".paperchat")


settings = Settings()
