from __future__ import annotations

from pydantic import Field, field_validator

from paperchat.core.models.base import AppBaseModel

MAX_SUGGESTIONS = 7


class SuggestionResult(AppBaseModel):
    """Validated follow-up question suggestions."""

    suggestions: list[str] = Field(
        description="Short follow-up questions about the paper, 3 to 7 items",
        max_length=MAX_SUGGESTIONS,
    )

    @field_validator("suggestions")
    @classmethod
    def strip_blank(cls, v: list[str]) -> list[str]:
        return [s.strip() for s in v if s.strip()]

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "suggestions": [
                        "What is the main contribution?",
                        "How is the model evaluated?",
                        "What are the limitations?",
                    ]
                }
            ]
        }
    }


class TitleResult(AppBaseModel):
    """Validated chat title derived from the paper."""

    title: str = Field(description="Chat title of 2 to 4 words", min_length=1, max_length=80)

    @field_validator("title")
    @classmethod
    def normalize_title(cls, v: str) -> str:
        v = v.strip().strip('"').strip()
        if not v:
            raise ValueError("title must not be blank")
        return v
