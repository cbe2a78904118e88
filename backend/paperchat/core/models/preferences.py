from __future__ import annotations

from enum import Enum

from pydantic import Field

from paperchat.core.exceptions import PreferenceError

from .base import AppBaseModel


class Familiarity(str, Enum):
    """How familiar the reader is with the paper's topic."""

    BEGINNER = "Beginner"
    EXPERT = "Expert"


class Goal(str, Enum):
    """What the reader wants out of the paper."""

    SKIMMING = "Just skimming"
    DEEP_DIVE = "Deep dive"


def coerce_familiarity(value: Familiarity | str) -> Familiarity:
    try:
        return Familiarity(value)
    except ValueError as err:
        choices = ", ".join(f.value for f in Familiarity)
        raise PreferenceError(f"Unsupported familiarity {value!r}; expected one of: {choices}") from err


def coerce_goal(value: Goal | str) -> Goal:
    try:
        return Goal(value)
    except ValueError as err:
        choices = ", ".join(g.value for g in Goal)
        raise PreferenceError(f"Unsupported goal {value!r}; expected one of: {choices}") from err


class Preferences(AppBaseModel):
    """Survey answers that shape every prompt."""

    familiarity: Familiarity = Field(default=Familiarity.BEGINNER)
    goal: Goal = Field(default=Goal.SKIMMING)
    survey_completed: bool = False

    def summary_line(self) -> str:
        """Compact preference summary used as context for suggestion requests."""
        return (
            f"How familiar are you with the topic? {self.familiarity.value}\n"
            f"What is your goal regarding this paper? {self.goal.value}"
        )
