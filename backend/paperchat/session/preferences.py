from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import ValidationError

from paperchat.core.exceptions import StorageError
from paperchat.core.models.preferences import (
    Familiarity,
    Goal,
    Preferences,
    coerce_familiarity,
    coerce_goal,
)
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from paperchat.core.repositories.key_value_storage import KeyValueStorage

logger = get_logger(__name__)

PREFERENCES_KEY = "userPreferences"


class PreferenceState:
    """Current survey answers, read synchronously by prompt builders."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage
        self._preferences = Preferences()

    @property
    def preferences(self) -> Preferences:
        return self._preferences

    @property
    def familiarity(self) -> Familiarity:
        return self._preferences.familiarity

    @property
    def goal(self) -> Goal:
        return self._preferences.goal

    @property
    def survey_completed(self) -> bool:
        return self._preferences.survey_completed

    async def load(self) -> None:
        try:
            raw = await self._storage.read(PREFERENCES_KEY)
        except StorageError as err:
            logger.error("Error loading preferences: %s", err)
            return
        if not raw:
            return
        try:
            self._preferences = Preferences.model_validate_json(raw)
        except ValidationError as err:
            logger.error("Discarding unreadable preferences: %s", err)

    async def submit_survey(self, familiarity: Familiarity | str, goal: Goal | str) -> Preferences:
        self._preferences = Preferences(
            familiarity=coerce_familiarity(familiarity),
            goal=coerce_goal(goal),
            survey_completed=True,
        )
        logger.info(
            "Survey submitted",
            extra={"familiarity": self.familiarity.value, "goal": self.goal.value},
        )
        await self._persist()
        return self._preferences

    async def update_preferences(self, familiarity: Familiarity | str, goal: Goal | str) -> Preferences:
        self._preferences = self._preferences.model_copy(
            update={"familiarity": coerce_familiarity(familiarity), "goal": coerce_goal(goal)}
        )
        await self._persist()
        return self._preferences

    def reset_survey(self) -> None:
        """Require the survey again (new document) while keeping the last answers."""
        self._preferences = self._preferences.model_copy(update={"survey_completed": False})

    async def _persist(self) -> None:
        try:
            await self._storage.write(PREFERENCES_KEY, self._preferences.model_dump_json())
        except StorageError as err:
            logger.error("Failed to persist preferences: %s", err)
