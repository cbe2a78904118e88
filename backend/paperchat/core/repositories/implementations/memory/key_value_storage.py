from __future__ import annotations

from paperchat.core.repositories.key_value_storage import KeyValueStorage


class InMemoryKeyValueStorage(KeyValueStorage):
    """Process-local storage for ephemeral sessions and tests."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def read(self, key: str) -> str | None:
        return self._data.get(key)

    async def write(self, key: str, value: str) -> None:
        self._data[key] = value

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None
