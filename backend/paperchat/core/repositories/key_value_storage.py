from __future__ import annotations

from abc import ABC, abstractmethod


class KeyValueStorage(ABC):
    """Abstract local durable storage.

    Each key holds one whole document; writes overwrite the full value and never
    patch it incrementally. Implementations raise ``StorageError`` on failure.
    """

    @abstractmethod
    async def read(self, key: str) -> str | None:  # pragma: no cover - interface only
        """Return the stored value or None if the key is absent."""

    @abstractmethod
    async def write(self, key: str, value: str) -> None:  # pragma: no cover
        """Replace the value stored under key."""

    @abstractmethod
    async def delete(self, key: str) -> bool:  # pragma: no cover
        """Remove the key. Return True if a value was removed, False otherwise."""
