from __future__ import annotations

import asyncio
import os
import re
import tempfile
from pathlib import Path

from paperchat.core.exceptions import StorageError
from paperchat.core.repositories.key_value_storage import KeyValueStorage
from paperchat.utils.logging import get_logger

logger = get_logger(__name__)

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.-]+$")


class FileKeyValueStorage(KeyValueStorage):
    """Stores each key as a JSON document under a directory.

    Writes go to a temporary file that replaces the target atomically, so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise StorageError(f"Invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    async def read(self, key: str) -> str | None:
        path = self._path(key)

        def _read() -> str | None:
            try:
                return path.read_text(encoding="utf-8")
            except FileNotFoundError:
                return None

        try:
            return await asyncio.to_thread(_read)
        except OSError as err:
            raise StorageError(f"Failed to read {key}: {err}") from err

    async def write(self, key: str, value: str) -> None:
        path = self._path(key)

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{key}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(value)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise

        try:
            await asyncio.to_thread(_write)
        except OSError as err:
            raise StorageError(f"Failed to write {key}: {err}") from err
        logger.debug("Stored %s (%d chars)", key, len(value))

    async def delete(self, key: str) -> bool:
        path = self._path(key)

        def _delete() -> bool:
            try:
                path.unlink()
            except FileNotFoundError:
                return False
            return True

        try:
            return await asyncio.to_thread(_delete)
        except OSError as err:
            raise StorageError(f"Failed to delete {key}: {err}") from err
