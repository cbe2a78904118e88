from __future__ import annotations

import base64
import binascii
import json
from typing import TYPE_CHECKING

from paperchat.core.exceptions import StorageError
from paperchat.utils.logging import get_logger

if TYPE_CHECKING:
    from paperchat.core.repositories.key_value_storage import KeyValueStorage

logger = get_logger(__name__)

UPLOAD_KEY = "uploadedPdf"


class PdfContext:
    """The loaded document's bytes plus the highlighted excerpt."""

    def __init__(self) -> None:
        self.data: bytes | None = None
        self.filename: str | None = None
        self.selected_text: str = ""

    @property
    def has_document(self) -> bool:
        return bool(self.data)

    def load(self, data: bytes, filename: str = "paper.pdf") -> None:
        self.data = data
        self.filename = filename
        self.selected_text = ""

    def unload(self) -> None:
        self.data = None
        self.filename = None
        self.selected_text = ""

    def select_text(self, text: str) -> None:
        self.selected_text = text or ""

    def clear_selection(self) -> None:
        self.selected_text = ""

    def encoded(self) -> str | None:
        return base64.b64encode(self.data).decode("ascii") if self.data else None


class UploadBridge:
    """Hands an uploaded document from the upload step to the chat view."""

    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    async def stash(self, data: bytes, filename: str) -> None:
        record = {"filename": filename, "data": base64.b64encode(data).decode("ascii")}
        await self._storage.write(UPLOAD_KEY, json.dumps(record))

    async def consume(self, *, remove: bool = False) -> tuple[bytes, str] | None:
        """Return the stashed ``(bytes, filename)`` if there is one."""
        try:
            raw = await self._storage.read(UPLOAD_KEY)
        except StorageError as err:
            logger.error("Error reading uploaded PDF: %s", err)
            return None
        if not raw:
            return None
        try:
            record = json.loads(raw)
            data = base64.b64decode(record["data"], validate=True)
            filename = str(record.get("filename") or "paper.pdf")
        except (ValueError, KeyError, TypeError, binascii.Error) as err:
            logger.error("Discarding unreadable uploaded PDF: %s", err)
            return None

        if remove:
            try:
                await self._storage.delete(UPLOAD_KEY)
            except StorageError as err:
                logger.warning("Failed to clear uploaded PDF: %s", err)
        return data, filename
