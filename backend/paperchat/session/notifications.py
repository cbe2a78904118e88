from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import Enum
from itertools import count

from paperchat.utils.logging import get_logger

logger = get_logger(__name__)

NOTIFICATION_LIMIT = 5


class Variant(str, Enum):
    DEFAULT = "default"
    DESTRUCTIVE = "destructive"


@dataclass(frozen=True)
class Notification:
    id: str
    title: str
    description: str | None = None
    variant: Variant = Variant.DEFAULT


Listener = Callable[[tuple[Notification, ...]], None]


class NotificationCenter:
    """Observable store of user-visible notices.

    One instance per application root; listeners receive the full current list
    after every change.
    """

    def __init__(self, limit: int = NOTIFICATION_LIMIT) -> None:
        self._limit = limit
        self._items: list[Notification] = []
        self._listeners: list[Listener] = []
        self._ids = count(1)

    @property
    def notifications(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)
        return lambda: self.unsubscribe(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(
        self,
        title: str,
        description: str | None = None,
        variant: Variant = Variant.DEFAULT,
    ) -> Notification:
        item = Notification(id=str(next(self._ids)), title=title, description=description, variant=variant)
        self._items = [*self._items, item][-self._limit:]
        self._emit()
        return item

    def update(self, notification_id: str, *, title: str | None = None, description: str | None = None) -> None:
        changed = False
        items = []
        for item in self._items:
            if item.id == notification_id:
                item = replace(
                    item,
                    title=title if title is not None else item.title,
                    description=description if description is not None else item.description,
                )
                changed = True
            items.append(item)
        if changed:
            self._items = items
            self._emit()

    def dismiss(self, notification_id: str | None = None) -> None:
        """Remove one notification, or all of them when no id is given."""
        if notification_id is None:
            self._items = []
        else:
            self._items = [n for n in self._items if n.id != notification_id]
        self._emit()

    def _emit(self) -> None:
        snapshot = self.notifications
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as err:  # pragma: no cover - listener bugs
                logger.error("Notification listener failed: %s", err)
