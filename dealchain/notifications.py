"""
notifications.py - In-process NotificationBus

NotificationCenter keeps the notifications currently shown to the user and
fans each one out to subscribers (e.g. a toast renderer). A notification
leaves the active set when it is dismissed or when its time-to-live runs
out, whichever comes first.
"""

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from .core import Notification, Severity, DEFAULT_NOTIFICATION_TTL


# Subscriber type: called with each new notification
NotificationHandler = Callable[[Notification], None]


class NotificationCenter:
    """
    Minimal notification bus.

    Ids are assigned from a monotonic counter, so two notifications emitted
    in the same instant still have distinct ids.

    Args:
        clock: Returns the current time (default: datetime.now)
        ttl: How long a notification stays active (None = until dismissed)
    """

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        ttl: Optional[timedelta] = DEFAULT_NOTIFICATION_TTL,
    ):
        if ttl is not None and ttl <= timedelta(0):
            raise ValueError(f"ttl must be positive, got {ttl}")
        self.clock = clock or datetime.now
        self.ttl = ttl
        self._active: List[Notification] = []
        self._subscribers: List[NotificationHandler] = []
        self._next_id = 1

    def subscribe(self, handler: NotificationHandler) -> Callable[[], None]:
        """
        Register a handler for new notifications.

        Returns a function that removes the handler.
        """
        self._subscribers.append(handler)

        def unsubscribe() -> None:
            if handler in self._subscribers:
                self._subscribers.remove(handler)

        return unsubscribe

    def emit(self, message: str, severity: Severity = Severity.INFO) -> Notification:
        now = self.clock()
        self._expire(now)
        notification = Notification(self._next_id, message, Severity(severity), created_at=now)
        self._next_id += 1
        self._active.append(notification)
        for handler in list(self._subscribers):
            handler(notification)
        return notification

    def dismiss(self, notification_id: int) -> Optional[Notification]:
        """Remove an active notification. Returns it, or None if unknown."""
        for notification in self._active:
            if notification.id == notification_id:
                self._active.remove(notification)
                return notification
        return None

    def clear(self) -> None:
        self._active.clear()

    @property
    def active(self) -> Tuple[Notification, ...]:
        """Notifications neither dismissed nor expired, oldest first."""
        self._expire(self.clock())
        return tuple(self._active)

    def _expire(self, now: datetime) -> None:
        if self.ttl is None:
            return
        cutoff = now - self.ttl
        self._active = [n for n in self._active if n.created_at > cutoff]

    def __len__(self) -> int:
        return len(self.active)

    def __repr__(self):
        return f"NotificationCenter({len(self._active)} active, {len(self._subscribers)} subscribers)"
