from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from ..models.order import PersistedOrder

"""One-shot delivery reminders.

Reminders live only as long as the scheduler (the running process): each one
is a single daemon timer and nothing is written anywhere, so a restart loses
every pending reminder. Permission to raise alerts is asked on every
schedule() call.
"""

__all__ = [
    "ReminderError",
    "Reminder",
    "ReminderScheduler",
    "reminder_message",
]

logger = logging.getLogger(__name__)

NOTIFICATION_TITLE = "Order Reminder"


class ReminderError(Exception):
    pass


def reminder_message(order: PersistedOrder) -> str:
    return (
        f"Reminder for Order #{order.id}. "
        f"Delivery scheduled for {order.delivery_date} {order.delivery_time}"
    )


def _log_notification(title: str, body: str) -> None:
    logger.warning("%s: %s", title, body)


@dataclass
class Reminder:
    order_id: str
    when: datetime
    message: str
    timer: Any = field(repr=False, default=None)
    fired: bool = False

    def cancel(self) -> None:
        if self.timer is not None:
            self.timer.cancel()


class ReminderScheduler:
    """Session-scoped reminder scheduler.

    Args:
        request_permission: asked before every schedule; False denies it
        notify: called as ``notify(title, body)`` when a reminder fires
        timer_factory: ``threading.Timer`` compatible factory (tests inject a fake)
        clock: returns the current aware datetime
    """

    def __init__(
        self,
        request_permission: Callable[[], bool] = lambda: True,
        notify: Callable[[str, str], None] = _log_notification,
        timer_factory: Callable[..., Any] = threading.Timer,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._request_permission = request_permission
        self._notify = notify
        self._timer_factory = timer_factory
        self._clock = clock
        self._pending: list[Reminder] = []

    @property
    def pending(self) -> list[Reminder]:
        return [r for r in self._pending if not r.fired]

    def schedule(self, order: PersistedOrder, when: datetime) -> Reminder:
        if not self._request_permission():
            raise ReminderError("Notification permission denied. Cannot set reminder.")

        now = self._clock()
        if when.tzinfo is None:
            when = when.replace(tzinfo=now.tzinfo)
        delay = (when - now).total_seconds()
        if delay <= 0:
            raise ReminderError("Please select a future time for the reminder.")

        reminder = Reminder(order_id=order.id, when=when, message=reminder_message(order))

        def _fire() -> None:
            reminder.fired = True
            if reminder in self._pending:
                self._pending.remove(reminder)
            self._notify(NOTIFICATION_TITLE, reminder.message)

        timer = self._timer_factory(delay, _fire)
        timer.daemon = True
        reminder.timer = timer
        self._pending.append(reminder)
        timer.start()
        logger.info("reminder set for order %s in %.0f seconds", order.id, delay)
        return reminder

    def cancel_all(self) -> int:
        """Cancel every pending reminder (end of session). Returns the count."""
        pending = self.pending
        for r in pending:
            r.cancel()
        self._pending.clear()
        return len(pending)
