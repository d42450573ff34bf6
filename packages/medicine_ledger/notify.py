"""Operator notifications.

The ledger never notifies anyone itself; its callers turn results and errors
into :class:`Notification` messages. Delivery is fire-and-forget: a sink that
fails to render a message logs the failure and carries on.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol

from rich.console import Console
from rich.markup import escape

from .logging_setup import get_logger

type Severity = Literal["info", "destructive"]

_logger = get_logger("medicine_ledger.notify")


@dataclass(frozen=True, slots=True)
class Notification:
    title: str
    description: str
    severity: Severity = "info"


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class ConsoleNotifier:
    """Render notifications on a Rich console: green for info, red for destructive."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def notify(self, notification: Notification) -> None:
        color = "red" if notification.severity == "destructive" else "green"
        try:
            self.console.print(
                f"[{color}]{escape(notification.title)}:[/{color}] "
                f"{escape(notification.description)}"
            )
        except Exception as e:  # delivery is best-effort
            _logger.warning("notification %r not delivered: %s", notification.title, e)


class RecordingNotifier:
    """Keeps every notification in ``sent``; used by tests and scripted callers."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.sent.append(notification)


__all__ = [
    "Severity",
    "Notification",
    "Notifier",
    "ConsoleNotifier",
    "RecordingNotifier",
]
