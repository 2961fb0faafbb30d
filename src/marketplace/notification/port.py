"""Notifier port: how the core tells people that something happened.

Delivery (email, SMS, push) lives outside the core. The default notifier
only logs; deployments plug in a real one with ``set_notifier``.
"""

from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class Notifier(ABC):
    @abstractmethod
    def notify(self, user_id: str, template: str, context: dict) -> None:
        """Deliver ``template`` rendered with ``context`` to ``user_id``."""
        ...


class LoggingNotifier(Notifier):
    def notify(self, user_id: str, template: str, context: dict) -> None:
        logger.info("Notification", user_id=user_id, template=template, **context)


class RecordingNotifier(Notifier):
    """Keeps every notification in memory, optionally failing on demand."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.should_fail: bool = False

    def notify(self, user_id: str, template: str, context: dict) -> None:
        if self.should_fail:
            raise ConnectionError("Notification channel unavailable")
        self.sent.append({"user_id": user_id, "template": template, "context": context})

    def templates(self) -> list[str]:
        return [notification["template"] for notification in self.sent]


_current_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    global _current_notifier
    if _current_notifier is None:
        _current_notifier = LoggingNotifier()
    return _current_notifier


def set_notifier(notifier: Notifier) -> None:
    global _current_notifier
    _current_notifier = notifier


def reset_notifier() -> None:
    global _current_notifier
    _current_notifier = None
