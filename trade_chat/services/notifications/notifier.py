"""Change notifier: fan-out of portfolio events to live observers.

publish() is fire-and-forget. Implementations must never raise into the
trade path and must never block it on delivery.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from trade_chat.core.config import get_settings
from trade_chat.core.logging import get_logger

logger = get_logger(__name__)

EVENT_TRADE_EXECUTED = "trade_executed"
EVENT_PORTFOLIO_CHANGED = "portfolio_changed"


class ChangeNotifier(ABC):
    """Publishes portfolio events to subscribers."""

    @abstractmethod
    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        pass


class CompositeNotifier(ChangeNotifier):
    """Publishes every event to each wrapped notifier."""

    def __init__(self, notifiers: List[ChangeNotifier]):
        self.notifiers = list(notifiers)

    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        for notifier in self.notifiers:
            try:
                notifier.publish(portfolio_id, event)
            except Exception as e:
                logger.error(
                    "Notifier %s failed for portfolio %s: %s",
                    type(notifier).__name__, portfolio_id, str(e)[:200]
                )


_notifier: Optional[ChangeNotifier] = None


def build_notifier() -> ChangeNotifier:
    """In-process pubsub always; webhook too when NOTIFIER_WEBHOOK_URL is set."""
    from trade_chat.services.notifications.pubsub import event_pubsub, PubSubNotifier

    notifiers: List[ChangeNotifier] = [PubSubNotifier(event_pubsub)]
    settings = get_settings()
    if settings.notifier_webhook_url:
        from trade_chat.services.notifications.webhook import WebhookNotifier
        notifiers.append(WebhookNotifier(settings.notifier_webhook_url, settings.notifier_timeout_seconds))
    return CompositeNotifier(notifiers)


def get_notifier() -> ChangeNotifier:
    """Get notifier singleton."""
    global _notifier
    if _notifier is None:
        _notifier = build_notifier()
    return _notifier


def set_notifier(notifier: Optional[ChangeNotifier]) -> None:
    """Replace (or with None, reset) the notifier singleton."""
    global _notifier
    _notifier = notifier
