"""Webhook notifier: POSTs portfolio events to an external URL."""
import json
import threading
from typing import Any, Dict
import requests
from trade_chat.services.notifications.notifier import ChangeNotifier
from trade_chat.core.logging import get_logger
from trade_chat.core.utils import json_dumps

logger = get_logger(__name__)

MAX_RETRIES = 2


class WebhookNotifier(ChangeNotifier):
    """Delivers each event on a daemon thread.

    Failures are logged and dropped; the trade path never waits on delivery.
    """

    def __init__(self, url: str, timeout_seconds: float = 5.0):
        self.url = url
        self.timeout_seconds = timeout_seconds

    def publish(self, portfolio_id: str, event: Dict[str, Any]) -> None:
        body = json.loads(json_dumps({"portfolio_id": portfolio_id, **event}))
        thread = threading.Thread(
            target=self._send,
            args=(body,),
            name=f"webhook-{event.get('type', 'event')}",
            daemon=True,
        )
        thread.start()

    def _send(self, body: Dict[str, Any]) -> bool:
        last_error = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = requests.post(self.url, json=body, timeout=self.timeout_seconds)
                if 200 <= response.status_code < 300:
                    logger.info(
                        "Webhook delivered %s for portfolio %s",
                        body.get("type"), body.get("portfolio_id")
                    )
                    return True
                last_error = f"HTTP {response.status_code}"
                logger.warning(f"Webhook error (attempt {attempt}/{MAX_RETRIES}): {last_error}")
            except requests.exceptions.Timeout:
                last_error = f"Timeout after {self.timeout_seconds}s"
                logger.warning(f"Webhook timeout (attempt {attempt}/{MAX_RETRIES})")
            except requests.exceptions.RequestException as e:
                last_error = str(e)
                logger.warning(f"Webhook request failed (attempt {attempt}/{MAX_RETRIES}): {last_error}")

        logger.error(f"Webhook delivery failed after {MAX_RETRIES} attempts: {last_error}")
        return False
