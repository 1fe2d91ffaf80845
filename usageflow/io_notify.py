# usageflow/io_notify.py
"""Notification sinks for summary change events."""

import json
import logging
from typing import Any, Dict, List, Tuple

import requests

from usageflow.errors import NotificationPublishError

logger = logging.getLogger(__name__)


class Notifier:
    """publish(subject, message) where message is the JSON-ready event body."""

    def publish(self, subject: str, message: Dict[str, Any]) -> None:
        raise NotImplementedError


class LoggingNotifier(Notifier):
    def __init__(self, topic_id: str) -> None:
        self.topic_id = topic_id

    def publish(self, subject: str, message: Dict[str, Any]) -> None:
        logger.info(f"[NOTIFY] topic={self.topic_id} subject={subject!r}\n{json.dumps(message, indent=2)}")


class InMemoryNotifier(Notifier):
    def __init__(self) -> None:
        self.published: List[Tuple[str, Dict[str, Any]]] = []

    def publish(self, subject: str, message: Dict[str, Any]) -> None:
        self.published.append((subject, message))


class WebhookNotifier(Notifier):
    """POST {topic, subject, message} as JSON to a webhook endpoint."""

    def __init__(self, url: str, topic_id: str, timeout: float = 5) -> None:
        self.url = url
        self.topic_id = topic_id
        self.timeout = timeout

    def publish(self, subject: str, message: Dict[str, Any]) -> None:
        try:
            response = requests.post(
                self.url,
                json={"topic": self.topic_id, "subject": subject, "message": message},
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise NotificationPublishError(f"Failed to reach {self.url}: {exc}") from exc

        if not response.ok:
            raise NotificationPublishError(
                f"Notification rejected by {self.url}: {response.status_code} {response.text}"
            )
        logger.info(f"[NOTIFY] published {subject!r} to topic={self.topic_id}")
