"""
Project event channel.

Board mutations publish one event each on the topic ``project:{id}``
(``task-created``, ``task-moved``, ``task-updated``, ``member-removed``).
The last ``history`` events of the ``max_topics`` most recently active topics
are kept for board snapshots. Events fan out to
in-process subscribers and, when configured, to a webhook that relays them to
connected clients. Delivery is fire-and-forget: a failing subscriber or an
unreachable webhook is logged and never reaches the publisher.
"""
import logging
import threading
from collections import OrderedDict, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)


def project_topic(project_id: str) -> str:
    return f"project:{project_id}"


class ProjectEventChannel:
    """Publishes board events to subscribers and an optional webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        webhook_timeout: float = 2.0,
        history: int = 200,
        max_topics: int = 1000,
    ):
        self.webhook_url = webhook_url
        self.webhook_timeout = webhook_timeout
        self.subscribers: Dict[str, List[Callable]] = {}  # event name -> callbacks
        self.history = history
        self.max_topics = max_topics
        self._history: "OrderedDict[str, Deque[dict]]" = OrderedDict()
        self._lock = threading.Lock()

    def subscribe(self, event_name: str, callback: Callable) -> None:
        """Register a callback for an event name ("*" receives everything)."""
        if event_name not in self.subscribers:
            self.subscribers[event_name] = []
        self.subscribers[event_name].append(callback)

    def publish(self, topic: str, event_name: str, payload: Dict[str, Any]) -> None:
        """Deliver an event. Never raises."""
        event = {
            "topic": topic,
            "event": event_name,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            self._remember(topic, event)

        for callback in self.subscribers.get(event_name, []) + self.subscribers.get("*", []):
            try:
                callback(topic, event_name, payload)
            except Exception:
                logger.exception(f"Error in {event_name} subscriber")

        if self.webhook_url:
            self._post(event)

    def recent(self, topic: str, limit: int = 20) -> List[dict]:
        """Most recent events on a topic, newest first."""
        with self._lock:
            events = list(self._history.get(topic, ()))
        return list(reversed(events))[:limit]

    def _remember(self, topic: str, event: dict) -> None:
        events = self._history.get(topic)
        if events is None:
            events = self._history[topic] = deque(maxlen=self.history)
        else:
            self._history.move_to_end(topic)
        events.append(event)
        while len(self._history) > self.max_topics:
            dropped, _ = self._history.popitem(last=False)
            logger.debug(f"Dropped event history for {dropped}")

    def _post(self, event: dict) -> None:
        try:
            r = requests.post(self.webhook_url, json=event, timeout=self.webhook_timeout)
            if not r.ok:
                logger.warning(f"Event webhook rejected {event['event']}: HTTP {r.status_code}")
        except requests.RequestException as e:
            logger.warning(f"Event webhook unreachable for {event['event']}: {e}")
