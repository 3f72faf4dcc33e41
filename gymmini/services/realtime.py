# gymmini/services/realtime.py
from __future__ import annotations

import queue
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Dict, List

from gymmini.utils.logger import get_logger

logger = get_logger(__name__)


class RealtimeHub:
    """
    In-process fan-out of per-user events. Transport (websocket, SSE) lives
    outside this service and drains the queues it subscribed.
    """

    def __init__(self, maxsize: int = 100):
        self._maxsize = maxsize
        self._subscribers: Dict[str, List[queue.Queue]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, identity_id) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._maxsize)
        with self._lock:
            self._subscribers[str(identity_id)].append(q)
        return q

    def unsubscribe(self, identity_id, q: queue.Queue) -> None:
        with self._lock:
            subs = self._subscribers.get(str(identity_id), [])
            if q in subs:
                subs.remove(q)
            if not subs:
                self._subscribers.pop(str(identity_id), None)

    def emit_to_user(self, identity_id, event: str, payload: Dict[str, Any] | None = None) -> int:
        """Fire-and-forget. Returns how many subscribers received the event."""
        message = {
            "event": event,
            "payload": payload or {},
            "ts": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            targets = list(self._subscribers.get(str(identity_id), []))
        delivered = 0
        for q in targets:
            try:
                q.put_nowait(message)
                delivered += 1
            except queue.Full:
                logger.warning("dropping %s for %s: subscriber queue full", event, identity_id)
        return delivered


hub = RealtimeHub()


def emit_to_user(identity_id, event: str, payload: Dict[str, Any] | None = None) -> int:
    return hub.emit_to_user(identity_id, event, payload)
