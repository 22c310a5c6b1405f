"""
In-process change notifications for guest mutations
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class GuestChange:
    """One committed mutation, scoped to the account it happened in"""
    account_id: str
    type: str
    guest_id: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_message(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "guest_id": self.guest_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
        }


Listener = Callable[[GuestChange], None]


class ChangeNotifier:
    """Fan-out of committed changes to registered listeners"""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def emit(self, change: GuestChange) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            # The write is already committed; a broken listener must not turn it into a failure
            try:
                listener(change)
            except Exception:
                logger.exception(f"Change listener failed for {change.type} in account {change.account_id}")


change_notifier = ChangeNotifier()
