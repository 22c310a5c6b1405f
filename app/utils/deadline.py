"""
Request-scoped deadlines for storage calls
"""

import time
from typing import Optional

from app.core.config import settings
from app.core.errors import OperationTimeoutError


class Deadline:
    """Monotonic deadline shared by every repository call of one request."""

    def __init__(self, seconds: Optional[float] = None):
        if seconds is None:
            seconds = settings.REQUEST_DEADLINE_SECONDS
        self.seconds = seconds
        self._expires_at = time.monotonic() + seconds

    @classmethod
    def unbounded(cls) -> "Deadline":
        return cls(float("inf"))

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self, operation: Optional[str] = None) -> None:
        if self.expired:
            raise OperationTimeoutError(operation)

    def rpc_timeout(self) -> Optional[float]:
        """Remaining seconds for client libraries that accept a timeout, None if unbounded."""
        remaining = self.remaining()
        return None if remaining == float("inf") else remaining
