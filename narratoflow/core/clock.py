"""
Time source used by the usage store and the request governor.
"""

import threading
import time
from datetime import datetime
from typing import Optional


class Clock:
    """Wall-clock reads and backoff waits, swappable in tests."""

    def now(self) -> datetime:
        return datetime.now()

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        """Wait for ``seconds``.

        Returns:
            True if the wait was interrupted by ``cancel_event``
        """
        if cancel_event is None:
            time.sleep(seconds)
            return False
        return cancel_event.wait(seconds)


def to_millis(moment: datetime) -> int:
    """Milliseconds since the epoch for a datetime."""
    return round(moment.timestamp() * 1000)
