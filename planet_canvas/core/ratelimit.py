"""Per-user stamp rate limiting."""

import threading
import time
from typing import Callable, Dict, Tuple

from ..config import RATE_LIMIT
from .errors import RateLimited


class RateLimiter:
    """Fixed-window counter per user id."""

    def __init__(
        self,
        max_events: int = None,
        window_seconds: float = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_events = RATE_LIMIT["max_stamps"] if max_events is None else max_events
        self.window_seconds = RATE_LIMIT["window_seconds"] if window_seconds is None else window_seconds
        self._clock = clock
        self._windows: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def check(self, user_id: str) -> int:
        """
        Count one event for a user.

        Returns:
            Remaining events in the current window

        Raises:
            RateLimited: the user has used up the window
        """
        now = self._clock()
        with self._lock:
            count, reset_at = self._windows.get(user_id, (0, 0.0))
            if now >= reset_at:
                count, reset_at = 0, now + self.window_seconds
            if count >= self.max_events:
                raise RateLimited(retry_after=reset_at - now)
            count += 1
            self._windows[user_id] = (count, reset_at)
            return self.max_events - count

    def reset(self, user_id: str = None) -> None:
        with self._lock:
            if user_id is None:
                self._windows.clear()
            else:
                self._windows.pop(user_id, None)
