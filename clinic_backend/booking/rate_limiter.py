"""Per-client rate limiting for public booking submissions."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass


class RateLimitExceeded(Exception):
    """Raised when a client has used up its submissions for the window."""

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after


@dataclass
class _Window:
    count: int
    reset_at: float


class RateLimiter:
    """
    Fixed-window counter keyed by client id.

    The first request from a client opens a window of ``window_seconds``;
    up to ``max_requests`` are accepted inside it. Expired windows are
    evicted whenever the limiter is touched, so memory stays bounded by
    the number of clients active in the last window.

    Holds state for a single process only. Create one per application and
    inject it where it is needed.
    """

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_requests <= 0 or window_seconds <= 0:
            raise ValueError('max_requests and window_seconds must be positive.')
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: dict[str, _Window] = {}
        self._lock = threading.Lock()

    def _evict_expired(self, now: float) -> None:
        expired = [key for key, window in self._windows.items() if now >= window.reset_at]
        for key in expired:
            del self._windows[key]

    def check(self, client_id: str) -> None:
        """
        Count one request for ``client_id``.

        Raises:
            RateLimitExceeded: If the client already reached the limit.
        """
        with self._lock:
            now = self._clock()
            self._evict_expired(now)

            window = self._windows.get(client_id)
            if window is None:
                self._windows[client_id] = _Window(count=1, reset_at=now + self.window_seconds)
                return

            if window.count >= self.max_requests:
                retry_after = max(1, int(window.reset_at - now + 0.999))
                raise RateLimitExceeded(
                    f'Rate limit exceeded: {self.max_requests} requests per {self.window_seconds}s',
                    retry_after=retry_after,
                )

            window.count += 1

    def remaining(self, client_id: str) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            window = self._windows.get(client_id)
            used = window.count if window else 0
            return max(0, self.max_requests - used)

    def tracked_clients(self) -> int:
        with self._lock:
            self._evict_expired(self._clock())
            return len(self._windows)
