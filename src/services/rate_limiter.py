from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict

from src.services.errors import RateLimitExceeded

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    count: int
    reset_at: float


class RateLimiter:
    """Fixed-window request throttle keyed by client identifier."""

    def __init__(
        self,
        max_requests: int = 12,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        max_buckets: int = 10000,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be > 0")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._max_buckets = max_buckets
        self._buckets: Dict[str, _Bucket] = {}
        self._lock = threading.Lock()

    def check_and_increment(self, client_id: str) -> None:
        key = client_id or "unknown"
        with self._lock:
            now = self._clock()
            bucket = self._buckets.get(key)
            if bucket is None or now >= bucket.reset_at:
                if bucket is None and len(self._buckets) >= self._max_buckets:
                    self._prune(now)
                self._buckets[key] = _Bucket(count=1, reset_at=now + self.window_seconds)
                return

            bucket.count += 1
            if bucket.count > self.max_requests:
                retry_after = bucket.reset_at - now
                logger.warning("Rate limit exceeded for %s (%d requests)", key, bucket.count)
                raise RateLimitExceeded(key, retry_after)

    def _prune(self, now: float) -> None:
        stale = [key for key, bucket in self._buckets.items() if now >= bucket.reset_at]
        for key in stale:
            del self._buckets[key]
