"""Per-client rate limit for the manual "refresh all" endpoint."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass


@dataclass
class RefreshDecision:
    allowed: bool
    retry_after_seconds: int = 0


class RefreshRateLimiter:
    """Allows one refresh per client per window."""

    def __init__(self, window_seconds: float = 30.0) -> None:
        self.window_seconds = window_seconds
        self._last_run: dict[str, float] = {}
        self._lock = threading.Lock()

    def try_acquire(self, client_key: str, now: float | None = None) -> RefreshDecision:
        key = (client_key or "").strip().lower() or "anonymous"
        now = time.monotonic() if now is None else now

        with self._lock:
            last = self._last_run.get(key)
            if last is not None:
                remaining = self.window_seconds - (now - last)
                if remaining > 0:
                    return RefreshDecision(False, max(1, math.ceil(remaining)))
            self._last_run[key] = now
        return RefreshDecision(True)
