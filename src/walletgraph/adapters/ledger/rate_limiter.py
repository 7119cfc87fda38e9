import random
import threading
import time
from typing import Optional


class SimpleRateLimiter:
    def __init__(self, requests_per_sec: float) -> None:
        if requests_per_sec <= 0:
            raise ValueError("requests_per_sec must be > 0")
        self._min_interval = 1.0 / requests_per_sec
        self._last_ts = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        # one instance may pace several adapters across threads
        with self._lock:
            now = time.time()
            elapsed = now - self._last_ts
            sleep_for = self._min_interval - elapsed
            if sleep_for > 0:
                time.sleep(sleep_for)
            self._last_ts = time.time()


def linear_backoff(attempt: int, delay: float) -> float:
    """Wait before retry number ``attempt`` (1-based): attempt x delay."""
    return max(0, attempt) * delay


def jittered_page_delay(page: int, cap: float = 5.0, rng: Optional[random.Random] = None) -> float:
    """Pre-request delay that spreads page fetches out: (page % 5) s plus up to 1 s of jitter."""
    r = rng.random() if rng is not None else random.random()
    return min(1.0 * (page % 5) + r, cap)
