"""Per-host request spacing for remote fetches."""

from __future__ import annotations

import threading
import time
from urllib.parse import urlsplit

from archive_meta.utils.logger import get_logger

logger = get_logger("utils.rate_limiter")


def host_key(url: str) -> str:
    """Return the lower-cased host of *url*, or the raw url when it has none."""
    host = urlsplit(url).hostname
    return host.lower() if host else url


class HostRateLimiter:
    """Thread-safe limiter enforcing a minimum interval between requests
    to the same host.

    Each host gets its own lock, so a worker waiting on archive.org does not
    hold up a worker talking to a mirror.

    Usage:
        limiter = HostRateLimiter()
        limiter.wait_for_url("https://archive.org/download/x/a.mp3", 0.5)
    """

    def __init__(self) -> None:
        self._last_call: dict[str, float] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._meta_lock = threading.Lock()

    def _get_lock(self, host: str) -> threading.Lock:
        with self._meta_lock:
            lock = self._locks.get(host)
            if lock is None:
                lock = self._locks[host] = threading.Lock()
            return lock

    def wait(self, host: str, min_interval: float) -> float:
        """Block until *min_interval* seconds have passed since the last call
        for *host*.

        Args:
            host: Host key (see :func:`host_key`).
            min_interval: Minimum seconds between requests. ``<= 0`` disables
                the wait entirely.

        Returns:
            Seconds actually slept.
        """
        if min_interval <= 0:
            return 0.0

        lock = self._get_lock(host)
        # Holding the per-host lock while sleeping serializes callers for
        # that host so each one is spaced by min_interval.
        with lock:
            elapsed = time.monotonic() - self._last_call.get(host, float("-inf"))
            sleep_time = max(0.0, min_interval - elapsed)
            if sleep_time > 0:
                logger.debug("Rate limit: sleeping %.2fs for %s", sleep_time, host)
                time.sleep(sleep_time)
            self._last_call[host] = time.monotonic()
        return sleep_time

    def wait_for_url(self, url: str, min_interval: float) -> float:
        """Convenience wrapper keyed on the host of *url*."""
        return self.wait(host_key(url), min_interval)


# Shared across fetchers so parallel workers respect one budget per host
rate_limiter = HostRateLimiter()
