"""Bounded HTTP fetcher -- downloads only the leading bytes of a remote file.

ID3v2 tags live at the start of an MP3, so the fetcher asks for a byte
range and stops reading once it has enough. It never buffers more than
``max_bytes`` from a server, even one that ignores the Range header.

No retries are attempted here; a failed fetch costs one track its tag,
never the batch.
"""

from __future__ import annotations

import threading
import time
from typing import Callable

import requests

from archive_meta.utils.constants import (
    APP_NAME,
    APP_VERSION,
    DEFAULT_FETCH_RATE_LIMIT,
    DEFAULT_PREFIX_BYTES,
    FETCH_CHUNK_SIZE,
    FETCH_TIMEOUT_SECONDS,
)
from archive_meta.utils.logger import get_logger
from archive_meta.utils.rate_limiter import HostRateLimiter, rate_limiter

logger = get_logger("core.prefix_fetcher")


class FetchTimeout(Exception):
    """The wall-clock deadline for a prefix fetch passed mid-transfer."""


class PrefixFetcher:
    """Fetches a capped prefix of a remote resource with a ranged GET.

    Typical usage::

        fetcher = PrefixFetcher(max_bytes=100 * 1024, timeout=10)
        data = fetcher.fetch_prefix("https://archive.org/download/item/song.mp3")
        if data is None:
            ...  # treat exactly like "no tag present"
    """

    def __init__(
        self,
        max_bytes: int = DEFAULT_PREFIX_BYTES,
        timeout: float = FETCH_TIMEOUT_SECONDS,
        rate_limit: float = DEFAULT_FETCH_RATE_LIMIT,
        session: requests.Session | None = None,
        limiter: HostRateLimiter | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the fetcher.

        Args:
            max_bytes: Default prefix size; the Range header asks for bytes
                ``0..=max_bytes``.
            timeout: Wall-clock seconds allowed for one whole fetch. Also
                used as the connect/read socket timeout.
            rate_limit: Minimum seconds between requests to the same host.
            session: Optional ``requests.Session`` (a pooled one is created
                otherwise).
            limiter: Rate limiter to use; defaults to the shared instance.
            clock: Monotonic time source for the deadline.
        """
        if max_bytes < 1:
            raise ValueError(f"max_bytes must be positive, got {max_bytes}")
        self._max_bytes = max_bytes
        self._timeout = timeout
        self._rate_limit = rate_limit
        self._limiter = limiter or rate_limiter
        self._clock = clock
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": f"{APP_NAME}/{APP_VERSION}"})

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    def fetch_prefix(self, url: str, max_bytes: int | None = None) -> bytes | None:
        """Download at most *max_bytes* leading bytes of *url*.

        Args:
            url: HTTP(S) URL that should honour ``Range`` requests.
            max_bytes: Override of the configured prefix size.

        Returns:
            The prefix (``len <= max_bytes``), or None on any transport
            error, error status, or deadline overrun.
        """
        cap = max_bytes if max_bytes is not None else self._max_bytes
        self._limiter.wait_for_url(url, self._rate_limit)

        deadline = self._clock() + self._timeout
        try:
            response = self._session.get(
                url,
                headers={"Range": f"bytes=0-{cap}"},
                stream=True,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            logger.warning("Prefix fetch failed for %s: %s", url, exc)
            return None

        try:
            response.raise_for_status()
        except requests.RequestException as exc:
            response.close()
            logger.warning("Prefix fetch failed for %s: %s", url, exc)
            return None

        try:
            return self._read_before_deadline(response, cap, deadline)
        except FetchTimeout:
            logger.warning("Prefix fetch timed out after %.1fs: %s", self._timeout, url)
            return None
        except requests.RequestException as exc:
            logger.warning("Prefix fetch failed for %s: %s", url, exc)
            return None

    def close(self) -> None:
        self._session.close()

    def _read_before_deadline(
        self,
        response: requests.Response,
        cap: int,
        deadline: float,
    ) -> bytes:
        """Read the body on a helper thread and wait for it until *deadline*.

        A blocking read only returns once a whole chunk has arrived, so a
        server trickling a few bytes at a time would hold the caller far past
        the deadline. The helper owns *response* and closes it when its read
        ends; the caller never touches the stream after handing it over.

        Raises:
            FetchTimeout: If the body is not read in time.
            requests.RequestException: If the transfer fails mid-stream.
        """
        outcome: dict[str, object] = {}
        finished = threading.Event()

        def read() -> None:
            try:
                outcome["data"] = self._read_capped(response, cap, deadline)
            except Exception as exc:
                outcome["error"] = exc
            finally:
                response.close()
                finished.set()

        reader = threading.Thread(target=read, name="prefix-reader", daemon=True)
        reader.start()
        if not finished.wait(max(0.0, deadline - self._clock())):
            raise FetchTimeout()

        error = outcome.get("error")
        if error is not None:
            raise error
        return outcome["data"]

    def _read_capped(
        self,
        response: requests.Response,
        cap: int,
        deadline: float,
    ) -> bytes:
        """Accumulate response chunks until *cap* is exceeded or the body ends.

        Raises:
            FetchTimeout: If the deadline passes before the read finishes.
        """
        buffer = bytearray()
        for chunk in response.iter_content(chunk_size=FETCH_CHUNK_SIZE):
            if self._clock() > deadline:
                raise FetchTimeout()
            buffer.extend(chunk)
            if len(buffer) > cap:
                # Server sent more than asked for (or ignored Range); abort
                logger.debug("Prefix cap of %d bytes reached, aborting transfer", cap)
                break

        return bytes(buffer[:cap])
