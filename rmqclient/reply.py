"""Pending request/reply exchanges, matched to their replies by correlation id."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_EXPIRATION = 5 * 60.0

RequestCallback = Callable[[Any, Optional[BaseException]], None]
Clock = Callable[[], float]


class ReplyNotMatchedError(LookupError):
    """Raised when a reply arrives for a correlation id nobody waits on."""


class ReplyTimeoutError(TimeoutError):
    """Raised when no reply arrived within the request timeout."""


class RequestResponseFuture:
    """One request waiting for its reply message.

    ``timeout`` is in seconds. ``callback``, when given, receives the reply
    message (or ``None``) and the failure (or ``None``).
    """

    def __init__(
        self,
        correlation_id: str,
        timeout: float,
        callback: Optional[RequestCallback] = None,
        clock: Clock = time.monotonic,
    ) -> None:
        self.correlation_id = correlation_id
        self.timeout = timeout
        self.request_callback = callback
        self.response_msg: Any = None
        self.send_request_ok = False
        self.cause_err: Optional[BaseException] = None
        self._clock = clock
        self.begin_time = clock()
        self._lock = threading.Lock()
        self._done = threading.Event()

    @property
    def done(self) -> bool:
        """Whether the reply has arrived."""
        return self._done.is_set()

    def execute_request_callback(self) -> None:
        """Hand the current reply and failure to the callback, if there is one."""
        if self.request_callback is None:
            return
        self.request_callback(self.response_msg, self.cause_err)

    def wait_response_message(self, request_topic: str) -> Any:
        """Block until the reply arrives; raise :class:`ReplyTimeoutError` otherwise."""
        if not self._done.wait(self.timeout):
            millis = int(self.timeout * 1000)
            error = ReplyTimeoutError(
                f"send request message to {request_topic} OK, "
                f"but wait reply message timeout {millis} ms"
            )
            logger.error("%s", error)
            raise error
        with self._lock:
            return self.response_msg

    def put_response_message(self, message: Any) -> None:
        """Store the reply and wake up the waiter."""
        with self._lock:
            self.response_msg = message
            self._done.set()

    def is_timeout(self) -> bool:
        """Whether more than ``timeout`` seconds passed since the request began."""
        return self._clock() - self.begin_time > self.timeout


class RequestResponseFutureMap:
    """Expiring table of pending requests keyed by correlation id.

    Entries leaving the table, whether removed or purged as expired, have
    their callback run; a timed-out entry first gets a timeout error.
    """

    def __init__(
        self, default_expiration: float = DEFAULT_EXPIRATION, clock: Clock = time.monotonic
    ) -> None:
        self.default_expiration = default_expiration
        self._clock = clock
        self._items: dict[str, tuple[RequestResponseFuture, float]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _on_evicted(self, correlation_id: str, future: RequestResponseFuture) -> None:
        if future.is_timeout():
            future.cause_err = ReplyTimeoutError(
                f"correlationId:{correlation_id} request timeout, no reply message"
            )
        future.execute_request_callback()

    def set_request_response_future(self, future: RequestResponseFuture) -> None:
        """Store ``future``; it expires after its own timeout."""
        lifetime = future.timeout if future.timeout > 0 else self.default_expiration
        with self._lock:
            self._items[future.correlation_id] = (future, self._clock() + lifetime)

    def set_response_to_request_response_future(self, correlation_id: str, reply: Any) -> None:
        """Deliver ``reply`` to the waiting request and run its callback."""
        future = self.get(correlation_id)
        if future is None:
            raise ReplyNotMatchedError(f"correlationId:{correlation_id} not exist in map")
        future.put_response_message(reply)
        if future.request_callback is not None:
            future.execute_request_callback()

    def get(self, correlation_id: str) -> Optional[RequestResponseFuture]:
        """Return the live future for ``correlation_id``, or ``None``."""
        with self._lock:
            entry = self._items.get(correlation_id)
        if entry is None:
            return None
        future, expires_at = entry
        if self._clock() > expires_at:
            return None
        return future

    def remove(self, correlation_id: str) -> None:
        """Drop the entry and run its eviction handling."""
        with self._lock:
            entry = self._items.pop(correlation_id, None)
        if entry is not None:
            self._on_evicted(correlation_id, entry[0])

    def purge_expired(self) -> list[str]:
        """Drop every expired entry, run its eviction handling, return the ids."""
        now = self._clock()
        with self._lock:
            expired = [
                (key, future)
                for key, (future, expires_at) in self._items.items()
                if now > expires_at
            ]
            for key, _ in expired:
                del self._items[key]
        for key, future in expired:
            self._on_evicted(key, future)
        return [key for key, _ in expired]


REQUEST_RESPONSE_FUTURE_MAP = RequestResponseFutureMap()