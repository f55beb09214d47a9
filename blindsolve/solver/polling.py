from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple, Type, TypeVar

from blindsolve.errors import PollExhausted, SolveCancelled

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CancellationToken:
    """Cross-thread cancellation signal checked at every suspension point."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; return True as soon as the token is cancelled."""
        return self._event.wait(max(0.0, seconds))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SolveCancelled("solve attempt cancelled")


def poll_until(
    fetch: Callable[[int], Optional[T]],
    *,
    interval_s: float,
    max_attempts: int,
    backoff: float = 1.0,
    max_interval_s: Optional[float] = None,
    cancel: Optional[CancellationToken] = None,
    retry_on: Tuple[Type[Exception], ...] = (),
    describe: str = "poll",
) -> T:
    """Call ``fetch(attempt)`` until it returns something other than None.

    An exception listed in ``retry_on`` counts as a used attempt and is kept
    as the last error; any other exception propagates. There is no sleep
    after the final attempt. Raises PollExhausted when every attempt came
    back empty and SolveCancelled when the token fires.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    cancel = cancel or CancellationToken()
    delay = interval_s
    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        cancel.raise_if_cancelled()
        try:
            value = fetch(attempt)
        except retry_on as e:
            last_error = e
            value = None
            logger.warning(f"{describe}: attempt {attempt}/{max_attempts} failed: {e}")
        if value is not None:
            return value
        if attempt == max_attempts:
            break
        logger.info(f"{describe}: waiting {delay:.1f}s (attempt {attempt}/{max_attempts})")
        if cancel.wait(delay):
            cancel.raise_if_cancelled()
        delay = delay * backoff
        if max_interval_s is not None:
            delay = min(delay, max_interval_s)
    raise PollExhausted(max_attempts, last_error)
