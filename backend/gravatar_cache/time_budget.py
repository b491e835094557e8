"""
Time Budget

Bounds the wall-clock time spent on cache-miss downloads while serving a
single request (one rendered page may reference many avatars).

The budget of the current request lives in a context variable: wrap each
incoming request in `with request_budget():` and every resolve() inside it
shares that budget. Outside any request scope the cache falls back to one
budget for the whole process.
"""

import logging
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, Optional

from .config import DEFAULT_MAX_PROCESS_TIME

logger = logging.getLogger(__name__)


class TimeBudget:
    """
    Wall-clock allowance for downloads within one request.

    The clock starts on the first should_process() call. Once the
    elapsed time exceeds max_process_time the budget is exhausted for
    good: every later call returns False without looking at the clock.
    """

    def __init__(
        self,
        max_process_time: float = DEFAULT_MAX_PROCESS_TIME,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_process_time = max_process_time
        self._clock = clock
        self._start_time: Optional[float] = None
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def start_time(self) -> Optional[float]:
        return self._start_time

    def elapsed(self) -> float:
        if self._start_time is None:
            return 0.0
        return self._clock() - self._start_time

    def should_process(self) -> bool:
        """Return True while there is budget left."""
        if self._stopped:
            return False

        now = self._clock()
        if self._start_time is None:
            self._start_time = now

        if now - self._start_time > self.max_process_time:
            self._stopped = True
            logger.warning(
                f"[TimeBudget] Exhausted after {now - self._start_time:.2f}s "
                f"(max {self.max_process_time}s), serving fallbacks"
            )
            return False

        return True


_current_budget: ContextVar[Optional[TimeBudget]] = ContextVar(
    "gravatar_request_budget", default=None
)


def current_budget() -> Optional[TimeBudget]:
    """Budget of the enclosing request scope, if any."""
    return _current_budget.get()


@contextmanager
def request_budget(budget: Optional[TimeBudget] = None) -> Iterator[TimeBudget]:
    """
    Install a fresh budget for the duration of one request.

    Usage:
        with request_budget(cache.new_budget()):
            html = render_comments()
    """
    if budget is None:
        budget = TimeBudget()
    token = _current_budget.set(budget)
    try:
        yield budget
    finally:
        _current_budget.reset(token)
