"""Rate limited execution of calls to slow external collaborators."""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, Optional, Sequence, TypeVar

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


class RateLimitedTaskQueue:
    """Run tasks with bounded concurrency and a minimum gap between task starts.

    A task that raises is logged and replaced by ``fallback(item)``; it never
    aborts the remaining items. ``should_continue`` is checked before each
    start so a superseded batch stops issuing new calls.
    """

    def __init__(
        self,
        *,
        min_interval: float = 0.0,
        max_concurrency: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = max(0.0, float(min_interval))
        self.max_concurrency = max(1, int(max_concurrency))
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self._last_start: Optional[float] = None

    @classmethod
    def from_rate_limit(cls, rate_limit_per_minute: Optional[int], **kwargs) -> "RateLimitedTaskQueue":
        interval = 60.0 / rate_limit_per_minute if rate_limit_per_minute else 0.0
        return cls(min_interval=interval, **kwargs)

    def _wait_turn(self) -> None:
        with self._lock:
            if self.min_interval and self._last_start is not None:
                remaining = self.min_interval - (self._clock() - self._last_start)
                if remaining > 0:
                    LOGGER.debug("Sleeping %.2fs to respect rate limits", remaining)
                    self._sleep(remaining)
            self._last_start = self._clock()

    def _run_one(
        self,
        func: Callable[[T], R],
        item: T,
        fallback: Callable[[T], R],
        label: str,
    ) -> R:
        self._wait_turn()
        try:
            return func(item)
        except Exception as exc:  # collaborator failures never abort the batch
            LOGGER.warning("%s failed for %r, using default: %s", label, item, exc)
            return fallback(item)

    def map(
        self,
        func: Callable[[T], R],
        items: Iterable[T],
        *,
        fallback: Callable[[T], R],
        should_continue: Callable[[], bool] = lambda: True,
        progress_callback: Optional[Callable[[int, Optional[int]], None]] = None,
        label: str = "task",
    ) -> List[R]:
        """Apply ``func`` to each item; results come back in input order.

        Items not started because ``should_continue`` turned false are absent
        from the result, which is therefore a prefix of the input.
        """
        pending: Sequence[T] = list(items)
        total = len(pending)
        results: List[R] = []
        if self.max_concurrency == 1:
            for index, item in enumerate(pending, start=1):
                if not should_continue():
                    LOGGER.info("Stopping %s batch after %s of %s items", label, index - 1, total)
                    break
                results.append(self._run_one(func, item, fallback, label))
                if progress_callback:
                    progress_callback(index, total)
            return results

        with ThreadPoolExecutor(max_workers=self.max_concurrency) as executor:
            futures = []
            for item in pending:
                if not should_continue():
                    LOGGER.info("Stopping %s batch after %s of %s items", label, len(futures), total)
                    break
                futures.append(executor.submit(self._run_one, func, item, fallback, label))
            for index, future in enumerate(futures, start=1):
                results.append(future.result())
                if progress_callback:
                    progress_callback(index, total)
        return results
