from __future__ import annotations

from typing import List, Optional, Tuple

from helpdesk_engine.task_queue import RateLimitedTaskQueue


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_minimum_interval_between_task_starts() -> None:
    clock = FakeClock()
    queue = RateLimitedTaskQueue(min_interval=2.0, clock=clock, sleep=clock.sleep)

    results = queue.map(lambda item: item * 10, [1, 2, 3], fallback=lambda item: -1)

    assert results == [10, 20, 30]
    assert clock.sleeps == [2.0, 2.0]


def test_failing_task_uses_fallback_and_batch_continues() -> None:
    queue = RateLimitedTaskQueue()

    def work(item: int) -> int:
        if item == 2:
            raise RuntimeError("upstream unavailable")
        return item

    assert queue.map(work, [1, 2, 3], fallback=lambda item: 0) == [1, 0, 3]


def test_should_continue_stops_new_starts() -> None:
    queue = RateLimitedTaskQueue()
    started: List[int] = []

    def work(item: int) -> int:
        started.append(item)
        return item

    results = queue.map(
        work, [1, 2, 3, 4], fallback=lambda item: 0, should_continue=lambda: len(started) < 2
    )

    assert results == [1, 2]
    assert started == [1, 2]


def test_from_rate_limit_converts_to_interval() -> None:
    assert RateLimitedTaskQueue.from_rate_limit(30).min_interval == 2.0
    assert RateLimitedTaskQueue.from_rate_limit(None).min_interval == 0.0


def test_concurrent_results_keep_input_order() -> None:
    queue = RateLimitedTaskQueue(max_concurrency=3)
    progress: List[Tuple[int, Optional[int]]] = []

    results = queue.map(
        lambda item: item * 2,
        range(6),
        fallback=lambda item: -1,
        progress_callback=lambda count, total: progress.append((count, total)),
    )

    assert results == [0, 2, 4, 6, 8, 10]
    assert progress[-1] == (6, 6)
