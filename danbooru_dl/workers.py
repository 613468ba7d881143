from __future__ import annotations

import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Iterable, Iterator, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def default_workers(configured: int = 0, *, cap: int = 8) -> int:
    """
    Worker count for one stage: the configured value, or one per CPU when it is 0.

    Always clamped to [1, cap].
    """
    cap = max(1, int(cap))
    n = int(configured) if configured and configured > 0 else (os.cpu_count() or 4)
    return max(1, min(n, cap))


def run_bounded(
    fn: Callable[[T], R],
    items: Iterable[T],
    *,
    workers: int,
    cancel: threading.Event | None = None,
) -> Iterator[R]:
    """
    Run fn over items on a bounded thread pool and yield results as they complete.

    Units are expected to turn their own failures into result values. If the
    consumer is interrupted (KeyboardInterrupt, or an exception escaping a unit),
    the cancel event is set, queued units are dropped and the error propagates
    once running units have returned.
    """
    units = list(items)
    if not units:
        return

    executor = ThreadPoolExecutor(max_workers=max(1, int(workers)))
    try:
        futures = [executor.submit(fn, unit) for unit in units]
        for fut in as_completed(futures):
            yield fut.result()
    except BaseException:
        if cancel is not None:
            cancel.set()
        executor.shutdown(wait=True, cancel_futures=True)
        raise
    finally:
        executor.shutdown(wait=True)
