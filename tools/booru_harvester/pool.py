"""Fixed-size worker pool fed from a bounded job queue."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

logger = logging.getLogger("booru_harvester.pool")

T = TypeVar("T")

_CLOSED = object()
_POLL_INTERVAL = 0.1


def _consume(jobs: queue.Queue, handler: Callable[[T], object], failed: threading.Event) -> int:
    """Worker loop: handle jobs until the close sentinel arrives."""
    done = 0
    while True:
        job = jobs.get()
        if job is _CLOSED:
            return done
        if failed.is_set():
            continue  # drain without working once a worker has died
        try:
            handler(job)
        except Exception:
            failed.set()
            raise
        done += 1


def run_batches(
    batches: Iterable[T],
    handler: Callable[[T], object],
    workers: int,
) -> int:
    """Run ``handler`` over ``batches`` with exactly ``workers`` threads.

    Batches are queued in iteration order and the producer blocks while the
    queue is full. Closing the queue is the only shutdown signal: every
    queued batch is still drained. An exception escaping ``handler`` stops
    production and is re-raised here once all workers have exited.

    Returns the number of batches handled.
    """
    if workers < 1:
        raise ValueError(f"workers must be positive, got {workers}")

    jobs: queue.Queue = queue.Queue(maxsize=1)
    failed = threading.Event()

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="harvester") as executor:
        futures = [executor.submit(_consume, jobs, handler, failed) for _ in range(workers)]

        def offer(item: object) -> bool:
            # A full queue with no live consumer would block forever.
            while True:
                try:
                    jobs.put(item, timeout=_POLL_INTERVAL)
                    return True
                except queue.Full:
                    if all(f.done() for f in futures):
                        return False

        try:
            for batch in batches:
                if failed.is_set() or not offer(batch):
                    logger.error("A worker failed, no further batches are queued")
                    break
        finally:
            for _ in futures:
                if not offer(_CLOSED):
                    break

    # Re-raises the first worker failure, if any.
    return sum(f.result() for f in futures)
