"""Split post ID ranges into API-page-sized batches."""

from __future__ import annotations

from collections.abc import Iterator
from typing import NamedTuple

PAGE_LIMIT = 20  # server-side hard limit for posts.json


class Batch(NamedTuple):
    """Half-open ID interval ``[start, stop)``."""
    start: int
    stop: int

    @property
    def width(self) -> int:
        return self.stop - self.start

    def __str__(self) -> str:
        return f"[{self.start}, {self.stop})"


def partition(start: int, stop: int, limit: int = PAGE_LIMIT) -> Iterator[Batch]:
    """Yield contiguous batches covering ``[start, stop)``, each at most ``limit`` wide.

    ``start == stop`` denotes the single post ``start``.
    """
    if start > stop:
        raise ValueError(f"start {start} has to be smaller than stop {stop}")
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    if start == stop:
        yield Batch(start, start + 1)
        return
    for current in range(start, stop, limit):
        yield Batch(current, min(current + limit, stop))
