"""Core harvesting logic – orchestrates API → DB → Storage."""

from __future__ import annotations

import logging
import threading

from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from .api import DanbooruAPI, FetchError
from .config import HarvesterConfig
from .db import Database
from .pool import run_batches
from .ranges import Batch, partition
from .storage import DiskStorageService
from .writer import PostWriter

logger = logging.getLogger("booru_harvester.core")


class Harvester:
    """Orchestrates the Danbooru → Postgres import pipeline."""

    def __init__(
        self,
        cfg: HarvesterConfig | None = None,
        *,
        api: DanbooruAPI | None = None,
        db: Database | None = None,
    ) -> None:
        self.cfg = cfg or HarvesterConfig()
        self.api = api or DanbooruAPI(self.cfg.danbooru, self.cfg.credentials)
        self.db = db or Database(self.cfg.db, max_size=self.cfg.workers)
        self.writer = PostWriter(self.db)
        self.storage = DiskStorageService(self.api, self.cfg.save_path) if self.cfg.download_files else None
        self._lock = threading.Lock()
        # Stats
        self.stats = {"batches": 0, "posts": 0, "files": 0, "skipped": 0, "errors": 0}

    def _count(self, key: str, n: int = 1) -> None:
        with self._lock:
            self.stats[key] += n

    # ── batch ────────────────────────────────────────────────────

    def harvest_batch(self, batch: Batch) -> int:
        """Fetch one batch and persist its posts one after another.

        A failed fetch is logged and the batch counted as skipped; it is not
        retried. Returns the number of post rows written.
        """
        try:
            posts = self.api.get_posts(batch)
        except FetchError as exc:
            logger.warning("An error occurred when requesting %s: %s (%s)", batch, exc.url, exc)
            self._count("skipped")
            return 0

        written = 0
        for post in posts:
            if self.writer.write(post):
                written += 1
            if self.storage is not None and self.storage.save(post):
                self._count("files")

        self._count("batches")
        self._count("posts", written)
        logger.debug("Batch %s: %d/%d posts written", batch, written, len(posts))
        return written

    # ── range ────────────────────────────────────────────────────

    def harvest_range(self, start: int, stop: int) -> int:
        """Harvest every post with ``start <= id < stop`` using the worker pool.

        ``start == stop`` harvests that single post synchronously.
        Returns the number of batches handled.
        """
        if start == stop:
            self.harvest_batch(next(partition(start, stop, self.cfg.danbooru.page_limit)))
            self._sync_errors()
            return 1

        batches = list(partition(start, stop, self.cfg.danbooru.page_limit))
        logger.info(
            "Harvesting posts %d..%d in %d batches with %d workers",
            start, stop - 1, len(batches), self.cfg.workers,
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeElapsedColumn(),
            disable=not self.cfg.show_progress,
        ) as progress:
            task = progress.add_task(f"posts {start}..{stop - 1}", total=len(batches))

            def work(batch: Batch) -> None:
                self.harvest_batch(batch)
                progress.advance(task)

            try:
                return run_batches(batches, work, self.cfg.workers)
            finally:
                self._sync_errors()

    def _sync_errors(self) -> None:
        with self._lock:
            self.stats["errors"] = self.writer.errors

    # ── lifecycle ────────────────────────────────────────────────

    def close(self) -> None:
        self.api.close()
        self.db.close()

    def __enter__(self) -> Harvester:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
