"""Disk storage layer – save post files as ``<post-id>.<ext>``."""

from __future__ import annotations

import logging
from pathlib import Path

from .api import DanbooruAPI, FetchError
from .models import Post

logger = logging.getLogger("booru_harvester.storage")


class DiskStorageService:
    """Save post files into a local directory."""

    def __init__(self, api: DanbooruAPI, save_path: Path | str = ".") -> None:
        self.api = api
        self.save_path = Path(save_path)

    def path_for(self, post: Post) -> Path:
        return self.save_path / post.filename

    def save(self, post: Post) -> bool:
        """Download and write the post's file.

        Returns True if a file was written. Failures are logged as warnings
        and never raised; files already on disk are not downloaded again.
        """
        if not post.file_url:
            logger.warning("Saving post failed: %d (no file_url)", post.id)
            return False
        target = self.path_for(post)
        if target.exists():
            logger.debug("File for post %d already exists: %s", post.id, target)
            return False
        try:
            data = self.api.download_file(post.file_url)
        except FetchError as exc:
            logger.warning("Saving post failed: %d (%s)", post.id, exc)
            return False

        tmp = target.with_name(target.name + ".part")
        try:
            self.save_path.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(target)
        except OSError as exc:
            logger.warning("Saving post failed: %d (%s)", post.id, exc)
            if tmp.exists():
                tmp.unlink()
            return False
        logger.debug("Saved %s (%d bytes)", target, len(data))
        return True
