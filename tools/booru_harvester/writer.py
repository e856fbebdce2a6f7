"""Persist one post and its tag / favorite / pool relations."""

from __future__ import annotations

import logging
import threading

import psycopg

from .db import Database, Transaction
from .models import Post

logger = logging.getLogger("booru_harvester.writer")


class PostWriter:
    """Idempotent, best-effort writes of a post graph.

    Every statement is isolated: a failure is logged and counted, and the
    remaining work for the post carries on. Only a failed post row stops the
    tag and relation writes, since those reference it.
    """

    def __init__(self, db: Database) -> None:
        self.db = db
        self.errors = 0
        self._lock = threading.Lock()

    def _failed(self, msg: str, *args: object, level: int = logging.WARNING) -> None:
        with self._lock:
            self.errors += 1
        logger.log(level, msg, *args)

    def write(self, post: Post) -> bool:
        """Write the post row, its tags and relations. False if the row failed."""
        try:
            with self.db.transaction() as tx:
                tx.upsert_post(post)
        except psycopg.Error as exc:
            self._failed("Could not insert post: %d (%s)", post.id, exc, level=logging.ERROR)
            return False

        for category, tag_string in post.tag_strings():
            self.write_tags(post.id, tag_string.split(), category)
        self.write_relations(post)
        return True

    # ── tags ─────────────────────────────────────────────────────

    def write_tags(self, post_id: int, names: list[str], category: str) -> None:
        """Create tags in one transaction, then link them in a second one.

        Tags created in the first transaction stay even if linking fails.
        """
        if not names:
            return
        try:
            with self.db.transaction() as tx:
                for name in names:
                    try:
                        with tx.savepoint():
                            tx.insert_tag(name, category)
                    except psycopg.Error as exc:
                        self._failed("Could not insert tag %s for post: %d (%s)", name, post_id, exc)
        except psycopg.Error as exc:
            self._failed("Inserting tags failed for post: %d (%s)", post_id, exc)
            return

        try:
            with self.db.transaction() as tx:
                for name in names:
                    self._link_tag(tx, name, post_id)
        except psycopg.Error as exc:
            self._failed("Linking tags failed for post: %d (%s)", post_id, exc)

    def _link_tag(self, tx: Transaction, name: str, post_id: int) -> None:
        try:
            with tx.savepoint():
                tag_id = tx.tag_id(name)
                if tag_id is None:
                    self._failed("Tag %s not found for post: %d", name, post_id)
                    return
                tx.insert_tagged(tag_id, post_id)
        except psycopg.Error as exc:
            self._failed("Creating relationship for tag %s and post %d failed (%s)", name, post_id, exc)

    # ── favorites / pools ────────────────────────────────────────

    def write_relations(self, post: Post) -> None:
        """Insert favorite and pool edges, committed together."""
        if not post.fav_string.strip() and not post.pool_string.strip():
            return
        try:
            with self.db.transaction() as tx:
                for user_id in post.favorite_user_ids:
                    try:
                        with tx.savepoint():
                            tx.insert_favorite(user_id, post.id)
                    except psycopg.Error as exc:
                        self._failed("Could not insert favorite %d for post: %d (%s)", user_id, post.id, exc)
                for pool_id in post.pool_ids:
                    try:
                        with tx.savepoint():
                            tx.insert_pooled(pool_id, post.id)
                    except psycopg.Error as exc:
                        self._failed("Could not insert pool %d for post: %d (%s)", pool_id, post.id, exc)
        except psycopg.Error as exc:
            self._failed("Inserting favorites/pools failed for post: %d (%s)", post.id, exc)
