"""Database operations – map Danbooru posts into the scrapedbooru tables."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .config import DatabaseConfig
from .models import Post

logger = logging.getLogger("booru_harvester.db")

POST_COLUMNS = (
    "id", "created_at", "updated_at", "uploader_id", "score", "source", "md5",
    "rating", "image_width", "image_height", "file_ext", "parent_id",
    "has_children", "file_size", "up_score", "down_score", "is_pending",
    "is_flagged", "is_deleted", "is_banned", "pixiv_id", "bit_flags", "file_url",
)

UPSERT_POST = f"""
    INSERT INTO posts ({", ".join(POST_COLUMNS)})
    VALUES ({", ".join(["%s"] * len(POST_COLUMNS))})
    ON CONFLICT (id) DO UPDATE SET
        updated_at   = EXCLUDED.updated_at,
        score        = EXCLUDED.score,
        up_score     = EXCLUDED.up_score,
        down_score   = EXCLUDED.down_score,
        has_children = EXCLUDED.has_children,
        is_pending   = EXCLUDED.is_pending,
        is_flagged   = EXCLUDED.is_flagged,
        is_deleted   = EXCLUDED.is_deleted,
        is_banned    = EXCLUDED.is_banned,
        bit_flags    = EXCLUDED.bit_flags,
        file_url     = EXCLUDED.file_url,
        scraped_at   = CURRENT_TIMESTAMP
"""


class Transaction:
    """Statements executed inside one scoped transaction."""

    def __init__(self, conn: psycopg.Connection) -> None:
        self.conn = conn

    def savepoint(self) -> AbstractContextManager[object]:
        """Nested block: a failing statement inside only rolls back itself."""
        return self.conn.transaction()

    def upsert_post(self, post: Post) -> None:
        self.conn.execute(UPSERT_POST, tuple(getattr(post, col) for col in POST_COLUMNS))

    def insert_tag(self, name: str, category: str) -> None:
        self.conn.execute(
            "INSERT INTO tags (name, category) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (name, category),
        )

    def tag_id(self, name: str) -> int | None:
        row = self.conn.execute("SELECT id FROM tags WHERE name = %s", (name,)).fetchone()
        return row["id"] if row else None

    def insert_tagged(self, tag_id: int, post_id: int) -> None:
        self.conn.execute(
            "INSERT INTO tagged (tag_id, post_id) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (tag_id, post_id),
        )

    def insert_favorite(self, user_id: int, post_id: int) -> None:
        self.conn.execute(
            "INSERT INTO favorites (user_id, post_id) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (user_id, post_id),
        )

    def insert_pooled(self, pool_id: int, post_id: int) -> None:
        self.conn.execute(
            "INSERT INTO pooled (pool_id, post_id) VALUES (%s, %s) ON CONFLICT DO NOTHING",
            (pool_id, post_id),
        )


class Database:
    """Pooled Postgres interface, safe to share between worker threads."""

    def __init__(self, cfg: DatabaseConfig | None = None, *, max_size: int = 10) -> None:
        self.cfg = cfg or DatabaseConfig.from_env()
        self.max_size = max(1, max_size)
        self._pool: ConnectionPool | None = None

    @property
    def pool(self) -> ConnectionPool:
        if self._pool is None:
            self._pool = ConnectionPool(
                self.cfg.dsn,
                min_size=1,
                max_size=self.max_size,
                kwargs={"row_factory": dict_row},
                open=False,
            )
        return self._pool

    def open(self, timeout: float = 10.0) -> None:
        """Open the pool and wait for a first connection.

        Raises ``psycopg_pool.PoolTimeout`` if the server is unreachable.
        """
        self.pool.open(wait=True, timeout=timeout)
        logger.debug("Connected to %s:%s/%s", self.cfg.host, self.cfg.port, self.cfg.dbname)

    # ── transaction helpers ──────────────────────────────────────

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        """Check out a connection and run one transaction on it.

        Commits on normal exit, rolls back if the block raises.
        """
        with self.pool.connection() as conn, conn.transaction():
            yield Transaction(conn)

    def close(self) -> None:
        if self._pool is not None and not self._pool.closed:
            self._pool.close()

    def __enter__(self) -> Database:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
