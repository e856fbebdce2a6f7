"""Shared fixtures: an in-memory store with the Database transaction surface,
a scripted API client and post payload builders."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import psycopg
import pytest

from booru_harvester.api import FetchError
from booru_harvester.config import DanbooruConfig, DatabaseConfig, HarvesterConfig
from booru_harvester.models import Post
from booru_harvester.ranges import Batch


class FakeTransaction:
    """Like PostgreSQL, a failed statement aborts the transaction unless a
    savepoint around it is rolled back."""

    def __init__(self, db: FakeDatabase) -> None:
        self.db = db
        self.aborted = False

    @contextmanager
    def savepoint(self) -> Iterator[None]:
        self._guard()
        try:
            yield
        except psycopg.Error:
            self.aborted = False
            raise

    def _guard(self) -> None:
        if self.aborted:
            raise psycopg.errors.InFailedSqlTransaction(
                "current transaction is aborted, commands ignored until end of transaction block"
            )

    def _statement(self, kind: str, key: Any, post_id: int | None = None) -> None:
        self._guard()
        try:
            self.db.check(kind, key)
            if post_id is not None:
                self.db.require_post(post_id)
        except psycopg.Error:
            self.aborted = True
            raise

    def upsert_post(self, post: Post) -> None:
        self._statement("post", post.id)
        self.db.posts[post.id] = post

    def insert_tag(self, name: str, category: str) -> None:
        self._statement("tag", name)
        if name not in self.db.tags:
            self.db.tags[name] = (len(self.db.tags) + 1, category)

    def tag_id(self, name: str) -> int | None:
        self._guard()
        entry = self.db.tags.get(name)
        return entry[0] if entry else None

    def insert_tagged(self, tag_id: int, post_id: int) -> None:
        name = next(n for n, (i, _) in self.db.tags.items() if i == tag_id)
        self._statement("tagged", name, post_id)
        self.db.tagged.add((tag_id, post_id))

    def insert_favorite(self, user_id: int, post_id: int) -> None:
        self._statement("favorite", user_id, post_id)
        self.db.favorites.add((user_id, post_id))

    def insert_pooled(self, pool_id: int, post_id: int) -> None:
        self._statement("pooled", pool_id, post_id)
        self.db.pooled.add((pool_id, post_id))


class FakeDatabase:
    """Mimics ON CONFLICT DO NOTHING tables; ``fail_on`` injects statement errors."""

    def __init__(self) -> None:
        self.posts: dict[int, Post] = {}
        self.tags: dict[str, tuple[int, str]] = {}
        self.tagged: set[tuple[int, int]] = set()
        self.favorites: set[tuple[int, int]] = set()
        self.pooled: set[tuple[int, int]] = set()
        self.fail_on: set[tuple[str, Any]] = set()
        self.transactions = 0
        self.closed = False
        self._lock = threading.RLock()

    def check(self, kind: str, key: Any) -> None:
        if (kind, key) in self.fail_on:
            raise psycopg.DatabaseError(f"simulated {kind} failure for {key}")

    def require_post(self, post_id: int) -> None:
        if post_id not in self.posts:
            raise psycopg.errors.ForeignKeyViolation(f"post {post_id} does not exist")

    @contextmanager
    def transaction(self) -> Iterator[FakeTransaction]:
        with self._lock:
            self.transactions += 1
            yield FakeTransaction(self)

    def tag_names(self, post_id: int) -> set[str]:
        by_id = {i: n for n, (i, _) in self.tags.items()}
        return {by_id[t] for t, p in self.tagged if p == post_id}

    def close(self) -> None:
        self.closed = True


class FakeAPI:
    """Returns scripted posts per batch and records every request."""

    def __init__(self, pages: dict[Batch, list[Post]] | None = None) -> None:
        self.pages = pages or {}
        self.errors: set[Batch] = set()
        self.files: dict[str, bytes] = {}
        self.requested: list[Batch] = []
        self.closed = False
        self._lock = threading.Lock()

    def get_posts(self, batch: Batch) -> list[Post]:
        with self._lock:
            self.requested.append(batch)
        if batch in self.errors:
            raise FetchError("Response status indicates failure: 503", url="/posts.json", status_code=503)
        return self.pages.get(batch, [])

    def download_file(self, file_url: str) -> bytes:
        if file_url not in self.files:
            raise FetchError("Response status indicates failure: 404", url=file_url, status_code=404)
        return self.files[file_url]

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def fake_api() -> FakeAPI:
    return FakeAPI()


@pytest.fixture
def post_payload() -> Callable[..., dict[str, Any]]:
    def _builder(**overrides: Any) -> dict[str, Any]:
        base: dict[str, Any] = {
            "id": 1,
            "created_at": "2017-02-06T18:30:12.345-05:00",
            "updated_at": "2017-02-07T01:02:03.000-05:00",
            "uploader_id": 42,
            "score": 7,
            "source": "https://example.com/art",
            "md5": "d41d8cd98f00b204e9800998ecf8427e",
            "rating": "s",
            "image_width": 800,
            "image_height": 600,
            "file_ext": "jpg",
            "parent_id": None,
            "has_children": False,
            "file_size": 12345,
            "fav_string": "fav:10 fav:11",
            "pool_string": "pool:3",
            "up_score": 8,
            "down_score": -1,
            "is_pending": False,
            "is_flagged": False,
            "is_deleted": False,
            "is_banned": False,
            "pixiv_id": None,
            "bit_flags": 0,
            "tag_string_artist": "some_artist",
            "tag_string_character": "hatsune_miku",
            "tag_string_copyright": "vocaloid",
            "tag_string_general": "1girl long_hair",
            "file_url": "/data/d41d8cd98f00b204e9800998ecf8427e.jpg",
        }
        base.update(overrides)
        return base

    return _builder


@pytest.fixture
def make_post(post_payload: Callable[..., dict[str, Any]]) -> Callable[..., Post]:
    def _builder(**overrides: Any) -> Post:
        return Post.from_api(post_payload(**overrides))

    return _builder


@pytest.fixture
def harvester_config(tmp_path) -> Callable[..., HarvesterConfig]:
    def _builder(**overrides: Any) -> HarvesterConfig:
        base: dict[str, Any] = {
            "db": DatabaseConfig(),
            "danbooru": DanbooruConfig(api_base="https://booru.test"),
            "save_path": tmp_path / "files",
            "download_files": False,
            "workers": 3,
            "show_progress": False,
        }
        base.update(overrides)
        return HarvesterConfig(**base)

    return _builder
