"""Danbooru API client – authenticated, timeout-bound HTTP fetcher."""

from __future__ import annotations

import itertools
import logging

import httpx

from .config import Credentials, DanbooruConfig
from .models import Post
from .ranges import Batch

logger = logging.getLogger("booru_harvester.api")


class FetchError(Exception):
    """A batch or file could not be fetched or decoded."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code

    @property
    def rate_limited(self) -> bool:
        return self.status_code == 429


class BatchTooWideError(RuntimeError):
    """A batch wider than the server page limit reached the fetch layer."""


class DanbooruAPI:
    """Thin wrapper around the Danbooru JSON API."""

    def __init__(
        self,
        cfg: DanbooruConfig | None = None,
        credentials: Credentials | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.cfg = cfg or DanbooruConfig()
        self._auth = httpx.BasicAuth(credentials.login, credentials.api_key) if credentials else None
        self._client = httpx.Client(
            base_url=self.cfg.api_base,
            timeout=self.cfg.timeout,
            headers={"User-Agent": self.cfg.user_agent},
            follow_redirects=True,
            transport=transport,
        )

    def _get(self, url: str, **kwargs: object) -> httpx.Response:
        try:
            resp = self._client.get(url, **kwargs)  # type: ignore[arg-type]
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 429:
                logger.warning("Rate limited by server: %s", exc.request.url)
            raise FetchError(
                f"Response status indicates failure: {status}",
                url=str(exc.request.url),
                status_code=status,
            ) from exc
        except httpx.HTTPError as exc:
            raise FetchError(f"Request failed: {exc}", url=url) from exc
        return resp

    # ── public API ───────────────────────────────────────────────

    def get_posts(self, batch: Batch) -> list[Post]:
        """Fetch all posts with ``batch.start <= id < batch.stop``.

        The API only filters by an upper bound, so trailing results below
        ``batch.start`` are trimmed here (results arrive in descending order).
        Malformed records are logged and skipped; the rest of the page is kept.
        """
        limit = self.cfg.page_limit
        if batch.width > limit:
            raise BatchTooWideError(
                f"The hard limit for requesting posts is {limit}. {batch.width} posts actually requested."
            )
        params = {"tags": f"id:<{batch.stop}", "limit": limit}
        resp = self._get("/posts.json", params=params, auth=self._auth)
        url = str(resp.request.url)
        try:
            data = resp.json()
        except ValueError as exc:
            raise FetchError(f"Failed decoding response ({exc})", url=url) from exc
        if not isinstance(data, list):
            raise FetchError("Expected a JSON array of posts", url=url)
        posts = []
        for item in data:
            try:
                posts.append(Post.from_api(item))
            except (KeyError, TypeError, ValueError) as exc:
                post_id = item.get("id") if isinstance(item, dict) else None
                logger.warning("Skipping malformed post record %s from %s (%s)", post_id, url, exc)
        return list(itertools.takewhile(lambda p: p.id >= batch.start, posts))

    def download_file(self, file_url: str) -> bytes:
        """Download a post's file. Relative URLs resolve against the API host."""
        return self._get(file_url, auth=None).content

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> DanbooruAPI:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
