"""Post records as returned by the Danbooru posts API."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from datetime import datetime
from typing import Any

# Tag categories as stored in tags.category
ARTIST = "a"
CHARACTER = "c"
COPYRIGHT = "y"
GENERAL = "g"


def _ts(value: Any) -> datetime | None:
    """Wall-clock time of an ISO-8601 stamp; the offset is dropped for timestamp columns."""
    if not value:
        return None
    return datetime.fromisoformat(str(value)).replace(tzinfo=None)


def _int(value: Any) -> int:
    return int(value) if value is not None else 0


def _opt_int(value: Any) -> int | None:
    return int(value) if value is not None else None


def _str(value: Any) -> str:
    return str(value) if value is not None else ""


def parse_ids(tokens: str, prefix: str) -> list[int]:
    """Parse ``fav:1 fav:2``-style strings, skipping malformed tokens."""
    ids = []
    for token in tokens.split():
        value = token.removeprefix(prefix)
        digits = value[1:] if value[:1] in ("+", "-") else value
        if digits.isascii() and digits.isdigit():
            ids.append(int(value))
    return ids


@dataclass(frozen=True)
class Post:
    id: int
    created_at: datetime | None = None
    updated_at: datetime | None = None
    uploader_id: int = 0
    score: int = 0
    source: str = ""
    md5: str = ""
    rating: str = "q"
    image_width: int = 0
    image_height: int = 0
    file_ext: str = ""
    parent_id: int | None = None
    has_children: bool = False
    file_size: int = 0
    up_score: int = 0
    down_score: int = 0
    is_pending: bool = False
    is_flagged: bool = False
    is_deleted: bool = False
    is_banned: bool = False
    pixiv_id: int | None = None
    bit_flags: int = 0
    file_url: str = ""
    # Not stored as columns, exploded into relations.
    fav_string: str = ""
    pool_string: str = ""
    tag_string_artist: str = ""
    tag_string_character: str = ""
    tag_string_copyright: str = ""
    tag_string_general: str = ""

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> Post:
        """Build a Post from one JSON object.

        Raises KeyError, TypeError or ValueError on malformed records.
        """
        return cls(
            id=int(data["id"]),
            created_at=_ts(data.get("created_at")),
            updated_at=_ts(data.get("updated_at")),
            uploader_id=_int(data.get("uploader_id")),
            score=_int(data.get("score")),
            source=_str(data.get("source")),
            md5=_str(data.get("md5")),
            rating=_str(data.get("rating")) or "q",
            image_width=_int(data.get("image_width")),
            image_height=_int(data.get("image_height")),
            file_ext=_str(data.get("file_ext")),
            parent_id=_opt_int(data.get("parent_id")),
            has_children=bool(data.get("has_children")),
            file_size=_int(data.get("file_size")),
            up_score=_int(data.get("up_score")),
            down_score=_int(data.get("down_score")),
            is_pending=bool(data.get("is_pending")),
            is_flagged=bool(data.get("is_flagged")),
            is_deleted=bool(data.get("is_deleted")),
            is_banned=bool(data.get("is_banned")),
            pixiv_id=_opt_int(data.get("pixiv_id")),
            bit_flags=_int(data.get("bit_flags")),
            file_url=_str(data.get("file_url")),
            fav_string=_str(data.get("fav_string")),
            pool_string=_str(data.get("pool_string")),
            tag_string_artist=_str(data.get("tag_string_artist")),
            tag_string_character=_str(data.get("tag_string_character")),
            tag_string_copyright=_str(data.get("tag_string_copyright")),
            tag_string_general=_str(data.get("tag_string_general")),
        )

    def tag_strings(self) -> Iterator[tuple[str, str]]:
        """Yield (category, space-separated tags) in artist → general order."""
        yield ARTIST, self.tag_string_artist
        yield CHARACTER, self.tag_string_character
        yield COPYRIGHT, self.tag_string_copyright
        yield GENERAL, self.tag_string_general

    @property
    def favorite_user_ids(self) -> list[int]:
        return parse_ids(self.fav_string, "fav:")

    @property
    def pool_ids(self) -> list[int]:
        return parse_ids(self.pool_string, "pool:")

    @property
    def filename(self) -> str:
        return f"{self.id}.{self.file_ext}"
