"""Configuration and environment settings for the harvester."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .ranges import PAGE_LIMIT

logger = logging.getLogger("booru_harvester.config")

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "scrapedbooru"
AUTH_FILENAME = "auth.json"
DB_FILENAME = "database.json"


class ConfigError(Exception):
    """Mandatory configuration is missing or malformed."""


def _lookup(data: Mapping[str, Any], key: str, default: Any = None) -> Any:
    """Case-insensitive key lookup (database.json uses capitalised keys)."""
    for k, v in data.items():
        if k.lower() == key.lower():
            return v
    return default


@dataclass(frozen=True)
class DatabaseConfig:
    host: str = "localhost"
    port: int = 5432
    dbname: str = "danbooru"
    user: str = "danbooru"
    password: str = ""

    @property
    def dsn(self) -> str:
        return f"postgresql://{self.user}:{self.password}@{self.host}:{self.port}/{self.dbname}"

    @classmethod
    def from_env(cls) -> DatabaseConfig:
        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            dbname=os.getenv("DB_NAME", "danbooru"),
            user=os.getenv("DB_USER", "danbooru"),
            password=os.getenv("DB_PASSWORD", ""),
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> DatabaseConfig:
        """Build from a database.json document (Host, Port, User, Password, Database)."""
        try:
            return cls(
                host=str(_lookup(data, "host", "localhost")),
                port=int(_lookup(data, "port", 5432)),
                dbname=str(_lookup(data, "database") or _lookup(data, "dbname", "danbooru")),
                user=str(_lookup(data, "user", "danbooru")),
                password=str(_lookup(data, "password", "")),
            )
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid database configuration: {exc}") from exc


@dataclass(frozen=True)
class Credentials:
    login: str
    api_key: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Credentials:
        login = data.get("login")
        api_key = data.get("api_key")
        if not login or not api_key:
            raise ConfigError("Credentials need both 'login' and 'api_key'")
        return cls(login=str(login), api_key=str(api_key))


@dataclass(frozen=True)
class DanbooruConfig:
    """Danbooru API configuration.  The server caps a page at 20 posts."""
    api_base: str = "https://danbooru.donmai.us"
    page_limit: int = PAGE_LIMIT
    timeout: float = 10.0
    user_agent: str = "booru-harvester/1.0"

    def __post_init__(self) -> None:
        if not 1 <= self.page_limit <= PAGE_LIMIT:
            raise ValueError(f"page_limit must be between 1 and {PAGE_LIMIT}, got {self.page_limit}")


@dataclass
class HarvesterConfig:
    db: DatabaseConfig = field(default_factory=DatabaseConfig.from_env)
    danbooru: DanbooruConfig = field(default_factory=DanbooruConfig)
    credentials: Credentials | None = None
    save_path: Path = Path(".")
    download_files: bool = True
    workers: int = 10
    show_progress: bool = True


# ── providers ────────────────────────────────────────────────────


class ConfigProvider(Protocol):
    """Source of the database descriptor and the optional API credentials."""

    def database(self) -> DatabaseConfig: ...

    def credentials(self) -> Credentials | None: ...


class JsonConfigProvider:
    """Reads database.json and auth.json from a configuration directory."""

    def __init__(self, config_dir: Path | str | None = None) -> None:
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_CONFIG_DIR

    def _read(self, filename: str) -> Mapping[str, Any]:
        path = self.config_dir / filename
        with path.open(encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        return data

    def database(self) -> DatabaseConfig:
        try:
            data = self._read(DB_FILENAME)
        except (OSError, ValueError) as exc:
            raise ConfigError(
                f"Could not read configuration file {self.config_dir / DB_FILENAME} ({exc})"
            ) from exc
        return DatabaseConfig.from_mapping(data)

    def credentials(self) -> Credentials | None:
        path = self.config_dir / AUTH_FILENAME
        try:
            return Credentials.from_mapping(self._read(AUTH_FILENAME))
        except (OSError, ValueError, ConfigError) as exc:
            logger.warning("Could not read %s (%s)", path, exc)
            logger.warning("Authentication not possible, falling back to anonymous requests")
            return None


class EnvConfigProvider:
    """Reads DB_* and DANBOORU_LOGIN / DANBOORU_API_KEY from the environment."""

    def database(self) -> DatabaseConfig:
        try:
            return DatabaseConfig.from_env()
        except ValueError as exc:
            raise ConfigError(f"Invalid database configuration: {exc}") from exc

    def credentials(self) -> Credentials | None:
        login = os.getenv("DANBOORU_LOGIN")
        api_key = os.getenv("DANBOORU_API_KEY")
        if login and api_key:
            return Credentials(login=login, api_key=api_key)
        logger.warning("DANBOORU_LOGIN/DANBOORU_API_KEY not set, using anonymous requests")
        return None
