"""CLI entry-point for the Danbooru harvester."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import NoReturn

import click
import psycopg
from psycopg_pool import PoolTimeout
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .api import BatchTooWideError, DanbooruAPI, FetchError
from .config import (
    ConfigError,
    ConfigProvider,
    DanbooruConfig,
    EnvConfigProvider,
    HarvesterConfig,
    JsonConfigProvider,
)
from .db import Database
from .harvester import Harvester
from .ranges import partition

console = Console()
logger = logging.getLogger("booru_harvester.cli")


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, console=console)],
    )
    # Suppress noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("psycopg").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)


def _print_stats(stats: dict) -> None:
    table = Table(title="Harvest Summary", show_header=True, header_style="bold cyan")
    table.add_column("Metric", style="bold")
    table.add_column("Count", justify="right")
    for key, val in stats.items():
        table.add_row(key.capitalize(), str(val))
    console.print(table)


def _fatal(msg: str, *args: object) -> NoReturn:
    logger.error(msg, *args)
    sys.exit(1)


@click.group()
@click.option(
    "--config-source",
    type=click.Choice(["files", "env"]),
    default="files",
    show_default=True,
    help="Read database/auth settings from JSON files or environment variables",
)
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory holding database.json and auth.json (default: ~/.config/scrapedbooru)",
)
@click.option("--api-base", envvar="DANBOORU_URL", default=DanbooruConfig.api_base, help="Danbooru base URL")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_source: str, config_dir: Path | None, api_base: str, verbose: bool) -> None:
    """Danbooru Harvester – Import Danbooru posts into PostgreSQL.

    Fetches posts in batches of 20 with a pool of worker threads, stores
    posts, tags, favorites and pool memberships, and saves each post's file.
    """
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    provider: ConfigProvider = EnvConfigProvider() if config_source == "env" else JsonConfigProvider(config_dir)
    ctx.obj["provider"] = provider
    ctx.obj["danbooru"] = DanbooruConfig(api_base=api_base)


def _make_config(ctx: click.Context, *, workers: int = 1, save_path: Path = Path("."),
                 files: bool = True, progress: bool = True) -> HarvesterConfig:
    provider: ConfigProvider = ctx.obj["provider"]
    try:
        db_cfg = provider.database()
    except ConfigError as exc:
        _fatal("%s", exc)
    return HarvesterConfig(
        db=db_cfg,
        danbooru=ctx.obj["danbooru"],
        credentials=provider.credentials(),
        save_path=save_path,
        download_files=files,
        workers=workers,
        show_progress=progress,
    )


def _run(cfg: HarvesterConfig, start: int, stop: int) -> None:
    db = Database(cfg.db, max_size=cfg.workers)
    try:
        db.open()
    except (PoolTimeout, psycopg.OperationalError) as exc:
        db.close()
        _fatal("Could not establish database connection. (%s)", exc)
    with Harvester(cfg, db=db) as h:
        try:
            h.harvest_range(start, stop)
        except BatchTooWideError as exc:
            _fatal("%s", exc)
        _print_stats(h.stats)


# ─── Commands ────────────────────────────────────────────────────


@cli.command(name="range")
@click.argument("start", type=int)
@click.argument("stop", type=int)
@click.option("-w", "--workers", default=10, show_default=True, type=click.IntRange(min=1), help="Concurrent workers")
@click.option(
    "--save-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory for downloaded files",
)
@click.option("--no-files", is_flag=True, help="Skip file downloads")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar")
@click.pass_context
def range_(ctx: click.Context, start: int, stop: int, workers: int, save_path: Path,
           no_files: bool, no_progress: bool) -> None:
    """Harvest all posts with START <= id < STOP.

    Example: booru-harvester range 1 1001 --workers 10
    """
    if start > stop:
        raise click.BadParameter(f"START {start} has to be smaller than STOP {stop}")
    cfg = _make_config(ctx, workers=workers, save_path=save_path, files=not no_files, progress=not no_progress)
    console.print(f"[bold]Harvesting posts [cyan]{start}..{stop - 1}[/cyan]...[/bold]")
    _run(cfg, start, stop)


@cli.command()
@click.argument("post_id", type=int)
@click.option(
    "--save-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Directory for downloaded files",
)
@click.option("--no-files", is_flag=True, help="Skip file downloads")
@click.pass_context
def post(ctx: click.Context, post_id: int, save_path: Path, no_files: bool) -> None:
    """Harvest a single post.

    Example: booru-harvester post 1234
    """
    cfg = _make_config(ctx, save_path=save_path, files=not no_files, progress=False)
    console.print(f"[bold]Harvesting post [cyan]{post_id}[/cyan]...[/bold]")
    _run(cfg, post_id, post_id)


@cli.command()
@click.argument("start", type=int)
@click.argument("stop", type=int)
@click.pass_context
def preview(ctx: click.Context, start: int, stop: int) -> None:
    """Preview posts with START <= id < STOP without importing.

    Example: booru-harvester preview 1 41
    """
    if start > stop:
        raise click.BadParameter(f"START {start} has to be smaller than STOP {stop}")
    cfg: DanbooruConfig = ctx.obj["danbooru"]
    table = Table(title=f"Posts {start}..{stop - 1}", show_header=True, header_style="bold cyan")
    table.add_column("Id", style="bold", justify="right")
    table.add_column("Rating", justify="center")
    table.add_column("Score", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Tags", justify="right")
    table.add_column("File", max_width=40)

    with DanbooruAPI(cfg, ctx.obj["provider"].credentials()) as api:
        for batch in partition(start, stop, cfg.page_limit):
            try:
                posts = api.get_posts(batch)
            except FetchError as exc:
                logger.warning("An error occurred when requesting %s (%s)", batch, exc)
                continue
            for p in sorted(posts, key=lambda item: item.id):
                tags = sum(len(s.split()) for _, s in p.tag_strings())
                table.add_row(
                    str(p.id),
                    p.rating,
                    str(p.score),
                    f"{p.image_width}x{p.image_height}",
                    str(tags),
                    p.filename if p.file_url else "",
                )
    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
