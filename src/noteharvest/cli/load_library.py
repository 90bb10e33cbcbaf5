"""CLI command that loads the annotation library and reports it as JSON."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
import json
import logging
from pathlib import Path

from dotenv import load_dotenv

from noteharvest.config import HarvestSettings
from noteharvest.models import BookLoaded, LoadCompleted, LoadError, LoadResult
from noteharvest.pipeline.loader import ProgressiveLoader


load_dotenv()

LOGGER = logging.getLogger(__name__)


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Load book annotations from the local book stores")
    parser.add_argument("--catalog-dir", help="Catalog store directory")
    parser.add_argument("--annotation-dir", help="Annotation store directory")
    parser.add_argument("--sync-db", help="Sync store database file")
    parser.add_argument("--cache-dir", help="Directory for the durable cache and covers")
    parser.add_argument("--refresh", action="store_true", help="Ignore the durable cache and rescan")
    parser.add_argument("--clear-cache", action="store_true", help="Clear all caches before loading")
    parser.add_argument("--stream", action="store_true", help="Print one JSON line per result")
    parser.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser.parse_args(argv)


def _settings_from_args(args: argparse.Namespace) -> HarvestSettings:
    settings = HarvestSettings.from_env()
    overrides: dict[str, Path] = {}
    if args.catalog_dir:
        overrides["catalog_dir"] = Path(args.catalog_dir)
    if args.annotation_dir:
        overrides["annotation_dir"] = Path(args.annotation_dir)
    if args.sync_db:
        overrides["sync_db"] = Path(args.sync_db)
    if args.cache_dir:
        overrides["cache_dir"] = Path(args.cache_dir)
    return replace(settings, **overrides) if overrides else settings


def _result_payload(result: LoadResult) -> dict[str, object]:
    if isinstance(result, BookLoaded):
        book = result.book
        return {
            "type": "book",
            "id": book.id,
            "title": book.title,
            "author": book.author,
            "cover": book.cover,
            "annotation_count": len(book.annotations),
            "latest_annotation_date": book.latest_annotation_date,
        }
    if isinstance(result, LoadError):
        return {"type": "error", "fatal": result.fatal, "error": result.message}
    return {"type": "completed", "total": result.total}


async def _run(loader: ProgressiveLoader, *, refresh: bool, stream: bool) -> int:
    books: list[dict[str, object]] = []
    errors: list[dict[str, object]] = []
    fatal = False
    completed: int | None = None

    async with loader.stream(force_refresh=refresh) as results:
        async for result in results:
            payload = _result_payload(result)
            if stream:
                print(json.dumps(payload, ensure_ascii=True), flush=True)
            if isinstance(result, BookLoaded):
                books.append(payload)
            elif isinstance(result, LoadError):
                fatal = fatal or result.fatal
                errors.append(payload)
            elif isinstance(result, LoadCompleted):
                completed = result.total

    if not stream:
        summary = {
            "processed": completed if completed is not None else len(books),
            "books": books,
            "errors": errors,
        }
        print(json.dumps(summary, ensure_ascii=True, indent=2))

    if fatal:
        LOGGER.error("%s", loader.status.error_message)
        return 2
    return 0 if not errors else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(message)s")

    try:
        settings = _settings_from_args(args)
    except ValueError as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    loader = ProgressiveLoader.from_settings(settings)
    if args.clear_cache:
        loader.clear_cache()

    return asyncio.run(_run(loader, refresh=args.refresh, stream=args.stream))


if __name__ == "__main__":
    raise SystemExit(main())
