"""Two-tier cache: a durable library snapshot and a short-lived per-book map."""

from __future__ import annotations

from contextlib import suppress
from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
import time
from typing import Callable

from noteharvest.errors import CacheCorrupt
from noteharvest.models import Book

logger = logging.getLogger(__name__)

CACHE_FORMAT_VERSION = 1
DURABLE_TTL_SECONDS = 3600.0
FAST_TTL_SECONDS = 300.0


@dataclass(slots=True)
class CacheEntry:
    books: list[Book]
    updated_at: float


class CacheStore:
    """Owner of the durable cache document and the in-memory book map.

    The two freshness windows are independent: the durable document is reused
    for ``durable_ttl`` seconds after it was written, while fast-cache books are
    reused for ``fast_ttl`` seconds after the last completed full scan.
    """

    def __init__(
        self,
        cache_file: str | Path,
        *,
        durable_ttl: float = DURABLE_TTL_SECONDS,
        fast_ttl: float = FAST_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._cache_file = Path(cache_file)
        self._durable_ttl = durable_ttl
        self._fast_ttl = fast_ttl
        self._clock = clock
        self._recent: dict[str, Book] = {}
        self._last_full_load: float | None = None

    @property
    def cache_file(self) -> Path:
        return self._cache_file

    # Durable tier

    def last_updated(self) -> float | None:
        try:
            document = self._read_document()
        except CacheCorrupt as exc:
            logger.warning("%s", exc)
            return None
        if document is None:
            return None
        return float(document["updated_at"])

    def is_fresh(self) -> bool:
        updated_at = self.last_updated()
        if updated_at is None:
            logger.info("No durable cache timestamp, rescan needed")
            return False
        age = self._clock() - updated_at
        # A timestamp from the future means the clock moved; rescan.
        fresh = 0 <= age <= self._durable_ttl
        logger.info(
            "Durable cache is %d minutes old, %s",
            int(age // 60),
            "still fresh" if fresh else "rescan needed",
        )
        return fresh

    def load(self) -> CacheEntry | None:
        try:
            document = self._read_document()
            if document is None:
                return None
            raw_books = document["books"]
            if not isinstance(raw_books, list):
                raise CacheCorrupt(self._cache_file, "books must be a list")
            try:
                books = [Book.from_dict(entry) for entry in raw_books]
            except (TypeError, ValueError) as exc:
                raise CacheCorrupt(self._cache_file, f"Malformed cached book: {exc}") from exc
        except CacheCorrupt as exc:
            logger.warning("Ignoring durable cache: %s", exc)
            return None

        logger.info("Loaded %d books from durable cache", len(books))
        return CacheEntry(books=books, updated_at=float(document["updated_at"]))

    def save(self, books: list[Book]) -> None:
        document = {
            "version": CACHE_FORMAT_VERSION,
            "updated_at": self._clock(),
            "books": [book.to_dict() for book in books],
        }
        staging = self._cache_file.with_name(f"{self._cache_file.name}.tmp")
        try:
            self._cache_file.parent.mkdir(parents=True, exist_ok=True)
            staging.write_text(json.dumps(document, ensure_ascii=False), encoding="utf-8")
            os.replace(staging, self._cache_file)
        except OSError:
            with suppress(OSError):
                staging.unlink()
            raise
        logger.info("Saved %d books to durable cache", len(books))

    def invalidate_durable(self) -> None:
        try:
            self._cache_file.unlink()
        except FileNotFoundError:
            pass
        logger.info("Cleared durable cache")

    def _read_document(self) -> dict[str, object] | None:
        if not self._cache_file.exists():
            return None
        try:
            document = json.loads(self._cache_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise CacheCorrupt(self._cache_file, f"Unreadable cache document: {exc}") from exc

        if not isinstance(document, dict):
            raise CacheCorrupt(self._cache_file, "Cache document is not an object")
        if document.get("version") != CACHE_FORMAT_VERSION:
            raise CacheCorrupt(self._cache_file, f"Unsupported cache version: {document.get('version')!r}")
        updated_at = document.get("updated_at")
        if isinstance(updated_at, bool) or not isinstance(updated_at, (int, float)):
            raise CacheCorrupt(self._cache_file, "updated_at must be a number")
        if "books" not in document:
            raise CacheCorrupt(self._cache_file, "Cache document has no books")
        return document

    # Fast tier

    def recent_book(self, book_id: str) -> Book | None:
        if self._last_full_load is None:
            return None
        if self._clock() - self._last_full_load >= self._fast_ttl:
            return None
        return self._recent.get(book_id)

    def remember(self, book: Book) -> None:
        self._recent[book.id] = book

    def mark_full_load(self) -> None:
        self._last_full_load = self._clock()

    def invalidate(self) -> None:
        """Drop both tiers and the freshness timestamps."""

        self._recent.clear()
        self._last_full_load = None
        self.invalidate_durable()
