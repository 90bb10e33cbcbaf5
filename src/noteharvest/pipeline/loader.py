"""Progressive library loader: cache replay or full scan, streamed as results."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
import logging
from typing import Callable

from noteharvest.cache.store import CacheStore
from noteharvest.config import HarvestSettings
from noteharvest.errors import FileReadFailure, SourceUnavailable
from noteharvest.models import Book, BookLoaded, LoadCompleted, LoadError
from noteharvest.pipeline.stream import LoadStream
from noteharvest.sources.annotations import AnnotationAggregator, AnnotationLookup
from noteharvest.sources.catalog import CatalogReader, CatalogRecord
from noteharvest.sources.covers import CoverResolver
from noteharvest.sources.validator import SourceValidator

logger = logging.getLogger(__name__)


class LoadState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    CACHE_REPLAY = "cache_replay"
    SCANNING = "scanning"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class LoaderStatus:
    """Observable progress of the current or last load."""

    state: LoadState = LoadState.IDLE
    progress: float = 0.0
    message: str = ""
    error_message: str | None = None

    @property
    def is_loading(self) -> bool:
        return self.state in {
            LoadState.VALIDATING,
            LoadState.CACHE_REPLAY,
            LoadState.SCANNING,
            LoadState.STREAMING,
        }


class ProgressiveLoader:
    """Drive one load at a time and stream its results.

    Callers must not run two loads concurrently on the same loader; cancel or
    finish the previous stream first.
    """

    def __init__(
        self,
        *,
        validator: SourceValidator,
        catalog: CatalogReader,
        aggregator_factory: Callable[[], AnnotationAggregator],
        covers: CoverResolver,
        cache: CacheStore,
        channel_size: int = 8,
    ) -> None:
        self._validator = validator
        self._catalog = catalog
        self._aggregator_factory = aggregator_factory
        self._covers = covers
        self._cache = cache
        self._channel_size = channel_size
        self.status = LoaderStatus()

    @classmethod
    def from_settings(cls, settings: HarvestSettings, *, cache: CacheStore | None = None) -> "ProgressiveLoader":
        store = cache or CacheStore(
            settings.cache_file,
            durable_ttl=settings.cache_ttl_seconds,
            fast_ttl=settings.fast_cache_ttl_seconds,
        )
        return cls(
            validator=SourceValidator(settings.catalog_dir, settings.annotation_dir),
            catalog=CatalogReader(settings.catalog_dir),
            aggregator_factory=lambda: AnnotationAggregator(settings.annotation_dir, settings.sync_db),
            covers=CoverResolver(settings.cover_dir),
            cache=store,
            channel_size=settings.channel_size,
        )

    @property
    def cache(self) -> CacheStore:
        return self._cache

    def stream(self, *, force_refresh: bool = False) -> LoadStream:
        """Create the result stream for a new load; work starts on first iteration."""

        async def _produce(channel: LoadStream) -> None:
            await self._produce(channel, force_refresh=force_refresh)

        return LoadStream(_produce, maxsize=self._channel_size)

    def clear_cache(self) -> None:
        self._cache.invalidate()

    def refresh_from_source(self) -> None:
        """Make the next load rescan the stores, keeping the fast cache."""

        self._cache.invalidate_durable()

    def clear_error(self) -> None:
        self.status.error_message = None

    async def collect(self, *, force_refresh: bool = False, strict: bool = False) -> list[Book]:
        books: list[Book] = []
        async with self.stream(force_refresh=force_refresh) as results:
            async for result in results:
                if isinstance(result, BookLoaded):
                    books.append(result.book)
                elif isinstance(result, LoadError):
                    if result.fatal or strict:
                        raise result.cause
                    logger.warning("Skipped: %s", result.message)
        return books

    def load_library(self, *, force_refresh: bool = False, strict: bool = False) -> list[Book]:
        """Blocking variant for callers that cannot consume a stream."""

        return asyncio.run(self.collect(force_refresh=force_refresh, strict=strict))

    async def _produce(self, channel: LoadStream, *, force_refresh: bool) -> None:
        self.status = LoaderStatus(state=LoadState.VALIDATING, message="Scanning Apple Books database...")
        try:
            if force_refresh:
                await asyncio.to_thread(self._cache.invalidate_durable)
            if await asyncio.to_thread(self._cache.is_fresh):
                entry = await asyncio.to_thread(self._cache.load)
                if entry is not None:
                    await self._replay(channel, entry.books)
                    return
            await self._scan(channel)
        except Exception as exc:
            logger.exception("Library load crashed")
            self._fail(str(exc))
            raise

    async def _replay(self, channel: LoadStream, books: list[Book]) -> None:
        self.status.state = LoadState.CACHE_REPLAY
        self.status.message = "Loading from cache..."
        self.status.progress = 0.5
        for book in books:
            if not await channel.emit(BookLoaded(book)):
                self._cancelled()
                return

        self.status.progress = 1.0
        self.status.message = f"Loaded {len(books)} books from cache"
        self.status.state = LoadState.COMPLETED
        await channel.emit(LoadCompleted(len(books)))

    async def _scan(self, channel: LoadStream) -> None:
        try:
            await asyncio.to_thread(self._validator.validate)
            self.status.state = LoadState.SCANNING
            catalog_files = await asyncio.to_thread(self._catalog.catalog_files)
        except SourceUnavailable as exc:
            logger.error("%s", exc)
            self._fail(exc.remediation)
            await channel.emit(LoadError(exc))
            return

        total_files = len(catalog_files)
        self.status.state = LoadState.STREAMING
        self.status.message = f"Found {total_files} database files"

        assembled: list[Book] = []
        seen: set[str] = set()
        aggregator = self._aggregator_factory()
        try:
            for index, path in enumerate(catalog_files, start=1):
                if channel.cancelled:
                    break
                try:
                    records = await asyncio.to_thread(self._catalog.read_file, path)
                except FileReadFailure as exc:
                    logger.warning("%s", exc)
                    self.status.message = f"Error loading file {path.name}: {exc.message}"
                    await channel.emit(LoadError(exc))
                else:
                    for record in records:
                        if channel.cancelled:
                            break
                        if record.asset_id in seen:
                            logger.debug("Skipping duplicate asset %s in %s", record.asset_id, path.name)
                            continue
                        seen.add(record.asset_id)
                        book = await self._book_for(channel, record, aggregator)
                        if book is None:
                            break
                        assembled.append(book)
                        if not await channel.emit(BookLoaded(book)):
                            break
                if channel.cancelled:
                    break
                self.status.progress = index / total_files
        finally:
            await asyncio.to_thread(aggregator.close)

        if channel.cancelled:
            self._cancelled()
            return

        try:
            await asyncio.to_thread(self._cache.save, assembled)
        except OSError as exc:
            logger.warning("Could not write durable cache %s: %s", self._cache.cache_file, exc)
        self._cache.mark_full_load()
        self.status.progress = 1.0
        self.status.message = f"Loaded {len(assembled)} books successfully"
        self.status.state = LoadState.COMPLETED
        logger.info("Loaded %d books from %d catalog files", len(assembled), total_files)
        await channel.emit(LoadCompleted(len(assembled)))

    async def _book_for(
        self,
        channel: LoadStream,
        record: CatalogRecord,
        aggregator: AnnotationAggregator,
    ) -> Book | None:
        cached = self._cache.recent_book(record.asset_id)
        if cached is not None:
            return cached

        self.status.message = f"Loading '{record.title}' by {record.author}"
        logger.debug("Processing book '%s' by %s (%s)", record.title, record.author, record.asset_id)
        cover, lookup = await asyncio.to_thread(self._assemble, record, aggregator)
        for failure in lookup.failures:
            if not await channel.emit(LoadError(failure)):
                return None

        book = Book(
            id=record.asset_id,
            title=record.title,
            author=record.author,
            cover=cover,
            annotations=lookup.annotations,
        )
        self._cache.remember(book)
        return book

    def _assemble(self, record: CatalogRecord, aggregator: AnnotationAggregator) -> tuple[str | None, AnnotationLookup]:
        cover = self._covers.resolve(record.cover_url, record.path, record.asset_id)
        return cover, aggregator.annotations_for(record.asset_id)

    def _fail(self, message: str) -> None:
        self.status.state = LoadState.FAILED
        self.status.error_message = message

    def _cancelled(self) -> None:
        self.status.state = LoadState.CANCELLED
        logger.info("Library load cancelled")

