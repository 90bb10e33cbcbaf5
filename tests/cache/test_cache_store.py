from __future__ import annotations

import json
from pathlib import Path

import pytest

from noteharvest.cache.store import CacheStore
from noteharvest.models import Annotation, Book


class _Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _books() -> list[Book]:
    return [
        Book(
            id="b1",
            title="Moby Dick",
            author="Herman Melville",
            annotations=[Annotation(asset_id="b1", quote="q", color_code=1, created_at=12.5)],
        ),
        Book(id="b2", title="Walden", author="Henry David Thoreau", cover="/covers/b2.jpg"),
    ]


def test_save_then_load_round_trips_books(tmp_path: Path) -> None:
    clock = _Clock()
    store = CacheStore(tmp_path / "cache" / "books_cache.json", clock=clock)

    books = _books()
    store.save(books)
    entry = store.load()

    assert entry is not None
    assert entry.books == books
    assert entry.updated_at == clock.now
    assert store.last_updated() == clock.now


def test_durable_freshness_window(tmp_path: Path) -> None:
    clock = _Clock()
    store = CacheStore(tmp_path / "books_cache.json", durable_ttl=3600, clock=clock)
    assert store.is_fresh() is False

    store.save(_books())
    clock.now += 30 * 60
    assert store.is_fresh() is True

    clock.now += 31 * 60
    assert store.is_fresh() is False


def test_corrupt_document_is_a_cache_miss(tmp_path: Path) -> None:
    cache_file = tmp_path / "books_cache.json"
    store = CacheStore(cache_file)

    cache_file.write_text("{not json", encoding="utf-8")
    assert store.load() is None
    assert store.is_fresh() is False

    cache_file.write_text(json.dumps({"version": 1, "updated_at": 5, "books": [{"id": 3}]}), encoding="utf-8")
    assert store.load() is None

    cache_file.write_text(json.dumps({"version": 99, "updated_at": 5, "books": []}), encoding="utf-8")
    assert store.load() is None


def test_fast_cache_is_scoped_to_recent_full_load(tmp_path: Path) -> None:
    clock = _Clock()
    store = CacheStore(tmp_path / "books_cache.json", fast_ttl=300, clock=clock)
    book = _books()[0]

    store.remember(book)
    assert store.recent_book("b1") is None

    store.mark_full_load()
    assert store.recent_book("b1") is book

    clock.now += 299
    assert store.recent_book("b1") is book

    clock.now += 1
    assert store.recent_book("b1") is None


def test_invalidate_clears_both_tiers(tmp_path: Path) -> None:
    clock = _Clock()
    store = CacheStore(tmp_path / "books_cache.json", clock=clock)
    store.save(_books())
    store.remember(_books()[1])
    store.mark_full_load()

    store.invalidate()

    assert not store.cache_file.exists()
    assert store.load() is None
    assert store.recent_book("b2") is None

    store.invalidate()


def test_cache_stamped_in_the_future_is_stale(tmp_path: Path) -> None:
    clock = _Clock()
    store = CacheStore(tmp_path / "books_cache.json", durable_ttl=3600, clock=clock)
    store.save(_books())

    clock.now -= 10 * 60

    assert store.is_fresh() is False


def test_failed_save_leaves_no_staging_file(tmp_path: Path) -> None:
    blocker = tmp_path / "cache"
    blocker.write_text("not a directory", encoding="utf-8")
    store = CacheStore(blocker / "books_cache.json")

    with pytest.raises(OSError):
        store.save(_books())

    assert blocker.read_text(encoding="utf-8") == "not a directory"


def test_failed_replace_removes_staging_file(tmp_path: Path, monkeypatch) -> None:
    cache_file = tmp_path / "books_cache.json"
    store = CacheStore(cache_file)

    def _refuse(src, dst) -> None:
        raise PermissionError("read-only volume")

    monkeypatch.setattr("noteharvest.cache.store.os.replace", _refuse)

    with pytest.raises(PermissionError):
        store.save(_books())

    assert list(tmp_path.iterdir()) == []
