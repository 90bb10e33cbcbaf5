"""Catalog store reader producing one raw record per book."""

from __future__ import annotations

from contextlib import closing
from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Iterator

from noteharvest.errors import FileReadFailure, SourceUnavailable, StoreKind
from noteharvest.sources.rows import as_text, connect_readonly, list_store_files

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"

_SELECT_BOOKS = """
SELECT
    ZASSETID AS asset_id,
    ZTITLE AS title,
    ZAUTHOR AS author,
    ZPATH AS path,
    ZCOVERURL AS cover_url
FROM ZBKLIBRARYASSET
"""


@dataclass(frozen=True, slots=True)
class CatalogRecord:
    asset_id: str
    title: str
    author: str
    path: str | None = None
    cover_url: str | None = None


class CatalogReader:
    """Enumerate catalog database files and the book rows they hold."""

    def __init__(self, catalog_dir: str | Path) -> None:
        self._catalog_dir = Path(catalog_dir)

    @property
    def catalog_dir(self) -> Path:
        return self._catalog_dir

    def catalog_files(self) -> list[Path]:
        try:
            files = list_store_files(self._catalog_dir)
        except OSError as exc:
            raise SourceUnavailable(StoreKind.CATALOG, self._catalog_dir, f"cannot list directory: {exc}") from exc
        if not files:
            raise SourceUnavailable(StoreKind.CATALOG, self._catalog_dir, "no catalog database files found")
        return files

    def iter_records(self, path: Path) -> Iterator[CatalogRecord]:
        """Yield the book rows of one catalog file.

        Opening or querying failures surface as ``FileReadFailure`` for this
        file only; malformed rows are skipped.
        """

        try:
            with closing(connect_readonly(path)) as connection:
                cursor = connection.execute(_SELECT_BOOKS)
                for row in cursor:
                    record = _decode_row(row, path)
                    if record is not None:
                        yield record
        except sqlite3.Error as exc:
            raise FileReadFailure(path, f"Failed to read catalog file: {exc}") from exc

    def read_file(self, path: Path) -> list[CatalogRecord]:
        return list(self.iter_records(path))

    def iter_all(self) -> Iterator[CatalogRecord | FileReadFailure]:
        """Yield records from every catalog file, reporting broken files inline."""

        for path in self.catalog_files():
            try:
                records = self.read_file(path)
            except FileReadFailure as exc:
                logger.warning("%s", exc)
                yield exc
                continue
            yield from records


def _decode_row(row: tuple[object, ...], path: Path) -> CatalogRecord | None:
    asset_id = as_text(row[0])
    if not asset_id:
        logger.warning("Skipping catalog row without a text asset id in %s", path.name)
        return None

    title = as_text(row[1])
    author = as_text(row[2])
    return CatalogRecord(
        asset_id=asset_id,
        title=title if title else UNKNOWN_TITLE,
        author=author if author else UNKNOWN_AUTHOR,
        path=as_text(row[3]),
        cover_url=as_text(row[4]),
    )
