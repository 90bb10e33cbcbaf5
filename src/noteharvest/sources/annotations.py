"""Merge per-book annotations from the local store and the sync store."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
import sqlite3

from noteharvest.errors import FileReadFailure
from noteharvest.models import Annotation
from noteharvest.sources.payload import PayloadDecoder
from noteharvest.sources.rows import as_bytes, as_int, as_number, as_text, connect_readonly, list_store_files
from noteharvest.timeutil import native_to_unix

logger = logging.getLogger(__name__)

_SELECT_LOCAL_ANNOTATIONS = """
SELECT
    ZANNOTATIONASSETID AS asset_id,
    ZANNOTATIONSELECTEDTEXT AS quote,
    ZANNOTATIONNOTE AS comment,
    ZFUTUREPROOFING5 AS chapter,
    ZANNOTATIONSTYLE AS color_code,
    ZANNOTATIONMODIFICATIONDATE AS modified_at,
    ZANNOTATIONCREATIONDATE AS created_at
FROM ZAEANNOTATION
WHERE ZANNOTATIONASSETID = ?
  AND COALESCE(ZANNOTATIONDELETED, 0) = 0
ORDER BY ZPLLOCATIONRANGESTART
"""

_SELECT_SYNC_PAYLOADS = """
SELECT ZBOOKANNOTATIONS
FROM ZBCASSETANNOTATIONS
WHERE ZASSETID = ?
  AND COALESCE(ZDELETEDFLAG, 0) = 0
  AND ZBOOKANNOTATIONS IS NOT NULL
"""


@dataclass(slots=True)
class AnnotationLookup:
    """Annotations for one book plus store files that failed for the first time."""

    annotations: list[Annotation] = field(default_factory=list)
    failures: list[FileReadFailure] = field(default_factory=list)


class AnnotationAggregator:
    """Per-load reader over the annotation stores.

    Connections are opened lazily and kept for the lifetime of the aggregator,
    so use it as a context manager around one load. A file that fails once is
    reported once and skipped for the remaining books.
    """

    def __init__(
        self,
        annotation_dir: str | Path,
        sync_db: str | Path | None = None,
        *,
        decoder: PayloadDecoder | None = None,
    ) -> None:
        self._annotation_dir = Path(annotation_dir)
        self._sync_db = Path(sync_db) if sync_db is not None else None
        self._decoder = decoder or PayloadDecoder()
        self._connections: dict[Path, sqlite3.Connection] = {}
        self._broken: set[Path] = set()
        self._local_files: list[Path] | None = None

    def close(self) -> None:
        connections = list(self._connections.values())
        self._connections.clear()
        for connection in connections:
            connection.close()

    def __enter__(self) -> "AnnotationAggregator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def annotations_for(self, book_id: str) -> AnnotationLookup:
        lookup = AnnotationLookup()

        for path in self._local_store_files(lookup):
            rows = self._query(path, _SELECT_LOCAL_ANNOTATIONS, book_id, lookup)
            lookup.annotations.extend(_local_annotation(row, book_id) for row in rows)

        local_count = len(lookup.annotations)
        if self._sync_db is not None and self._sync_db.is_file():
            for row in self._query(self._sync_db, _SELECT_SYNC_PAYLOADS, book_id, lookup):
                payload = as_bytes(row[0])
                if payload is None:
                    continue
                lookup.annotations.extend(self._decoder.decode(payload, book_id))

        logger.debug(
            "Book %s: %d local and %d synced annotations",
            book_id,
            local_count,
            len(lookup.annotations) - local_count,
        )
        return lookup

    def _local_store_files(self, lookup: AnnotationLookup) -> list[Path]:
        if self._local_files is None:
            try:
                self._local_files = list_store_files(self._annotation_dir)
            except OSError as exc:
                self._local_files = []
                lookup.failures.append(
                    FileReadFailure(self._annotation_dir, f"Failed to list annotation store: {exc}")
                )
        return [path for path in self._local_files if path not in self._broken]

    def _query(
        self,
        path: Path,
        sql: str,
        book_id: str,
        lookup: AnnotationLookup,
    ) -> list[tuple[object, ...]]:
        if path in self._broken:
            return []
        try:
            connection = self._connections.get(path)
            if connection is None:
                # Queries run from worker threads, one at a time.
                connection = connect_readonly(path, check_same_thread=False)
                self._connections[path] = connection
            return connection.execute(sql, (book_id,)).fetchall()
        except sqlite3.Error as exc:
            self._broken.add(path)
            stale = self._connections.pop(path, None)
            if stale is not None:
                stale.close()
            failure = FileReadFailure(path, f"Failed to read annotation file: {exc}")
            logger.warning("%s", failure)
            lookup.failures.append(failure)
            return []


def _local_annotation(row: tuple[object, ...], book_id: str) -> Annotation:
    modified_raw = as_number(row[5])
    created_raw = as_number(row[6])
    return Annotation(
        asset_id=book_id,
        quote=as_text(row[1]),
        comment=as_text(row[2]),
        chapter=as_text(row[3]),
        color_code=as_int(row[4]),
        modified_at=native_to_unix(modified_raw) if modified_raw is not None else None,
        created_at=native_to_unix(created_raw) if created_raw is not None else None,
    )
