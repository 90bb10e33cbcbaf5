from __future__ import annotations

from contextlib import closing
from pathlib import Path
import sqlite3
from typing import Any

import pytest

from noteharvest.config import HarvestSettings

_CATALOG_SCHEMA = """
CREATE TABLE ZBKLIBRARYASSET (
    Z_PK INTEGER PRIMARY KEY,
    ZASSETID VARCHAR,
    ZTITLE VARCHAR,
    ZAUTHOR VARCHAR,
    ZPATH VARCHAR,
    ZCOVERURL VARCHAR
)
"""

_ANNOTATION_SCHEMA = """
CREATE TABLE ZAEANNOTATION (
    Z_PK INTEGER PRIMARY KEY,
    ZANNOTATIONASSETID VARCHAR,
    ZANNOTATIONSELECTEDTEXT VARCHAR,
    ZANNOTATIONNOTE VARCHAR,
    ZFUTUREPROOFING5 VARCHAR,
    ZANNOTATIONSTYLE INTEGER,
    ZANNOTATIONMODIFICATIONDATE TIMESTAMP,
    ZANNOTATIONCREATIONDATE TIMESTAMP,
    ZANNOTATIONDELETED INTEGER,
    ZPLLOCATIONRANGESTART INTEGER
)
"""

_SYNC_SCHEMA = """
CREATE TABLE ZBCASSETANNOTATIONS (
    Z_PK INTEGER PRIMARY KEY,
    ZASSETID VARCHAR,
    ZBOOKANNOTATIONS BLOB,
    ZDELETEDFLAG INTEGER
)
"""


class BookStores:
    """Builds catalog, annotation and sync stores shaped like the real ones."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.catalog_dir = root / "BKLibrary"
        self.annotation_dir = root / "AEAnnotation"
        self.sync_db = root / "BCCloudData-iBooks" / "BCAssetData" / "BCAssetData"
        self.cache_dir = root / "cache"
        self.catalog_dir.mkdir(parents=True)
        self.annotation_dir.mkdir(parents=True)

    def add_catalog(self, books: list[dict[str, Any]], *, name: str = "BKLibrary-1.sqlite") -> Path:
        path = self.catalog_dir / name
        with closing(sqlite3.connect(path)) as connection:
            connection.execute(_CATALOG_SCHEMA)
            connection.executemany(
                "INSERT INTO ZBKLIBRARYASSET(ZASSETID, ZTITLE, ZAUTHOR, ZPATH, ZCOVERURL) VALUES(?, ?, ?, ?, ?)",
                [
                    (
                        book["id"],
                        book.get("title"),
                        book.get("author"),
                        book.get("path"),
                        book.get("cover_url"),
                    )
                    for book in books
                ],
            )
            connection.commit()
        return path

    def add_corrupt_catalog(self, *, name: str) -> Path:
        path = self.catalog_dir / name
        path.write_bytes(b"this is not a database file" * 64)
        return path

    def add_annotations(self, rows: list[dict[str, Any]], *, name: str = "AEAnnotation_v1.sqlite") -> Path:
        path = self.annotation_dir / name
        with closing(sqlite3.connect(path)) as connection:
            connection.execute(_ANNOTATION_SCHEMA)
            connection.executemany(
                """
                INSERT INTO ZAEANNOTATION(
                    ZANNOTATIONASSETID,
                    ZANNOTATIONSELECTEDTEXT,
                    ZANNOTATIONNOTE,
                    ZFUTUREPROOFING5,
                    ZANNOTATIONSTYLE,
                    ZANNOTATIONMODIFICATIONDATE,
                    ZANNOTATIONCREATIONDATE,
                    ZANNOTATIONDELETED,
                    ZPLLOCATIONRANGESTART
                )
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        row["asset_id"],
                        row.get("quote"),
                        row.get("comment"),
                        row.get("chapter"),
                        row.get("style"),
                        row.get("modified"),
                        row.get("created"),
                        row.get("deleted", 0),
                        row.get("location", position),
                    )
                    for position, row in enumerate(rows)
                ],
            )
            connection.commit()
        return path

    def add_sync(self, rows: list[tuple[str, bytes | None, int]]) -> Path:
        self.sync_db.parent.mkdir(parents=True, exist_ok=True)
        with closing(sqlite3.connect(self.sync_db)) as connection:
            connection.execute(_SYNC_SCHEMA)
            connection.executemany(
                "INSERT INTO ZBCASSETANNOTATIONS(ZASSETID, ZBOOKANNOTATIONS, ZDELETEDFLAG) VALUES(?, ?, ?)",
                rows,
            )
            connection.commit()
        return self.sync_db

    def settings(self, **overrides: Any) -> HarvestSettings:
        values: dict[str, Any] = {
            "catalog_dir": self.catalog_dir,
            "annotation_dir": self.annotation_dir,
            "sync_db": self.sync_db,
            "cache_dir": self.cache_dir,
            "channel_size": 1,
        }
        values.update(overrides)
        return HarvestSettings(**values)


@pytest.fixture
def stores(tmp_path: Path) -> BookStores:
    return BookStores(tmp_path / "Documents")
