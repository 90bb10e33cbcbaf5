"""Read-only SQLite access and typed column decoding for store files."""

from __future__ import annotations

from pathlib import Path
import sqlite3

STORE_FILE_SUFFIX = ".sqlite"


def list_store_files(directory: Path) -> list[Path]:
    """Return the store's database files in filename order."""

    return sorted(
        (path for path in directory.iterdir() if path.name.endswith(STORE_FILE_SUFFIX) and path.is_file()),
        key=lambda path: path.name,
    )


def connect_readonly(path: Path, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open a database file without any possibility of writing to it."""

    uri = f"{path.resolve().as_uri()}?mode=ro"
    return sqlite3.connect(uri, uri=True, check_same_thread=check_same_thread)


def as_text(value: object) -> str | None:
    if isinstance(value, str):
        return value
    return None


def as_int(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def as_number(value: object) -> int | float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    return None


def as_bytes(value: object) -> bytes | None:
    if isinstance(value, bytes):
        return value
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    return None
