"""Failure taxonomy for source access, decoding and caching."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class StoreKind(str, Enum):
    CATALOG = "catalog"
    ANNOTATION = "annotation"
    SYNC = "sync"


_REMEDIATION: dict[StoreKind, str] = {
    StoreKind.CATALOG: (
        "Apple Books library not found. Please ensure Apple Books is installed "
        "and you have books in your library."
    ),
    StoreKind.ANNOTATION: (
        "Apple Books annotations database not found. This may be due to privacy "
        "settings or Apple Books not being properly configured."
    ),
    StoreKind.SYNC: "Synced annotation data is unavailable; only local annotations are shown.",
}


class HarvestError(Exception):
    """Base class for every failure the pipeline reports."""


@dataclass(slots=True)
class SourceUnavailable(HarvestError):
    """A mandatory store is missing or cannot be listed. Fatal to a load."""

    store: StoreKind
    path: Path
    message: str

    @property
    def remediation(self) -> str:
        return _REMEDIATION[self.store]

    def __str__(self) -> str:
        return f"{self.store.value} store unavailable: {self.message} (path={self.path})"


@dataclass(slots=True)
class FileReadFailure(HarvestError):
    """One store file could not be opened or queried."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"


@dataclass(slots=True)
class DecodeFailure(HarvestError):
    """A secondary-store payload matched no known format."""

    book_id: str
    message: str

    def __str__(self) -> str:
        return f"{self.message} (book_id={self.book_id})"


@dataclass(slots=True)
class CacheCorrupt(HarvestError):
    """The durable cache document could not be read back."""

    path: Path
    message: str

    def __str__(self) -> str:
        return f"{self.message} (path={self.path})"
