"""Domain entities produced by the ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Union
import uuid

from noteharvest.errors import HarvestError, SourceUnavailable


def _new_annotation_id() -> str:
    return str(uuid.uuid4())


@dataclass(slots=True)
class Annotation:
    """One highlight or note attached to a book.

    The ``id`` is generated per session and carries no identity in the source
    stores. Timestamps are Unix seconds.
    """

    asset_id: str
    quote: str | None = None
    comment: str | None = None
    chapter: str | None = None
    color_code: int | None = None
    modified_at: float | None = None
    created_at: float | None = None
    id: str = field(default_factory=_new_annotation_id)

    @property
    def effective_date(self) -> float:
        if self.modified_at is not None:
            return self.modified_at
        if self.created_at is not None:
            return self.created_at
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "asset_id": self.asset_id,
            "quote": self.quote,
            "comment": self.comment,
            "chapter": self.chapter,
            "color_code": self.color_code,
            "modified_at": self.modified_at,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Annotation":
        if not isinstance(payload, Mapping):
            raise TypeError("annotation entry is not an object")
        return cls(
            id=_require_str(payload, "id"),
            asset_id=_require_str(payload, "asset_id"),
            quote=_optional_str(payload, "quote"),
            comment=_optional_str(payload, "comment"),
            chapter=_optional_str(payload, "chapter"),
            color_code=_optional_int(payload, "color_code"),
            modified_at=_optional_float(payload, "modified_at"),
            created_at=_optional_float(payload, "created_at"),
        )


@dataclass(slots=True)
class Book:
    """A catalog entry with its annotations in insertion order."""

    id: str
    title: str
    author: str
    cover: str | None = None
    annotations: list[Annotation] = field(default_factory=list)

    @property
    def latest_annotation_date(self) -> float:
        return max((annotation.effective_date for annotation in self.annotations), default=0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "cover": self.cover,
            "annotations": [annotation.to_dict() for annotation in self.annotations],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Book":
        if not isinstance(payload, Mapping):
            raise TypeError("book entry is not an object")
        raw_annotations = payload.get("annotations", [])
        if not isinstance(raw_annotations, list):
            raise TypeError("book annotations must be a list")
        return cls(
            id=_require_str(payload, "id"),
            title=_require_str(payload, "title"),
            author=_require_str(payload, "author"),
            cover=_optional_str(payload, "cover"),
            annotations=[Annotation.from_dict(entry) for entry in raw_annotations],
        )


@dataclass(frozen=True, slots=True)
class BookLoaded:
    book: Book


@dataclass(frozen=True, slots=True)
class LoadError:
    """A failure surfaced through the result stream."""

    cause: HarvestError

    @property
    def fatal(self) -> bool:
        return isinstance(self.cause, SourceUnavailable)

    @property
    def message(self) -> str:
        return str(self.cause)


@dataclass(frozen=True, slots=True)
class LoadCompleted:
    total: int


LoadResult = Union[BookLoaded, LoadError, LoadCompleted]


def _require_str(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string")
    return value


def _optional_str(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None or isinstance(value, str):
        return value
    raise TypeError(f"{key} must be a string or null")


def _optional_int(payload: Mapping[str, Any], key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{key} must be an integer or null")
    return value


def _optional_float(payload: Mapping[str, Any], key: str) -> float | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"{key} must be a number or null")
    return float(value)
