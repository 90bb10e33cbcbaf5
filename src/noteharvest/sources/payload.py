"""Decoder for serialized annotation payloads held by the sync store.

Payloads are property lists. Two shapes are understood:

* a plain document whose root mapping carries an ``annotations`` list, with
  timestamps already in Unix seconds;
* a keyed object archive (``$archiver``/``$objects``/``$top``). The archive's
  object graph is resolved generically and, if the resulting root has the same
  ``annotations`` shape, its entries are used. Any other archived graph is
  treated as unrecognized and yields nothing; its schema has not been
  reverse-engineered.

Decoding never raises: unrecognized input produces an empty list and a
warning in the log.
"""

from __future__ import annotations

from datetime import datetime
import logging
import plistlib
from typing import Any, Mapping

from noteharvest.errors import DecodeFailure
from noteharvest.models import Annotation
from noteharvest.timeutil import datetime_to_unix, native_to_unix

logger = logging.getLogger(__name__)

_ARCHIVER_KEY = "$archiver"
_NULL_MARKER = "$null"
_MAX_GRAPH_DEPTH = 64


class PayloadDecoder:
    """Turn one raw payload into annotations for a book."""

    def __init__(self, *, skip_empty: bool = False) -> None:
        self._skip_empty = skip_empty

    def decode(self, raw: bytes, book_id: str) -> list[Annotation]:
        try:
            document = plistlib.loads(raw)
        except Exception as exc:  # plistlib surfaces many parser error types
            _report(DecodeFailure(book_id, f"Payload is not a property list: {exc}"))
            return []

        if isinstance(document, dict) and _ARCHIVER_KEY in document:
            annotations = self._decode_archived(document, book_id)
        else:
            annotations = self._decode_structured(document, book_id)

        if annotations is None:
            _report(DecodeFailure(book_id, "Payload shape is not recognized"))
            return []
        return annotations

    def _decode_structured(self, document: object, book_id: str) -> list[Annotation] | None:
        if not isinstance(document, Mapping):
            return None
        entries = document.get("annotations")
        if not isinstance(entries, list):
            return None

        annotations: list[Annotation] = []
        for entry in entries:
            if not isinstance(entry, Mapping):
                continue
            annotation = Annotation(
                asset_id=book_id,
                quote=_text(entry.get("selectedText")),
                comment=_text(entry.get("note")),
                chapter=_text(entry.get("chapter")),
                color_code=_integer(entry.get("style")),
                modified_at=_timestamp(entry.get("modificationDate")),
                created_at=_timestamp(entry.get("creationDate")),
            )
            if self._skip_empty and annotation.quote is None and annotation.comment is None:
                continue
            annotations.append(annotation)
        return annotations

    def _decode_archived(self, archive: Mapping[str, Any], book_id: str) -> list[Annotation] | None:
        try:
            root = _resolve_archive_root(archive)
        except (IndexError, KeyError, TypeError, ValueError, RecursionError) as exc:
            logger.debug("Keyed archive for %s could not be resolved: %s", book_id, exc)
            return None
        return self._decode_structured(root, book_id)


def _report(failure: DecodeFailure) -> None:
    logger.warning("%s", failure)


def _text(value: object) -> str | None:
    return value if isinstance(value, str) else None


def _integer(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


def _timestamp(value: object) -> float | None:
    if isinstance(value, datetime):
        return datetime_to_unix(value)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _resolve_archive_root(archive: Mapping[str, Any]) -> object:
    objects = archive["$objects"]
    top = archive["$top"]
    if not isinstance(objects, list) or not isinstance(top, dict):
        raise TypeError("archive is missing its object table")

    root_ref = top.get("root")
    if root_ref is None and len(top) == 1:
        root_ref = next(iter(top.values()))
    if root_ref is None:
        raise KeyError("root")

    return _ArchiveGraph(objects).resolve(root_ref)


class _ArchiveGraph:
    """Resolve UID references once each; shared objects reuse the first result."""

    def __init__(self, objects: list[Any]) -> None:
        self._objects = objects
        self._resolved: dict[int, object] = {}
        self._pending: set[int] = set()

    def resolve(self, ref: object, depth: int = 0) -> object:
        if depth > _MAX_GRAPH_DEPTH:
            raise ValueError("archive graph is too deep")
        if not isinstance(ref, plistlib.UID):
            return self._expand(ref, depth)

        index = ref.data
        if index in self._resolved:
            return self._resolved[index]
        if index in self._pending:
            raise ValueError(f"archive graph has a cycle at object {index}")
        self._pending.add(index)
        value = self._expand(self._objects[index], depth)
        self._pending.discard(index)
        self._resolved[index] = value
        return value

    def _expand(self, value: object, depth: int) -> object:
        if value == _NULL_MARKER:
            return None
        if isinstance(value, list):
            return [self.resolve(item, depth + 1) for item in value]
        if not isinstance(value, dict):
            return value

        if "NS.keys" in value and "NS.objects" in value:
            keys = [self.resolve(key, depth + 1) for key in value["NS.keys"]]
            items = [self.resolve(item, depth + 1) for item in value["NS.objects"]]
            return dict(zip(keys, items))
        if "NS.objects" in value:
            return [self.resolve(item, depth + 1) for item in value["NS.objects"]]
        if "NS.string" in value:
            return self.resolve(value["NS.string"], depth + 1)
        if "NS.time" in value:
            # Archived dates count from the store epoch.
            return native_to_unix(value["NS.time"])

        return {
            key: self.resolve(item, depth + 1)
            for key, item in value.items()
            if key != "$class"
        }
