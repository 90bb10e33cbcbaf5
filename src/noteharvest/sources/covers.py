"""Cover reference resolution, including extraction from EPUB packages."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
import shutil
import tempfile
from urllib.parse import urlparse
from zipfile import BadZipFile, ZipFile

import ebooklib
from ebooklib import epub

logger = logging.getLogger(__name__)

PACKAGED_DOCUMENT_SUFFIX = ".epub"

# Probed in order inside an unpacked package.
COVER_CANDIDATES: tuple[str, ...] = (
    "OEBPS/cover.jpg",
    "OEBPS/cover.jpeg",
    "OEBPS/cover.png",
    "cover.jpg",
    "cover.jpeg",
    "cover.png",
    "OEBPS/images/cover.jpg",
    "OEBPS/images/cover.jpeg",
    "OEBPS/images/cover.png",
    "Images/cover.jpg",
    "Images/cover.jpeg",
    "Images/cover.png",
    "~Cover02.jpg",
    "~Cover.jpg",
)

IMAGE_DIRECTORIES: tuple[str, ...] = ("OEBPS/images", "Images", ".", "OEBPS")
IMAGE_SUFFIXES = frozenset({".jpg", ".jpeg", ".png"})


def usable_cover_reference(raw: str | None) -> str | None:
    """Return the direct cover reference when it is a non-empty, parseable URL."""

    if raw is None:
        return None
    candidate = raw.strip()
    if not candidate:
        return None
    try:
        parsed = urlparse(candidate)
    except ValueError:
        return None
    if not (parsed.scheme or parsed.path):
        return None
    return candidate


def find_cover_in_directory(directory: Path) -> Path | None:
    for candidate in COVER_CANDIDATES:
        path = directory / candidate
        if path.is_file():
            return path

    for image_dir in IMAGE_DIRECTORIES:
        folder = directory / image_dir
        if not folder.is_dir():
            continue
        try:
            images = sorted(
                (entry for entry in folder.iterdir() if entry.is_file() and entry.suffix.lower() in IMAGE_SUFFIXES),
                key=lambda entry: entry.name,
            )
        except OSError:
            continue
        if images:
            return images[0]
    return None


class CoverResolver:
    """Resolve a book's cover to a URL or a stable local image path.

    Every failure is logged and reported as "no cover".
    """

    def __init__(self, cover_dir: str | Path) -> None:
        self._cover_dir = Path(cover_dir)

    @property
    def cover_dir(self) -> Path:
        return self._cover_dir

    def resolve(self, cover_url: str | None, book_path: str | None, book_id: str) -> str | None:
        reference = usable_cover_reference(cover_url)
        if reference is not None:
            return reference

        if not book_path or not book_path.endswith(PACKAGED_DOCUMENT_SUFFIX):
            return None

        source = Path(book_path)
        try:
            if source.is_dir():
                found = find_cover_in_directory(source)
                return str(self._store(found, book_id)) if found is not None else None
            if source.is_file():
                return self._extract_from_package(source, book_id)
        except OSError as exc:
            logger.warning("Cover extraction failed for %s: %s", book_id, exc)
        return None

    def _extract_from_package(self, package: Path, book_id: str) -> str | None:
        try:
            with tempfile.TemporaryDirectory(prefix="noteharvest-cover-") as scratch:
                scratch_dir = Path(scratch)
                with ZipFile(package) as archive:
                    archive.extractall(scratch_dir)
                found = find_cover_in_directory(scratch_dir)
                if found is not None:
                    return str(self._store(found, book_id))
        except (BadZipFile, OSError, RuntimeError, NotImplementedError) as exc:
            logger.warning("Could not unpack %s for cover lookup: %s", package, exc)
            return None

        return self._extract_declared_cover(package, book_id)

    def _extract_declared_cover(self, package: Path, book_id: str) -> str | None:
        try:
            book = epub.read_epub(str(package))
        except Exception as exc:  # pragma: no cover - ebooklib raises assorted parser errors
            logger.debug("Package manifest unreadable for %s: %s", book_id, exc)
            return None

        for item in book.get_items():
            if not _is_cover_image(item):
                continue
            content = item.get_content()
            if not content:
                continue
            suffix = PurePosixPath(item.get_name()).suffix or ".jpg"
            target = self._target_path(book_id, suffix)
            target.write_bytes(content)
            return str(target)
        return None

    def _store(self, image: Path, book_id: str) -> Path:
        target = self._target_path(book_id, image.suffix)
        shutil.copyfile(image, target)
        return target

    def _target_path(self, book_id: str, suffix: str) -> Path:
        self._cover_dir.mkdir(parents=True, exist_ok=True)
        safe_id = "".join(char if char.isalnum() or char in "-_." else "_" for char in book_id)
        return self._cover_dir / f"{safe_id}{suffix.lower()}"


def _is_cover_image(item: epub.EpubItem) -> bool:
    if item.get_type() == ebooklib.ITEM_COVER:
        return True
    if item.get_type() != ebooklib.ITEM_IMAGE:
        return False
    return PurePosixPath(item.get_name()).stem.lower().startswith("cover")
