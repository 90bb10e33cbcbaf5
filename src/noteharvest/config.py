"""Runtime configuration for store locations and cache policy."""

from __future__ import annotations

from dataclasses import dataclass
import math
import os
from pathlib import Path
import sys
from typing import Mapping


DEFAULT_BOOKS_ROOT = "~/Library/Containers/com.apple.iBooksX/Data/Documents"
DEFAULT_CATALOG_SUBDIR = "BKLibrary"
DEFAULT_ANNOTATION_SUBDIR = "AEAnnotation"
DEFAULT_SYNC_SUBPATH = "BCCloudData-iBooks/BCAssetData/BCAssetData"
DEFAULT_CACHE_TTL_SECONDS = 3600.0
DEFAULT_FAST_CACHE_TTL_SECONDS = 300.0
DEFAULT_CHANNEL_SIZE = 8
CACHE_FILE_NAME = "books_cache.json"
COVER_DIR_NAME = "covers"


def default_cache_dir() -> Path:
    if sys.platform == "darwin":
        return Path("~/Library/Caches/NoteHarvest").expanduser()
    return Path("~/.cache/noteharvest").expanduser()


def _parse_int(*, name: str, raw_value: str, minimum: int) -> int:
    value = int(raw_value)
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _parse_float(*, name: str, raw_value: str, minimum: float) -> float:
    value = float(raw_value)
    if not math.isfinite(value):
        raise ValueError(f"{name} must be a finite number")
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}")
    return value


def _read_path(source: Mapping[str, str], name: str, default: Path) -> Path:
    raw = source.get(name)
    if raw is None:
        return default
    raw = raw.strip()
    if not raw:
        raise ValueError(f"{name} cannot be empty")
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class HarvestSettings:
    """Validated store locations and cache windows."""

    catalog_dir: Path
    annotation_dir: Path
    sync_db: Path
    cache_dir: Path
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    fast_cache_ttl_seconds: float = DEFAULT_FAST_CACHE_TTL_SECONDS
    channel_size: int = DEFAULT_CHANNEL_SIZE

    @property
    def cache_file(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    @property
    def cover_dir(self) -> Path:
        return self.cache_dir / COVER_DIR_NAME

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "HarvestSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        root = _read_path(source, "NOTEHARVEST_BOOKS_ROOT", Path(DEFAULT_BOOKS_ROOT).expanduser())
        catalog_dir = _read_path(source, "NOTEHARVEST_CATALOG_DIR", root / DEFAULT_CATALOG_SUBDIR)
        annotation_dir = _read_path(source, "NOTEHARVEST_ANNOTATION_DIR", root / DEFAULT_ANNOTATION_SUBDIR)
        sync_db = _read_path(source, "NOTEHARVEST_SYNC_DB", root / DEFAULT_SYNC_SUBPATH)
        cache_dir = _read_path(source, "NOTEHARVEST_CACHE_DIR", default_cache_dir())

        ttl_raw = source.get("NOTEHARVEST_CACHE_TTL_SECONDS", str(DEFAULT_CACHE_TTL_SECONDS)).strip()
        fast_ttl_raw = source.get(
            "NOTEHARVEST_FAST_CACHE_TTL_SECONDS", str(DEFAULT_FAST_CACHE_TTL_SECONDS)
        ).strip()
        channel_raw = source.get("NOTEHARVEST_CHANNEL_SIZE", str(DEFAULT_CHANNEL_SIZE)).strip()

        if not ttl_raw:
            raise ValueError("NOTEHARVEST_CACHE_TTL_SECONDS cannot be empty")
        if not fast_ttl_raw:
            raise ValueError("NOTEHARVEST_FAST_CACHE_TTL_SECONDS cannot be empty")
        if not channel_raw:
            raise ValueError("NOTEHARVEST_CHANNEL_SIZE cannot be empty")

        return cls(
            catalog_dir=catalog_dir,
            annotation_dir=annotation_dir,
            sync_db=sync_db,
            cache_dir=cache_dir,
            cache_ttl_seconds=_parse_float(name="NOTEHARVEST_CACHE_TTL_SECONDS", raw_value=ttl_raw, minimum=0.0),
            fast_cache_ttl_seconds=_parse_float(
                name="NOTEHARVEST_FAST_CACHE_TTL_SECONDS",
                raw_value=fast_ttl_raw,
                minimum=0.0,
            ),
            channel_size=_parse_int(name="NOTEHARVEST_CHANNEL_SIZE", raw_value=channel_raw, minimum=1),
        )
