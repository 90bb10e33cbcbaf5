"""Pre-scan checks that the mandatory stores are present and listable."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from noteharvest.errors import SourceUnavailable, StoreKind

logger = logging.getLogger(__name__)


class SourceValidator:
    """Fail fast when the catalog or annotation store cannot be scanned."""

    def __init__(self, catalog_dir: str | Path, annotation_dir: str | Path) -> None:
        self._stores = (
            (StoreKind.CATALOG, Path(catalog_dir)),
            (StoreKind.ANNOTATION, Path(annotation_dir)),
        )

    def validate(self) -> None:
        for store, path in self._stores:
            if not path.exists():
                raise SourceUnavailable(store, path, "directory does not exist")
            if not path.is_dir():
                raise SourceUnavailable(store, path, "path is not a directory")
            try:
                with os.scandir(path) as entries:
                    next(entries, None)
            except OSError as exc:
                raise SourceUnavailable(store, path, f"directory is not readable: {exc}") from exc
            logger.debug("Validated %s store at %s", store.value, path)
