"""Progressive loading pipeline."""

from noteharvest.pipeline.loader import LoadState, LoaderStatus, ProgressiveLoader
from noteharvest.pipeline.stream import LoadStream

__all__ = ["LoadState", "LoaderStatus", "LoadStream", "ProgressiveLoader"]
