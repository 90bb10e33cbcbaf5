"""Readers for the catalog, annotation and sync stores."""

from noteharvest.sources.annotations import AnnotationAggregator, AnnotationLookup
from noteharvest.sources.catalog import CatalogReader, CatalogRecord
from noteharvest.sources.covers import CoverResolver
from noteharvest.sources.payload import PayloadDecoder
from noteharvest.sources.validator import SourceValidator

__all__ = [
    "AnnotationAggregator",
    "AnnotationLookup",
    "CatalogReader",
    "CatalogRecord",
    "CoverResolver",
    "PayloadDecoder",
    "SourceValidator",
]
