"""
GeoRAG Schemas

Pydantic data model shared by the spatial index, vector store and query
pipeline.
"""

from .geographic import (
    Coordinates,
    BoundingBox,
    GeometryType,
    FeatureMetadata,
    GeographicFeature,
    DocumentType,
    DocumentMetadata,
    SpatialContext,
    GeographicDocument,
)

__all__ = [
    "Coordinates",
    "BoundingBox",
    "GeometryType",
    "FeatureMetadata",
    "GeographicFeature",
    "DocumentType",
    "DocumentMetadata",
    "SpatialContext",
    "GeographicDocument",
]
