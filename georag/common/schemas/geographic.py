"""
Geographic Data Model

Features live in the spatial index, documents live in the vector store.
Both are created at ingestion and replaced by re-insertion, never patched
in place.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ============================================================================
# Geometry primitives
# ============================================================================

class Coordinates(BaseModel):
    """WGS84 latitude/longitude pair in degrees"""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90.0, le=90.0)
    longitude: float = Field(ge=-180.0, le=180.0)


class BoundingBox(BaseModel):
    """
    Axis-aligned box in degrees.

    Only ``north >= south`` is enforced: boxes derived from a radius may
    extend past the poles or the antimeridian.
    """
    north: float
    south: float
    east: float
    west: float

    @model_validator(mode="after")
    def _check_orientation(self) -> "BoundingBox":
        if self.north < self.south:
            raise ValueError(f"north ({self.north}) must be >= south ({self.south})")
        return self

    def contains(self, point: Coordinates) -> bool:
        return (
            self.south <= point.latitude <= self.north
            and self.west <= point.longitude <= self.east
        )

    def intersects(self, other: "BoundingBox") -> bool:
        return not (
            self.east < other.west
            or other.east < self.west
            or self.north < other.south
            or other.north < self.south
        )

    @property
    def center(self) -> Coordinates:
        return Coordinates(
            latitude=(self.north + self.south) / 2,
            longitude=(self.east + self.west) / 2,
        )


class GeometryType(str, Enum):
    """Supported feature geometries"""
    POINT = "point"
    LINESTRING = "linestring"
    POLYGON = "polygon"


Geometry = Union[Coordinates, List[Coordinates], List[List[Coordinates]]]


# ============================================================================
# Features
# ============================================================================

class FeatureMetadata(BaseModel):
    """Provenance of a feature"""
    source: Optional[str] = None
    timestamp: Optional[datetime] = None
    accuracy: Optional[float] = Field(default=None, ge=0.0, le=100.0)


class GeographicFeature(BaseModel):
    """
    A named geometric entity.

    Geometry shape depends on ``geometry_type``:
    - point: a single ``Coordinates``
    - linestring: an ordered list of ``Coordinates``
    - polygon: a list of rings, each a list of ``Coordinates``
    """
    id: str
    name: str
    geometry_type: GeometryType
    geometry: Geometry
    properties: Dict[str, Any] = Field(default_factory=dict)
    metadata: Optional[FeatureMetadata] = None

    @model_validator(mode="after")
    def _check_geometry_shape(self) -> "GeographicFeature":
        geometry = self.geometry
        if self.geometry_type == GeometryType.POINT:
            ok = isinstance(geometry, Coordinates)
        elif self.geometry_type == GeometryType.LINESTRING:
            ok = (
                isinstance(geometry, list)
                and len(geometry) > 0
                and all(isinstance(c, Coordinates) for c in geometry)
            )
        else:
            ok = (
                isinstance(geometry, list)
                and len(geometry) > 0
                and all(
                    isinstance(ring, list) and ring and all(isinstance(c, Coordinates) for c in ring)
                    for ring in geometry
                )
            )
        if not ok:
            raise ValueError(f"geometry does not match geometry_type '{self.geometry_type.value}'")
        return self

    def iter_coordinates(self) -> List[Coordinates]:
        """All vertices of the geometry, rings flattened"""
        if self.geometry_type == GeometryType.POINT:
            return [self.geometry]
        if self.geometry_type == GeometryType.LINESTRING:
            return list(self.geometry)
        return [coord for ring in self.geometry for coord in ring]

    def bounds(self) -> BoundingBox:
        coords = self.iter_coordinates()
        lats = [c.latitude for c in coords]
        lons = [c.longitude for c in coords]
        return BoundingBox(north=max(lats), south=min(lats), east=max(lons), west=min(lons))

    def center(self) -> Coordinates:
        """The point itself, or the bounding-box center for lines and polygons"""
        if self.geometry_type == GeometryType.POINT:
            return self.geometry
        return self.bounds().center


# ============================================================================
# Documents
# ============================================================================

class DocumentType(str, Enum):
    """Kinds of retrievable documents"""
    FEATURE = "feature"
    ANALYSIS = "analysis"
    REPORT = "report"
    OBSERVATION = "observation"


class DocumentMetadata(BaseModel):
    """Geographic metadata used for filtering and spatial scoring"""
    doc_type: DocumentType = DocumentType.FEATURE
    location: Optional[Coordinates] = None
    bounds: Optional[BoundingBox] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = "unknown"
    tags: Set[str] = Field(default_factory=set)
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)


class SpatialContext(BaseModel):
    """Derived geographic context of a document"""
    region: str = ""
    climate: str = ""
    elevation: Optional[float] = None
    nearby_features: List[str] = Field(default_factory=list)


class GeographicDocument(BaseModel):
    """A textual unit with geographic metadata, the unit of semantic retrieval"""
    id: str
    content: str
    metadata: DocumentMetadata = Field(default_factory=DocumentMetadata)
    embedding: Optional[List[float]] = None
    spatial_context: Optional[SpatialContext] = None
