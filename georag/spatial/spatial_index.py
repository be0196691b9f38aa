"""
Spatial Index

Grid-bucketed store of geographic features.
Uses a uniform longitude/latitude grid as a coarse filter, followed by
exact membership and great-circle distance tests.
"""

import logging
from typing import Dict, List, Optional, Set

from ..common.geo import (
    GridKey,
    bounding_box_around,
    grid_key,
    grid_range,
    haversine_km,
    split_antimeridian,
)
from ..common.locking import ReadWriteLock
from ..common.schemas import BoundingBox, Coordinates, GeographicFeature, GeometryType

logger = logging.getLogger("georag.spatial.index")


class GridSpatialIndex:
    """
    In-memory spatial index over features.

    Points register in a single grid cell; lines and polygons register in
    every cell their bounding box touches. Queries union the overlapping
    buckets and then filter candidates exactly:
    - points: point-in-box
    - lines/polygons: bounding-box overlap (no polygon clipping)

    Reads may run concurrently; writes are serialized against reads.
    """

    def __init__(self, grid_size: float = 0.01):
        """
        Initialize spatial index.

        Args:
            grid_size: Cell size in degrees (0.01 is roughly 1 km)
        """
        self._grid_size = grid_size
        self._features: Dict[str, GeographicFeature] = {}
        self._grid: Dict[GridKey, Set[str]] = {}
        self._feature_keys: Dict[str, Set[GridKey]] = {}
        self._lock = ReadWriteLock()

    @property
    def grid_size(self) -> float:
        return self._grid_size

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._features)

    def insert(self, feature: GeographicFeature) -> None:
        """
        Insert or replace a feature.

        Re-inserting an id drops the previous grid registration first, so a
        feature whose geometry moved never lingers in its old cells.
        """
        with self._lock.write():
            if feature.id in self._features:
                self._unregister(feature.id)

            keys = self._grid_keys(feature)
            for key in keys:
                self._grid.setdefault(key, set()).add(feature.id)

            self._features[feature.id] = feature
            self._feature_keys[feature.id] = keys

    def query(self, bounds: BoundingBox) -> List[GeographicFeature]:
        """
        Find features intersecting a bounding box.

        The box must have north >= south. A box running past +/-180 degrees
        longitude wraps onto the other side of the antimeridian.
        """
        with self._lock.read():
            return self._query_unlocked(bounds)

    def query_radius(self, center: Coordinates, radius_km: float) -> List[GeographicFeature]:
        """
        Find features within ``radius_km`` of ``center``.

        Non-point features are measured from their center.
        """
        bounds = bounding_box_around(center, radius_km)
        with self._lock.read():
            candidates = self._query_unlocked(bounds)

        return [
            feature for feature in candidates
            if haversine_km(center, feature.center()) <= radius_km
        ]

    def get(self, feature_id: str) -> Optional[GeographicFeature]:
        with self._lock.read():
            return self._features.get(feature_id)

    def remove(self, feature_id: str) -> bool:
        """Remove a feature; returns False if the id is unknown"""
        with self._lock.write():
            if feature_id not in self._features:
                return False
            self._unregister(feature_id)
            del self._features[feature_id]
            return True

    def clear(self) -> None:
        with self._lock.write():
            self._features.clear()
            self._grid.clear()
            self._feature_keys.clear()

    def get_stats(self) -> Dict[str, int]:
        with self._lock.read():
            by_type: Dict[str, int] = {}
            for feature in self._features.values():
                by_type[feature.geometry_type.value] = by_type.get(feature.geometry_type.value, 0) + 1
            return {
                "total_features": len(self._features),
                "grid_cells": len(self._grid),
                **{f"{name}_features": count for name, count in by_type.items()},
            }

    def _query_unlocked(self, bounds: BoundingBox) -> List[GeographicFeature]:
        pieces = split_antimeridian(bounds)
        candidate_ids: Set[str] = set()
        for key in grid_range(bounds, self._grid_size):
            bucket = self._grid.get(key)
            if bucket:
                candidate_ids.update(bucket)

        results = []
        for feature_id in candidate_ids:
            feature = self._features.get(feature_id)
            if feature and self._intersects(feature, pieces):
                results.append(feature)
        return results

    def _unregister(self, feature_id: str) -> None:
        """Drop a feature id from every bucket it was registered in"""
        for key in self._feature_keys.pop(feature_id, set()):
            bucket = self._grid.get(key)
            if bucket is None:
                continue
            bucket.discard(feature_id)
            if not bucket:
                del self._grid[key]

    def _grid_keys(self, feature: GeographicFeature) -> Set[GridKey]:
        if feature.geometry_type == GeometryType.POINT:
            return {grid_key(feature.geometry, self._grid_size)}
        return set(grid_range(feature.bounds(), self._grid_size))

    @staticmethod
    def _intersects(feature: GeographicFeature, pieces: List[BoundingBox]) -> bool:
        if feature.geometry_type == GeometryType.POINT:
            return any(piece.contains(feature.geometry) for piece in pieces)
        extent = feature.bounds()
        return any(extent.intersects(piece) for piece in pieces)
