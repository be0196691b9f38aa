"""
Geo Math

Great-circle distance, radius-to-box approximation and uniform grid cell
arithmetic shared by the spatial index and the vector store.
"""

import math
from typing import Iterator, List, Tuple

from .schemas import BoundingBox, Coordinates

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE_LAT = 111.0

GridKey = Tuple[int, int]


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Great-circle distance between two coordinates in kilometers"""
    d_lat = math.radians(b.latitude - a.latitude)
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.latitude))
        * math.cos(math.radians(b.latitude))
        * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def bounding_box_around(center: Coordinates, radius_km: float) -> BoundingBox:
    """
    Approximate box covering a radius around ``center``.

    Uses 111 km per degree of latitude and scales longitude by
    cos(latitude). At the poles the longitude span covers the whole globe.
    """
    lat_delta = radius_km / KM_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(center.latitude))
    if cos_lat <= 1e-9:
        lon_delta = 180.0
    else:
        lon_delta = min(180.0, radius_km / (KM_PER_DEGREE_LAT * cos_lat))

    return BoundingBox(
        north=center.latitude + lat_delta,
        south=center.latitude - lat_delta,
        east=center.longitude + lon_delta,
        west=center.longitude - lon_delta,
    )


def grid_key(point: Coordinates, grid_size: float) -> GridKey:
    """Cell holding a point; x indexes longitude, y latitude"""
    return (
        math.floor(point.longitude / grid_size),
        math.floor(point.latitude / grid_size),
    )


def split_antimeridian(bounds: BoundingBox) -> List[BoundingBox]:
    """
    Pieces of a box with longitudes inside [-180, 180].

    A box running past the antimeridian becomes two boxes, one on each
    side; a box spanning 360 degrees or more covers every longitude.
    """
    def piece(west: float, east: float) -> BoundingBox:
        return BoundingBox(north=bounds.north, south=bounds.south, east=east, west=west)

    if bounds.east - bounds.west >= 360.0:
        return [piece(-180.0, 180.0)]
    if bounds.west < -180.0:
        return [piece(bounds.west + 360.0, 180.0), piece(-180.0, bounds.east)]
    if bounds.east > 180.0:
        return [piece(bounds.west, 180.0), piece(-180.0, bounds.east - 360.0)]
    return [bounds]


def grid_range(bounds: BoundingBox, grid_size: float) -> Iterator[GridKey]:
    """
    All cells overlapping a box (inclusive on both ends).

    Boxes crossing the antimeridian are scanned piece by piece, so a cell
    may be yielded twice.
    """
    for piece in split_antimeridian(bounds):
        min_x = math.floor(piece.west / grid_size)
        max_x = math.ceil(piece.east / grid_size)
        min_y = math.floor(piece.south / grid_size)
        max_y = math.ceil(piece.north / grid_size)

        for x in range(min_x, max_x + 1):
            for y in range(min_y, max_y + 1):
                yield (x, y)
