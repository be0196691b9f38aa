"""
Spatial indexing of discrete geographic features.
"""

from .spatial_index import GridSpatialIndex

__all__ = ["GridSpatialIndex"]
