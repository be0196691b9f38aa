"""
Spatial embedding features.

Located documents get ten scalars appended to their text embedding:
normalized latitude/longitude, their sine and cosine, normalized elevation
and a three-slot climate encoding. Two documents with identical text at
different places therefore get different stored vectors.
"""

import math
from typing import List

from ..common.schemas import GeographicDocument

SPATIAL_FEATURE_COUNT = 10

CLIMATE_ENCODING = {
    "tropical": [1.0, 0.0, 0.0],
    "temperate": [0.0, 1.0, 0.0],
    "polar": [0.0, 0.0, 1.0],
    "arid": [0.5, 0.5, 0.0],
    "mediterranean": [0.7, 0.3, 0.0],
}


def encode_climate(climate: str) -> List[float]:
    return list(CLIMATE_ENCODING.get(climate.lower(), [0.0, 0.0, 0.0]))


def extract_spatial_features(document: GeographicDocument) -> List[float]:
    location = document.metadata.location
    if location is None:
        return []

    lat_rad = math.radians(location.latitude)
    lon_rad = math.radians(location.longitude)
    features = [
        location.latitude / 90,
        location.longitude / 180,
        math.sin(lat_rad),
        math.cos(lat_rad),
        math.sin(lon_rad),
        math.cos(lon_rad),
    ]

    context = document.spatial_context
    if context is not None and context.elevation:
        features.append(math.tanh(context.elevation / 5000))
    else:
        features.append(0.0)

    if context is not None and context.climate:
        features.extend(encode_climate(context.climate))
    else:
        features.extend([0.0, 0.0, 0.0])

    return features


def enhance_with_spatial_context(text_embedding: List[float], document: GeographicDocument) -> List[float]:
    """Append spatial features to a text embedding; unlocated documents are unchanged"""
    return list(text_embedding) + extract_spatial_features(document)
