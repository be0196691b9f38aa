"""
Geocoding Capability

Resolves a place name to coordinates. Named-location constraints from the
query parser can only be executed when a geocoder is injected.
"""

import abc
from typing import Dict, Optional

from .schemas import Coordinates


class Geocoder(abc.ABC):
    """Async place-name resolver"""

    @abc.abstractmethod
    async def geocode(self, name: str) -> Optional[Coordinates]:
        """Return coordinates for ``name``, or None when unknown"""


class GazetteerGeocoder(Geocoder):
    """
    Lookup-table geocoder.

    Names are matched case-insensitively with surrounding whitespace and
    trailing commas stripped.
    """

    def __init__(self, places: Dict[str, Coordinates]):
        self._places = {self._normalize(name): coords for name, coords in places.items()}

    async def geocode(self, name: str) -> Optional[Coordinates]:
        return self._places.get(self._normalize(name))

    def __len__(self) -> int:
        return len(self._places)

    @staticmethod
    def _normalize(name: str) -> str:
        return " ".join(name.strip().rstrip(",").lower().split())
