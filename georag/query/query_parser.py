"""
Query Parser

Rule-based parsing of natural language geographic queries.

Extracts, in order:
1. Intent (keyword counting over a fixed intent set)
2. Entities (named locations, coordinates, feature types, distances)
3. Spatial constraints derived from the entities
4. Temporal constraints (relative and absolute date ranges)
5. Field filters (type, confidence)
and scores how confident the parse is.
"""

import calendar
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Union

from ..common.schemas import BoundingBox, Coordinates


class QueryIntentType(str, Enum):
    """Types of query intent, in tie-breaking order"""
    SEARCH = "search"
    COMPARE = "compare"
    ANALYZE = "analyze"
    DESCRIBE = "describe"
    FIND_NEARBY = "find_nearby"
    ROUTE = "route"
    CHANGE_DETECTION = "change_detection"


class EntityType(str, Enum):
    LOCATION = "location"
    FEATURE_TYPE = "feature_type"
    MEASUREMENT = "measurement"
    TIME = "time"
    ORGANIZATION = "organization"


class DistanceUnit(str, Enum):
    KM = "km"
    MILES = "miles"
    METERS = "meters"


class SpatialConstraintType(str, Enum):
    POINT = "point"
    RADIUS = "radius"
    BOUNDS = "bounds"
    POLYGON = "polygon"
    WITHIN = "within"
    INTERSECTS = "intersects"
    NEAR = "near"


class TemporalConstraintType(str, Enum):
    BEFORE = "before"
    AFTER = "after"
    BETWEEN = "between"
    DURING = "during"
    RECENT = "recent"


class FilterOperator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


KM_PER_UNIT = {
    DistanceUnit.KM: 1.0,
    DistanceUnit.MILES: 1.609344,
    DistanceUnit.METERS: 0.001,
}


@dataclass(frozen=True)
class Distance:
    """A distance expression with a canonical unit"""
    value: float
    unit: DistanceUnit

    def to_km(self) -> float:
        return self.value * KM_PER_UNIT[self.unit]


@dataclass
class QueryIntent:
    type: QueryIntentType
    description: str
    subtype: Optional[str] = None


@dataclass
class ExtractedEntity:
    """An entity with its [start, end) span in the query text"""
    text: str
    type: EntityType
    value: Union[str, Coordinates, Distance]
    confidence: float
    start: int
    end: int

    @property
    def is_coordinates(self) -> bool:
        return isinstance(self.value, Coordinates)


@dataclass
class ConstraintParameters:
    radius: Optional[float] = None
    unit: Optional[DistanceUnit] = None
    buffer: Optional[float] = None
    location_name: Optional[str] = None  # named location awaiting geocoding


@dataclass
class SpatialConstraint:
    """
    A spatial restriction on the query.

    ``geometry`` is None for named-location constraints; those carry
    ``parameters.location_name`` instead and need a geocoder to run.
    """
    type: SpatialConstraintType
    geometry: Optional[Union[Coordinates, BoundingBox, List[Coordinates]]] = None
    parameters: ConstraintParameters = field(default_factory=ConstraintParameters)

    @property
    def radius_km(self) -> Optional[float]:
        if self.parameters.radius is None:
            return None
        unit = self.parameters.unit or DistanceUnit.KM
        return Distance(self.parameters.radius, unit).to_km()


@dataclass
class TemporalConstraint:
    type: TemporalConstraintType
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    period: Optional[str] = None


@dataclass
class QueryFilter:
    field: str
    operator: FilterOperator
    value: Union[str, float]


@dataclass
class ParsedQuery:
    """Structured representation of a query"""
    original: str
    intent: QueryIntent
    entities: List[ExtractedEntity] = field(default_factory=list)
    spatial_constraints: List[SpatialConstraint] = field(default_factory=list)
    temporal_constraints: List[TemporalConstraint] = field(default_factory=list)
    filters: List[QueryFilter] = field(default_factory=list)
    confidence: float = 0.0


class QueryParser:
    """
    Deterministic parser for geographic queries.

    No learned model is involved: every extraction is a regex or keyword
    pass, so the same text always parses the same way (relative dates
    aside, which depend on ``today``).
    """

    # Keyword lists per intent; order matters for tie-breaking
    INTENT_KEYWORDS = {
        QueryIntentType.SEARCH: ["find", "search", "locate", "show", "list", "get"],
        QueryIntentType.COMPARE: ["compare", "difference", "versus", "vs", "contrast"],
        QueryIntentType.ANALYZE: ["analyze", "analysis", "examine", "study", "investigate"],
        QueryIntentType.DESCRIBE: ["describe", "what is", "tell me about", "information about"],
        QueryIntentType.FIND_NEARBY: ["nearby", "close to", "around", "near", "within"],
        QueryIntentType.ROUTE: ["route", "path", "direction", "navigate", "travel"],
        QueryIntentType.CHANGE_DETECTION: ["change", "changed", "difference", "evolution", "trend"],
    }

    INTENT_DESCRIPTIONS = {
        QueryIntentType.SEARCH: "Search for geographic information",
        QueryIntentType.COMPARE: "Compare geographic features or areas",
        QueryIntentType.ANALYZE: "Analyze geographic data or patterns",
        QueryIntentType.DESCRIBE: "Describe geographic features or locations",
        QueryIntentType.FIND_NEARBY: "Find nearby geographic features",
        QueryIntentType.ROUTE: "Find routes or directions",
        QueryIntentType.CHANGE_DETECTION: "Detect changes over time",
    }

    FEATURE_TYPES = [
        "city", "town", "village", "mountain", "river", "lake", "forest",
        "park", "building", "road", "highway", "airport", "hospital", "school",
        "restaurant", "vegetation", "water", "urban", "agriculture", "desert",
        "coastline",
    ]

    # Location names are case-sensitive: capitalized words only
    _NAME = r"[A-Z][a-zA-Z]*(?:[ \t]+[A-Z][a-zA-Z]*)*"
    LOCATION_PATTERNS = [
        re.compile(r"\b(?i:in|at|near|around|within|of|from|to)\s+(" + _NAME + r")"),
        re.compile(
            r"\b((?:[A-Z][a-zA-Z]*[ \t]+)+"
            r"(?:City|County|State|Province|Country|Park|Mountain|River|Lake))\b"
        ),
    ]
    COORDINATE_PATTERN = re.compile(r"(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)")
    DISTANCE_PATTERN = re.compile(
        r"\b(\d+(?:\.\d+)?)\s*(kilometers?|kilometres?|km|miles?|mi|meters?|metres?|m)\b",
        re.IGNORECASE,
    )
    NEARBY_PATTERN = re.compile(r"\b(?:nearby|around|near)\b")

    RELATIVE_TIME_PATTERN = re.compile(r"\b(last|past)\s+(\d+)\s+(days?|weeks?|months?|years?)\b")
    _DATE = r"(\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4})"
    ABSOLUTE_TIME_PATTERN = re.compile(r"\b(before|after|since)\s+" + _DATE)
    BETWEEN_TIME_PATTERN = re.compile(r"\bbetween\s+" + _DATE + r"\s+and\s+" + _DATE)

    TYPE_FILTER_PATTERN = re.compile(r"(?:type|category):\s*([a-zA-Z_]+)")
    CONFIDENCE_FILTER_PATTERN = re.compile(
        r"(?:confidence|accuracy)\s*(?:>|above|greater than)\s*(\d+(?:\.\d+)?)"
    )

    # Span gap (characters) under which a distance belongs to a location
    MEASUREMENT_PROXIMITY = 50
    DEFAULT_NEARBY_RADIUS_KM = 10.0

    LOCATION_CONFIDENCE = 0.8
    COORDINATE_CONFIDENCE = 0.95
    FEATURE_TYPE_CONFIDENCE = 0.9
    MEASUREMENT_CONFIDENCE = 0.95

    def __init__(self, today: Callable[[], date] = date.today):
        self._today = today

    def parse(self, query: str) -> ParsedQuery:
        """
        Parse a query into structured form.

        Args:
            query: Raw query text

        Returns:
            ParsedQuery with intent, entities, constraints, filters and confidence
        """
        normalized = query.lower().strip()

        intent = self._extract_intent(normalized)
        entities = self._extract_entities(query)
        spatial = self._extract_spatial_constraints(normalized, entities)
        temporal = self._extract_temporal_constraints(normalized)
        filters = self._extract_filters(normalized)

        return ParsedQuery(
            original=query,
            intent=intent,
            entities=entities,
            spatial_constraints=spatial,
            temporal_constraints=temporal,
            filters=filters,
            confidence=self._calculate_confidence(intent, entities, spatial),
        )

    # ========== Intent ==========

    def _extract_intent(self, text: str) -> QueryIntent:
        best_type = QueryIntentType.SEARCH
        best_score = 0

        for intent_type, keywords in self.INTENT_KEYWORDS.items():
            score = sum(1 for keyword in keywords if keyword in text)
            if score > best_score:
                best_type, best_score = intent_type, score

        subtype = None
        if best_type == QueryIntentType.SEARCH:
            if "satellite" in text or "imagery" in text:
                subtype = "satellite_analysis"
            elif "feature" in text or "geographic" in text:
                subtype = "geographic_features"

        description = self.INTENT_DESCRIPTIONS[best_type]
        if subtype:
            description += f" ({subtype.replace('_', ' ')})"

        return QueryIntent(type=best_type, description=description, subtype=subtype)

    # ========== Entities ==========

    def _extract_entities(self, query: str) -> List[ExtractedEntity]:
        entities: List[ExtractedEntity] = []
        entities.extend(self._extract_named_locations(query))
        entities.extend(self._extract_coordinates(query))
        entities.extend(self._extract_feature_types(query))
        entities.extend(self._extract_measurements(query))
        return entities

    def _extract_named_locations(self, query: str) -> List[ExtractedEntity]:
        found: List[ExtractedEntity] = []
        seen = set()

        for pattern in self.LOCATION_PATTERNS:
            for match in pattern.finditer(query):
                name = match.group(1).strip()
                if len(name) <= 2 or name in seen:
                    continue
                seen.add(name)
                found.append(ExtractedEntity(
                    text=name,
                    type=EntityType.LOCATION,
                    value=name,
                    confidence=self.LOCATION_CONFIDENCE,
                    start=match.start(1),
                    end=match.start(1) + len(name),
                ))

        return found

    def _extract_coordinates(self, query: str) -> List[ExtractedEntity]:
        found = []
        for match in self.COORDINATE_PATTERN.finditer(query):
            lat, lon = float(match.group(1)), float(match.group(2))
            if not (-90 <= lat <= 90 and -180 <= lon <= 180):
                continue
            found.append(ExtractedEntity(
                text=match.group(0),
                type=EntityType.LOCATION,
                value=Coordinates(latitude=lat, longitude=lon),
                confidence=self.COORDINATE_CONFIDENCE,
                start=match.start(),
                end=match.end(),
            ))
        return found

    def _extract_feature_types(self, query: str) -> List[ExtractedEntity]:
        found = []
        for feature_type in self.FEATURE_TYPES:
            for match in re.finditer(rf"\b{feature_type}s?\b", query, re.IGNORECASE):
                found.append(ExtractedEntity(
                    text=match.group(0),
                    type=EntityType.FEATURE_TYPE,
                    value=feature_type,
                    confidence=self.FEATURE_TYPE_CONFIDENCE,
                    start=match.start(),
                    end=match.end(),
                ))
        return found

    def _extract_measurements(self, query: str) -> List[ExtractedEntity]:
        found = []
        for match in self.DISTANCE_PATTERN.finditer(query):
            found.append(ExtractedEntity(
                text=match.group(0),
                type=EntityType.MEASUREMENT,
                value=Distance(float(match.group(1)), normalize_unit(match.group(2))),
                confidence=self.MEASUREMENT_CONFIDENCE,
                start=match.start(),
                end=match.end(),
            ))
        return found

    # ========== Spatial constraints ==========

    def _extract_spatial_constraints(
        self, text: str, entities: List[ExtractedEntity]
    ) -> List[SpatialConstraint]:
        locations = [e for e in entities if e.type == EntityType.LOCATION]
        measurements = [e for e in entities if e.type == EntityType.MEASUREMENT]
        wants_nearby = self.NEARBY_PATTERN.search(text) is not None

        constraints = []
        for location in locations:
            measurement = self._nearest_measurement(location, measurements)

            if measurement is not None:
                distance: Distance = measurement.value
                params = ConstraintParameters(radius=distance.value, unit=distance.unit)
                constraint_type = SpatialConstraintType.RADIUS
            elif wants_nearby:
                params = ConstraintParameters(radius=self.DEFAULT_NEARBY_RADIUS_KM, unit=DistanceUnit.KM)
                constraint_type = SpatialConstraintType.RADIUS
            elif location.is_coordinates:
                params = ConstraintParameters()
                constraint_type = SpatialConstraintType.POINT
            else:
                params = ConstraintParameters()
                constraint_type = SpatialConstraintType.WITHIN

            if location.is_coordinates:
                constraints.append(SpatialConstraint(constraint_type, location.value, params))
            else:
                params.location_name = location.value
                constraints.append(SpatialConstraint(constraint_type, None, params))

        return constraints

    def _nearest_measurement(
        self, location: ExtractedEntity, measurements: List[ExtractedEntity]
    ) -> Optional[ExtractedEntity]:
        best = None
        best_gap = self.MEASUREMENT_PROXIMITY
        for measurement in measurements:
            gap = span_gap(location, measurement)
            if gap < best_gap:
                best, best_gap = measurement, gap
        return best

    # ========== Temporal constraints ==========

    def _extract_temporal_constraints(self, text: str) -> List[TemporalConstraint]:
        constraints = []
        today = self._today()

        for match in self.RELATIVE_TIME_PATTERN.finditer(text):
            amount = int(match.group(2))
            unit = match.group(3).rstrip("s")
            constraints.append(TemporalConstraint(
                type=TemporalConstraintType.RECENT,
                start_date=subtract_period(today, amount, unit),
                end_date=today,
                period=match.group(0),
            ))

        for match in self.ABSOLUTE_TIME_PATTERN.finditer(text):
            when = parse_date(match.group(2))
            if when is None:
                continue
            if match.group(1) == "before":
                constraints.append(TemporalConstraint(TemporalConstraintType.BEFORE, end_date=when))
            else:
                constraints.append(TemporalConstraint(TemporalConstraintType.AFTER, start_date=when))

        for match in self.BETWEEN_TIME_PATTERN.finditer(text):
            start, end = parse_date(match.group(1)), parse_date(match.group(2))
            if start is not None and end is not None:
                constraints.append(TemporalConstraint(TemporalConstraintType.BETWEEN, start, end))

        return constraints

    # ========== Filters ==========

    def _extract_filters(self, text: str) -> List[QueryFilter]:
        filters = []

        type_match = self.TYPE_FILTER_PATTERN.search(text)
        if type_match:
            filters.append(QueryFilter("type", FilterOperator.EQUALS, type_match.group(1)))

        confidence_match = self.CONFIDENCE_FILTER_PATTERN.search(text)
        if confidence_match:
            filters.append(QueryFilter(
                "confidence", FilterOperator.GREATER_THAN, float(confidence_match.group(1))
            ))

        return filters

    # ========== Confidence ==========

    def _calculate_confidence(
        self,
        intent: QueryIntent,
        entities: List[ExtractedEntity],
        spatial: List[SpatialConstraint],
    ) -> float:
        confidence = 0.5

        if intent.type != QueryIntentType.SEARCH or intent.subtype:
            confidence += 0.2

        confidence += min(0.3, 0.1 * len(entities))
        confidence += min(0.3, 0.15 * len(spatial))

        if entities:
            confidence += 0.2 * (sum(e.confidence for e in entities) / len(entities))

        return min(confidence, 1.0)


def normalize_unit(unit: str) -> DistanceUnit:
    unit = unit.lower()
    if unit.startswith("mi"):
        return DistanceUnit.MILES
    if unit.startswith("k"):
        return DistanceUnit.KM
    return DistanceUnit.METERS


def span_gap(a: ExtractedEntity, b: ExtractedEntity) -> int:
    """Characters between two spans; 0 when they touch or overlap"""
    return max(0, max(a.start, b.start) - min(a.end, b.end))


def subtract_period(today: date, amount: int, unit: str) -> date:
    """
    Calendar arithmetic: month and year steps clamp to the month's last day.

    Periods reaching before year 1 clamp to ``date.min``.
    """
    try:
        if unit == "day":
            return date.fromordinal(today.toordinal() - amount)
        if unit == "week":
            return date.fromordinal(today.toordinal() - 7 * amount)
        months = amount if unit == "month" else 12 * amount

        index = today.year * 12 + (today.month - 1) - months
        year, month = divmod(index, 12)
        month += 1
        day = min(today.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)
    except (ValueError, OverflowError):
        return date.min


_DATE_FORMATS: Dict[str, str] = {"-": "%Y-%m-%d", "/": "%m/%d/%Y"}


def parse_date(text: str) -> Optional[date]:
    fmt = _DATE_FORMATS["-"] if "-" in text else _DATE_FORMATS["/"]
    try:
        return datetime.strptime(text, fmt).date()
    except ValueError:
        return None
