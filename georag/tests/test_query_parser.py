"""
Tests for the rule-based query parser
"""

from datetime import date

import pytest


@pytest.fixture
def parser():
    from georag.query.query_parser import QueryParser
    return QueryParser(today=lambda: date(2024, 3, 31))


class TestIntent:
    def test_search_is_default(self, parser):
        from georag.query.query_parser import QueryIntentType

        result = parser.parse("Yosemite granite")

        assert result.intent.type == QueryIntentType.SEARCH
        assert result.intent.subtype is None

    def test_compare(self, parser):
        from georag.query.query_parser import QueryIntentType

        result = parser.parse("Compare Denver and Boulder")

        assert result.intent.type == QueryIntentType.COMPARE

    def test_analyze(self, parser):
        from georag.query.query_parser import QueryIntentType

        result = parser.parse("Analyze the climate of Yosemite")

        assert result.intent.type == QueryIntentType.ANALYZE
        assert result.intent.description == "Analyze geographic data or patterns"

    def test_tie_goes_to_enumeration_order(self, parser):
        from georag.query.query_parser import QueryIntentType

        # "find" (search) and "near" (find_nearby) both score 1
        result = parser.parse("Find cities near Denver")

        assert result.intent.type == QueryIntentType.SEARCH

    def test_search_subtypes(self, parser):
        satellite = parser.parse("Show satellite imagery of Fresno")
        features = parser.parse("List geographic features of Fresno")

        assert satellite.intent.subtype == "satellite_analysis"
        assert satellite.intent.description.endswith("(satellite analysis)")
        assert features.intent.subtype == "geographic_features"


class TestEntities:
    def test_national_parks_near_los_angeles(self, parser):
        from georag.query.query_parser import (
            DistanceUnit,
            EntityType,
            QueryIntentType,
            SpatialConstraintType,
        )

        result = parser.parse("Find national parks within 50km of Los Angeles")

        assert result.intent.type == QueryIntentType.SEARCH

        feature_types = [e for e in result.entities if e.type == EntityType.FEATURE_TYPE]
        assert [e.value for e in feature_types] == ["park"]

        measurements = [e for e in result.entities if e.type == EntityType.MEASUREMENT]
        assert len(measurements) == 1
        assert measurements[0].value.value == 50
        assert measurements[0].value.unit == DistanceUnit.KM

        radius = [c for c in result.spatial_constraints if c.type == SpatialConstraintType.RADIUS]
        assert radius
        assert radius[0].parameters.radius == 50
        assert radius[0].parameters.location_name == "Los Angeles"
        assert radius[0].geometry is None

    def test_named_location_spans(self, parser):
        from georag.query.query_parser import EntityType

        text = "What is the vegetation in Yosemite National Park?"
        result = parser.parse(text)

        locations = [e for e in result.entities if e.type == EntityType.LOCATION]
        assert [e.text for e in locations] == ["Yosemite National Park"]
        assert text[locations[0].start:locations[0].end] == "Yosemite National Park"
        assert locations[0].confidence == 0.8

    def test_location_suffix_pattern(self, parser):
        from georag.query.query_parser import EntityType

        result = parser.parse("show the Salt Lake City watershed")

        assert "Salt Lake City" in [e.text for e in result.entities if e.type == EntityType.LOCATION]

    def test_lowercase_words_are_not_locations(self, parser):
        from georag.query.query_parser import EntityType

        result = parser.parse("find rivers in the valley")

        assert not [e for e in result.entities if e.type == EntityType.LOCATION]

    def test_coordinates(self, parser):
        from georag.common.schemas import Coordinates

        result = parser.parse("What is at 37.7749, -122.4194")
        coords = [e for e in result.entities if e.is_coordinates]

        assert len(coords) == 1
        assert coords[0].value == Coordinates(latitude=37.7749, longitude=-122.4194)
        assert coords[0].confidence == 0.95

    def test_out_of_range_coordinates_ignored(self, parser):
        result = parser.parse("What is at 95.0, 200.0")

        assert not [e for e in result.entities if e.is_coordinates]

    @pytest.mark.parametrize("text,value,unit", [
        ("within 5 miles", 5, "miles"),
        ("within 2.5 kilometers", 2.5, "km"),
        ("within 300 m", 300, "meters"),
        ("within 300 metres", 300, "meters"),
    ])
    def test_distance_units_normalized(self, parser, text, value, unit):
        from georag.query.query_parser import EntityType

        result = parser.parse(f"find lakes {text}")
        measurement = next(e for e in result.entities if e.type == EntityType.MEASUREMENT)

        assert measurement.value.value == value
        assert measurement.value.unit.value == unit

    def test_distance_to_km(self):
        from georag.query.query_parser import Distance, DistanceUnit

        assert Distance(10, DistanceUnit.MILES).to_km() == pytest.approx(16.09344)
        assert Distance(500, DistanceUnit.METERS).to_km() == pytest.approx(0.5)

    def test_feature_type_plural(self, parser):
        from georag.query.query_parser import EntityType

        result = parser.parse("show mountains and a lake")
        values = sorted(e.value for e in result.entities if e.type == EntityType.FEATURE_TYPE)

        assert values == ["lake", "mountain"]


class TestSpatialConstraints:
    def test_coordinate_with_distance_is_radius(self, parser):
        from georag.query.query_parser import DistanceUnit, SpatialConstraintType

        result = parser.parse("find schools within 5 miles of 40.7128, -74.0060")

        assert len(result.spatial_constraints) == 1
        constraint = result.spatial_constraints[0]
        assert constraint.type == SpatialConstraintType.RADIUS
        assert constraint.geometry.latitude == 40.7128
        assert constraint.parameters.unit == DistanceUnit.MILES
        assert constraint.radius_km == pytest.approx(8.04672)

    def test_bare_coordinate_is_point(self, parser):
        from georag.query.query_parser import SpatialConstraintType

        result = parser.parse("describe 40.7128, -74.0060")

        assert [c.type for c in result.spatial_constraints] == [SpatialConstraintType.POINT]

    def test_nearby_without_distance_defaults_to_10km(self, parser):
        from georag.query.query_parser import SpatialConstraintType

        result = parser.parse("restaurants nearby 40.7128, -74.0060")

        constraint = result.spatial_constraints[0]
        assert constraint.type == SpatialConstraintType.RADIUS
        assert constraint.parameters.radius == 10

    def test_named_location_is_within_placeholder(self, parser):
        from georag.query.query_parser import SpatialConstraintType

        result = parser.parse("Show urban areas in Colorado")

        constraint = result.spatial_constraints[0]
        assert constraint.type == SpatialConstraintType.WITHIN
        assert constraint.geometry is None
        assert constraint.parameters.location_name == "Colorado"

    def test_distant_measurement_not_attached(self, parser):
        from georag.query.query_parser import SpatialConstraintType

        text = "describe 40.7128, -74.0060" + " and also other things about it" * 3 + " 5 km"
        result = parser.parse(text)

        assert result.spatial_constraints[0].type == SpatialConstraintType.POINT


class TestTemporalConstraints:
    def test_last_days(self, parser):
        result = parser.parse("changes in the last 10 days")
        constraint = result.temporal_constraints[0]

        assert constraint.start_date == date(2024, 3, 21)
        assert constraint.end_date == date(2024, 3, 31)

    def test_past_months_clamps_day(self, parser):
        result = parser.parse("changes over the past 1 month")

        assert result.temporal_constraints[0].start_date == date(2024, 2, 29)

    def test_last_years(self, parser):
        result = parser.parse("trend for the last 2 years")

        assert result.temporal_constraints[0].start_date == date(2022, 3, 31)

    def test_subtract_period_across_year(self):
        from georag.query.query_parser import subtract_period

        assert subtract_period(date(2024, 1, 15), 3, "month") == date(2023, 10, 15)
        assert subtract_period(date(2024, 2, 29), 1, "year") == date(2023, 2, 28)
        assert subtract_period(date(2024, 1, 3), 1, "week") == date(2023, 12, 27)

    @pytest.mark.parametrize("period", ["last 5000 years", "past 99999 months", "last 99999999 weeks",
                                        "last 100000000000000000000 days"])
    def test_period_before_year_one_clamps_to_min_date(self, parser, period):
        result = parser.parse(f"Find parks near 34.05, -118.24 in the {period}")

        constraint = result.temporal_constraints[0]
        assert constraint.start_date == date.min
        assert constraint.end_date == date(2024, 3, 31)

    def test_absolute_dates(self, parser):
        from georag.query.query_parser import TemporalConstraintType

        before = parser.parse("floods before 2020-06-01").temporal_constraints[0]
        since = parser.parse("fires since 7/4/2021").temporal_constraints[0]
        between = parser.parse("snow between 2022-01-01 and 2022-03-01").temporal_constraints[0]

        assert before.type == TemporalConstraintType.BEFORE and before.end_date == date(2020, 6, 1)
        assert since.type == TemporalConstraintType.AFTER and since.start_date == date(2021, 7, 4)
        assert (between.start_date, between.end_date) == (date(2022, 1, 1), date(2022, 3, 1))

    def test_invalid_date_ignored(self, parser):
        assert parser.parse("floods before 2020-13-45").temporal_constraints == []


class TestFilters:
    def test_type_filter(self, parser):
        from georag.query.query_parser import FilterOperator

        result = parser.parse("find records type:analysis near Denver")

        assert result.filters[0].field == "type"
        assert result.filters[0].operator == FilterOperator.EQUALS
        assert result.filters[0].value == "analysis"

    def test_confidence_filter(self, parser):
        from georag.query.query_parser import FilterOperator

        result = parser.parse("find lakes with confidence above 0.8")

        assert result.filters[0].field == "confidence"
        assert result.filters[0].operator == FilterOperator.GREATER_THAN
        assert result.filters[0].value == 0.8


class TestConfidence:
    def test_base_confidence(self, parser):
        assert parser.parse("hello there").confidence == pytest.approx(0.5)

    def test_components(self, parser):
        # plain search, one location entity (+0.1, mean 0.8), one within constraint (+0.15)
        result = parser.parse("granite in Denver")

        assert result.confidence == pytest.approx(0.5 + 0.1 + 0.15 + 0.2 * 0.8)

    def test_capped_at_one(self, parser):
        result = parser.parse("Find national parks within 50km of Los Angeles")

        assert result.confidence == 1.0
