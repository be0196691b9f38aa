"""
Query Executor

Runs an execution plan step by step against the spatial index and the RAG
engine, caching successful results.

Per request: Planned -> Executing(step_i) -> Completed | Failed.
Steps run strictly in plan order; each step's output is recorded by step id
and a step whose dependencies have no recorded output fails the request.
"""

import dataclasses
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from ..common.geo import haversine_km
from ..common.geocoding import Geocoder
from ..common.schemas import BoundingBox, Coordinates, GeographicFeature
from ..retriever.rag_engine import GeographicRAGEngine, RAGResponse
from ..retriever.synthesizer import SpatialScope
from ..retriever.vector_store import RAGQuery, SearchFilters, SearchResult
from ..spatial.spatial_index import GridSpatialIndex
from .cache import QueryCache
from .planner import (
    AggregationParams,
    AnalysisParams,
    CacheKey,
    ExecutionPlan,
    ExecutionStep,
    QueryPlanner,
    QueryPlanningError,
    RagSearchParams,
    SpatialFilterParams,
    StepType,
    check_dependencies,
)
from .query_parser import (
    ParsedQuery,
    QueryIntent,
    SpatialConstraint,
    SpatialConstraintType,
)

logger = logging.getLogger("georag.query.executor")

POINT_QUERY_RADIUS_KM = 1.0
DEFAULT_CONSTRAINT_RADIUS_KM = 10.0


# ========== Step outputs ==========

@dataclass
class SpatialFilterOutput:
    features: List[GeographicFeature]
    constraints_applied: int
    unresolved_locations: List[str] = field(default_factory=list)
    search_center: Optional[Coordinates] = None
    search_radius: Optional[float] = None  # km


@dataclass
class RagSearchOutput:
    response: RAGResponse
    query_used: RAGQuery


@dataclass
class FeatureAnalysis:
    total_features: int
    avg_confidence: float
    feature_types: Dict[str, int]
    center: Optional[Coordinates] = None
    lat_range: Optional[float] = None
    lon_range: Optional[float] = None


@dataclass
class ComparisonAspect:
    aspect: str
    feature1: Optional[Union[float, str]] = None
    feature2: Optional[Union[float, str]] = None
    difference: Optional[float] = None
    same: Optional[bool] = None
    value: Optional[float] = None
    unit: Optional[str] = None


@dataclass
class FeatureComparison:
    features_compared: int
    similarities: List[ComparisonAspect] = field(default_factory=list)
    differences: List[ComparisonAspect] = field(default_factory=list)


@dataclass
class AnalysisOutput:
    """Exactly one of analysis, comparison or message is set"""
    analysis: Optional[FeatureAnalysis] = None
    comparison: Optional[FeatureComparison] = None
    message: Optional[str] = None


@dataclass
class AggregationGroup:
    category: str
    count: int
    avg_score: float
    items: List[SearchResult]


@dataclass
class AggregationOutput:
    groups: List[AggregationGroup]
    total_groups: int
    total_items: int


StepOutput = Union[SpatialFilterOutput, RagSearchOutput, AnalysisOutput, AggregationOutput]


# ========== Results ==========

@dataclass
class QueryAnswer:
    answer: str
    sources: List[SearchResult]
    spatial_context: SpatialScope
    intent: QueryIntent
    analysis: Optional[AnalysisOutput] = None
    aggregation: Optional[AggregationOutput] = None
    spatial_filtering: Optional[SpatialFilterOutput] = None


@dataclass
class ResultMetadata:
    execution_time: float  # milliseconds
    steps_executed: int
    cache_hit: bool
    confidence: float


@dataclass
class QueryResult:
    success: bool
    data: Optional[QueryAnswer]
    metadata: ResultMetadata
    error: Optional[str] = None


def failed_result(error: str, confidence: float = 0.0, execution_time: float = 0.0) -> QueryResult:
    return QueryResult(
        success=False,
        data=None,
        metadata=ResultMetadata(
            execution_time=execution_time,
            steps_executed=0,
            cache_hit=False,
            confidence=confidence,
        ),
        error=error,
    )


class QueryExecutor:
    """
    Executes parsed queries.

    Collaborators are injected: the RAG engine, the spatial index, an
    optional result cache and an optional geocoder for named locations.
    """

    def __init__(
        self,
        rag_engine: GeographicRAGEngine,
        spatial_index: GridSpatialIndex,
        cache: Optional[QueryCache] = None,
        geocoder: Optional[Geocoder] = None,
        planner: Optional[QueryPlanner] = None,
        default_spatial_radius: float = 50.0,
        spatial_weight: float = 0.3,
    ):
        self._rag = rag_engine
        self._index = spatial_index
        self._cache = cache
        self._geocoder = geocoder
        self._planner = planner or QueryPlanner()
        self._default_radius = default_spatial_radius
        self._spatial_weight = spatial_weight

    @property
    def cache(self) -> Optional[QueryCache]:
        return self._cache

    async def execute_query(self, parsed: ParsedQuery) -> QueryResult:
        """
        Execute a parsed query.

        Never raises: any planning or execution error becomes a failed
        QueryResult carrying the error message.
        """
        start = time.perf_counter()

        try:
            key = CacheKey.from_parsed(parsed)
            if self._cache is not None:
                cached = self._cache.get(key)
                if cached is not None:
                    logger.debug("Cache hit for query: %s", parsed.original)
                    return dataclasses.replace(
                        cached,
                        metadata=dataclasses.replace(
                            cached.metadata,
                            cache_hit=True,
                            execution_time=_elapsed_ms(start),
                        ),
                    )

            plan = self._planner.plan(parsed)
            result = await self.execute_plan(plan, parsed)
            result.metadata.execution_time = _elapsed_ms(start)

            if self._cache is not None:
                self._cache.put(
                    key, dataclasses.replace(result, metadata=dataclasses.replace(result.metadata))
                )
            return result

        except Exception as e:
            logger.error("Query execution failed: %s", e, exc_info=True)
            return failed_result(str(e), execution_time=_elapsed_ms(start))

    async def execute_plan(self, plan: ExecutionPlan, parsed: ParsedQuery) -> QueryResult:
        """
        Run plan steps in order.

        Raises:
            QueryPlanningError: If a step's dependencies have no recorded output
        """
        outputs: Dict[str, StepOutput] = {}

        for step in plan.steps:
            check_dependencies(step, outputs)
            logger.debug("Executing step %s (%s)", step.id, step.operation)
            outputs[step.id] = await self._execute_step(step, parsed, outputs)

        answer = self._final_answer(outputs, parsed)
        return QueryResult(
            success=True,
            data=answer,
            metadata=ResultMetadata(
                execution_time=0.0,
                steps_executed=len(outputs),
                cache_hit=False,
                confidence=result_confidence(answer, parsed),
            ),
        )

    async def _execute_step(
        self, step: ExecutionStep, parsed: ParsedQuery, outputs: Dict[str, StepOutput]
    ) -> StepOutput:
        if step.type == StepType.SPATIAL_FILTER:
            return await self._spatial_filter(step.params)
        if step.type == StepType.RAG_SEARCH:
            return await self._rag_search(step.params, parsed, outputs)
        if step.type == StepType.ANALYSIS:
            return self._analysis(step, outputs)
        if step.type == StepType.AGGREGATION:
            return self._aggregation(step.params, outputs)
        raise QueryPlanningError(f"Unknown step type: {step.type}")

    # ========== spatial_filter ==========

    async def _spatial_filter(self, params: SpatialFilterParams) -> SpatialFilterOutput:
        output = SpatialFilterOutput(features=[], constraints_applied=len(params.constraints))
        seen = set()

        for constraint in params.constraints:
            features = await self._apply_constraint(constraint, output)
            for feature in features:
                if feature.id not in seen:
                    seen.add(feature.id)
                    output.features.append(feature)

        if output.unresolved_locations:
            logger.warning(
                "Could not resolve named locations: %s", ", ".join(output.unresolved_locations)
            )
        return output

    async def _apply_constraint(
        self, constraint: SpatialConstraint, output: SpatialFilterOutput
    ) -> List[GeographicFeature]:
        kind = constraint.type

        if kind in (SpatialConstraintType.BOUNDS, SpatialConstraintType.POLYGON,
                    SpatialConstraintType.INTERSECTS):
            return self._index.query(_constraint_bounds(constraint))

        center = await self._resolve_center(constraint)
        if center is None:
            output.unresolved_locations.append(constraint.parameters.location_name or "unknown")
            return []

        if kind == SpatialConstraintType.POINT:
            radius, hint_radius = POINT_QUERY_RADIUS_KM, self._default_radius
        elif kind in (SpatialConstraintType.RADIUS, SpatialConstraintType.NEAR):
            radius = constraint.radius_km or DEFAULT_CONSTRAINT_RADIUS_KM
            hint_radius = radius
        elif kind == SpatialConstraintType.WITHIN:
            radius = hint_radius = self._default_radius
        else:
            raise QueryPlanningError(f"Unsupported spatial constraint type: {kind}")

        if output.search_center is None:
            output.search_center, output.search_radius = center, hint_radius
        return self._index.query_radius(center, radius)

    async def _resolve_center(self, constraint: SpatialConstraint) -> Optional[Coordinates]:
        if isinstance(constraint.geometry, Coordinates):
            return constraint.geometry

        name = constraint.parameters.location_name
        if name and self._geocoder is not None:
            return await self._geocoder.geocode(name)
        return None

    # ========== rag_search ==========

    async def _rag_search(
        self, params: RagSearchParams, parsed: ParsedQuery, outputs: Dict[str, StepOutput]
    ) -> RagSearchOutput:
        query = RAGQuery(text=parsed.original, spatial_weight=self._spatial_weight)
        query.location, query.radius = self._spatial_hint(parsed, outputs.get("spatial_filter"))
        query.filters = build_filters(params)

        response = await self._rag.query(query)
        return RagSearchOutput(response=response, query_used=query)

    def _spatial_hint(self, parsed: ParsedQuery, spatial: Optional[SpatialFilterOutput]):
        if spatial is not None:
            if spatial.search_center is not None:
                return spatial.search_center, spatial.search_radius
            if spatial.features:
                return spatial.features[0].center(), self._default_radius
            return None, None

        for constraint in parsed.spatial_constraints:
            if (
                constraint.type in (SpatialConstraintType.POINT, SpatialConstraintType.RADIUS)
                and isinstance(constraint.geometry, Coordinates)
            ):
                return constraint.geometry, constraint.radius_km or self._default_radius
        return None, None

    # ========== analysis ==========

    def _analysis(self, step: ExecutionStep, outputs: Dict[str, StepOutput]) -> AnalysisOutput:
        rag = outputs.get("rag_search")
        if rag is None:
            return AnalysisOutput(message="No data available for analysis")

        sources = rag.response.sources
        if step.operation == "compare_features":
            return compare_sources(sources)
        if step.operation == "analyze_features":
            return analyze_sources(sources)
        return AnalysisOutput(message=f"Analysis operation not supported: {step.operation}")

    # ========== aggregation ==========

    def _aggregation(self, params: AggregationParams, outputs: Dict[str, StepOutput]) -> AggregationOutput:
        rag = outputs.get("rag_search")
        sources = rag.response.sources if rag is not None else []
        return aggregate_sources(sources, params.group_by)

    def _final_answer(self, outputs: Dict[str, StepOutput], parsed: ParsedQuery) -> QueryAnswer:
        rag = outputs.get("rag_search")
        if rag is None:
            raise QueryPlanningError("Plan produced no search results")

        return QueryAnswer(
            answer=rag.response.answer,
            sources=rag.response.sources,
            spatial_context=rag.response.spatial_context,
            intent=parsed.intent,
            analysis=outputs.get("analysis"),
            aggregation=outputs.get("aggregation"),
            spatial_filtering=outputs.get("spatial_filter"),
        )


def build_filters(params: RagSearchParams) -> SearchFilters:
    """Fold parsed filters and the first dated temporal constraint into SearchFilters"""
    filters = SearchFilters()

    types = [str(f.value) for f in params.filters if f.field == "type"]
    if types:
        filters.types = types

    for temporal in params.temporal_constraints:
        if temporal.start_date is not None or temporal.end_date is not None:
            filters.start_date = temporal.start_date
            filters.end_date = temporal.end_date
            break

    confidences = [f.value for f in params.filters if f.field == "confidence"]
    if confidences:
        value = float(confidences[0])
        # "accuracy above 80" is a percentage
        filters.min_confidence = value / 100 if value > 1 else value

    return filters


def analyze_sources(sources: List[SearchResult]) -> AnalysisOutput:
    if not sources:
        return AnalysisOutput(message="No features found for analysis")

    feature_types: Dict[str, int] = {}
    for source in sources:
        doc_type = source.document.metadata.doc_type.value
        feature_types[doc_type] = feature_types.get(doc_type, 0) + 1

    analysis = FeatureAnalysis(
        total_features=len(sources),
        avg_confidence=sum(s.combined_score for s in sources) / len(sources),
        feature_types=feature_types,
    )

    located = [s.document.metadata.location for s in sources if s.document.metadata.location]
    if located:
        lats = [loc.latitude for loc in located]
        lons = [loc.longitude for loc in located]
        analysis.center = Coordinates(latitude=sum(lats) / len(lats), longitude=sum(lons) / len(lons))
        analysis.lat_range = max(lats) - min(lats)
        analysis.lon_range = max(lons) - min(lons)

    return AnalysisOutput(analysis=analysis)


def compare_sources(sources: List[SearchResult]) -> AnalysisOutput:
    """Contrast the first two sources"""
    if len(sources) < 2:
        return AnalysisOutput(message="Need at least 2 features for comparison")

    first, second = sources[0], sources[1]
    comparison = FeatureComparison(features_compared=len(sources))

    comparison.similarities.append(ComparisonAspect(
        aspect="confidence",
        feature1=first.combined_score,
        feature2=second.combined_score,
        difference=abs(first.combined_score - second.combined_score),
    ))

    type1 = first.document.metadata.doc_type.value
    type2 = second.document.metadata.doc_type.value
    comparison.differences.append(ComparisonAspect(
        aspect="type", feature1=type1, feature2=type2, same=type1 == type2,
    ))

    loc1, loc2 = first.document.metadata.location, second.document.metadata.location
    if loc1 is not None and loc2 is not None:
        comparison.differences.append(ComparisonAspect(
            aspect="distance", value=haversine_km(loc1, loc2), unit="km",
        ))

    return AnalysisOutput(comparison=comparison)


# Aggregation field names mapped to document metadata attributes
GROUP_BY_FIELDS = {"type": "doc_type"}


def aggregate_sources(sources: List[SearchResult], group_by: str = "type") -> AggregationOutput:
    attribute = GROUP_BY_FIELDS.get(group_by, group_by)
    grouped: Dict[str, List[SearchResult]] = {}

    for source in sources:
        value = getattr(source.document.metadata, attribute, None)
        key = getattr(value, "value", value)
        grouped.setdefault(str(key) if key is not None else "unknown", []).append(source)

    groups = [
        AggregationGroup(
            category=category,
            count=len(items),
            avg_score=sum(item.combined_score for item in items) / len(items),
            items=items[:3],
        )
        for category, items in grouped.items()
    ]
    return AggregationOutput(groups=groups, total_groups=len(groups), total_items=len(sources))


def result_confidence(answer: QueryAnswer, parsed: ParsedQuery) -> float:
    confidence = 0.3 * parsed.confidence

    if answer.sources:
        confidence += 0.5 * (sum(s.combined_score for s in answer.sources) / len(answer.sources))
    if answer.analysis is not None:
        confidence += 0.1
    if answer.spatial_context.query_location is not None:
        confidence += 0.1

    return min(confidence, 1.0)


def _constraint_bounds(constraint: SpatialConstraint) -> BoundingBox:
    geometry = constraint.geometry
    if isinstance(geometry, BoundingBox):
        return geometry
    if isinstance(geometry, list) and geometry:
        return BoundingBox(
            north=max(c.latitude for c in geometry),
            south=min(c.latitude for c in geometry),
            east=max(c.longitude for c in geometry),
            west=min(c.longitude for c in geometry),
        )
    raise QueryPlanningError(f"Unsupported geometry for {constraint.type.value} constraint")


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000
