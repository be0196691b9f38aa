"""
Query Planner

Turns a ParsedQuery into an ordered, dependency-checked execution plan:

    [spatial_filter] -> rag_search -> [analysis] [aggregation]

Step parameters are a tagged union discriminated by StepType; every step
kind carries its own typed payload.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Tuple, Union

from .query_parser import (
    ExtractedEntity,
    ParsedQuery,
    QueryFilter,
    QueryIntent,
    QueryIntentType,
    SpatialConstraint,
    TemporalConstraint,
)


class QueryPlanningError(Exception):
    """Plan is malformed or cannot be executed (fatal to the request)"""
    pass


class StepType(str, Enum):
    SPATIAL_FILTER = "spatial_filter"
    RAG_SEARCH = "rag_search"
    ANALYSIS = "analysis"
    AGGREGATION = "aggregation"


@dataclass
class SpatialFilterParams:
    constraints: List[SpatialConstraint]


@dataclass
class RagSearchParams:
    intent: QueryIntent
    entities: List[ExtractedEntity]
    filters: List[QueryFilter]
    temporal_constraints: List[TemporalConstraint]


@dataclass
class AnalysisParams:
    analysis_type: str = "general"


@dataclass
class AggregationParams:
    group_by: str = "type"


StepParams = Union[SpatialFilterParams, RagSearchParams, AnalysisParams, AggregationParams]

PARAMS_BY_STEP = {
    StepType.SPATIAL_FILTER: SpatialFilterParams,
    StepType.RAG_SEARCH: RagSearchParams,
    StepType.ANALYSIS: AnalysisParams,
    StepType.AGGREGATION: AggregationParams,
}

# Diagnostic cost weights; not used for scheduling
BASE_COST = 1
STEP_COSTS = {
    StepType.SPATIAL_FILTER: 2,
    StepType.RAG_SEARCH: 5,
    StepType.ANALYSIS: 3,
    StepType.AGGREGATION: 1,
}


@dataclass
class ExecutionStep:
    id: str
    type: StepType
    operation: str
    params: StepParams
    dependencies: List[str] = field(default_factory=list)

    def __post_init__(self):
        expected = PARAMS_BY_STEP.get(self.type)
        if expected is None:
            raise QueryPlanningError(f"Unknown step type: {self.type}")
        if not isinstance(self.params, expected):
            raise QueryPlanningError(
                f"Step {self.id} of type {self.type.value} needs {expected.__name__}, "
                f"got {type(self.params).__name__}"
            )


@dataclass(frozen=True)
class CacheKey:
    """Structural cache key over the semantic fields of a parsed query"""
    intent: QueryIntentType
    entity_texts: Tuple[str, ...]
    spatial_count: int
    temporal_count: int
    text: str

    @classmethod
    def from_parsed(cls, parsed: ParsedQuery) -> "CacheKey":
        return cls(
            intent=parsed.intent.type,
            entity_texts=tuple(sorted(e.text for e in parsed.entities)),
            spatial_count=len(parsed.spatial_constraints),
            temporal_count=len(parsed.temporal_constraints),
            text=parsed.original.lower().strip(),
        )


@dataclass
class ExecutionPlan:
    steps: List[ExecutionStep]
    estimated_cost: int
    cache_key: CacheKey

    @property
    def step_ids(self) -> List[str]:
        return [step.id for step in self.steps]


class QueryPlanner:
    """Builds the minimal plan for a parsed query"""

    def plan(self, parsed: ParsedQuery) -> ExecutionPlan:
        steps: List[ExecutionStep] = []
        intent = parsed.intent.type

        if parsed.spatial_constraints:
            steps.append(ExecutionStep(
                id="spatial_filter",
                type=StepType.SPATIAL_FILTER,
                operation="filter_by_spatial_constraints",
                params=SpatialFilterParams(constraints=list(parsed.spatial_constraints)),
            ))

        steps.append(ExecutionStep(
            id="rag_search",
            type=StepType.RAG_SEARCH,
            operation="semantic_search",
            params=RagSearchParams(
                intent=parsed.intent,
                entities=list(parsed.entities),
                filters=list(parsed.filters),
                temporal_constraints=list(parsed.temporal_constraints),
            ),
            dependencies=["spatial_filter"] if parsed.spatial_constraints else [],
        ))

        if intent in (QueryIntentType.ANALYZE, QueryIntentType.COMPARE):
            steps.append(ExecutionStep(
                id="analysis",
                type=StepType.ANALYSIS,
                operation="compare_features" if intent == QueryIntentType.COMPARE else "analyze_features",
                params=AnalysisParams(analysis_type=parsed.intent.subtype or "general"),
                dependencies=["rag_search"],
            ))

        if intent == QueryIntentType.SEARCH and len(parsed.entities) > 1:
            steps.append(ExecutionStep(
                id="aggregation",
                type=StepType.AGGREGATION,
                operation="aggregate_results",
                params=AggregationParams(group_by="type"),
                dependencies=["rag_search"],
            ))

        return ExecutionPlan(
            steps=steps,
            estimated_cost=estimate_cost(steps),
            cache_key=CacheKey.from_parsed(parsed),
        )


def estimate_cost(steps: List[ExecutionStep]) -> int:
    return BASE_COST + sum(STEP_COSTS[step.type] for step in steps)


def check_dependencies(step: ExecutionStep, completed: Dict[str, object]) -> None:
    """Raise QueryPlanningError unless every dependency already has a result"""
    missing = [dep for dep in step.dependencies if dep not in completed]
    if missing:
        raise QueryPlanningError(f"Dependencies not met for step {step.id}: {', '.join(missing)}")
