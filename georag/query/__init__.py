"""
Query - Natural Language Query Pipeline

Key Components:
- QueryParser: Rule-based intent, entity and constraint extraction
- QueryPlanner: Dependency-ordered execution plans
- QueryExecutor: Runs plans against the spatial index and RAG engine
- QueryCache: TTL result cache
- GeoQueryEngine: Validation, confidence gate, suggestions, stats
"""

from .cache import QueryCache
from .engine import (
    GeoQueryEngine,
    ValidationResult,
    build_engine,
    format_result_for_display,
    suggest_queries,
)
from .executor import QueryAnswer, QueryExecutor, QueryResult, ResultMetadata
from .planner import CacheKey, ExecutionPlan, ExecutionStep, QueryPlanner, QueryPlanningError, StepType
from .query_parser import ParsedQuery, QueryParser

__all__ = [
    "QueryCache",
    "GeoQueryEngine",
    "ValidationResult",
    "build_engine",
    "format_result_for_display",
    "suggest_queries",
    "QueryAnswer",
    "QueryExecutor",
    "QueryResult",
    "ResultMetadata",
    "CacheKey",
    "ExecutionPlan",
    "ExecutionStep",
    "QueryPlanner",
    "QueryPlanningError",
    "StepType",
    "ParsedQuery",
    "QueryParser",
]
