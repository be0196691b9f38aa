"""
Query Engine

Facade over the query pipeline: validates input, parses, applies the
confidence gate and hands the parsed query to the executor. Also exposes
ingestion, suggestions and statistics.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..common.config import GeoRagConfig, QueryConfig, load_config
from ..common.embedding_service import create_embedding_provider
from ..common.geocoding import Geocoder
from ..common.llm_client import LLMClient
from ..common.schemas import GeographicFeature
from ..retriever.document_processor import features_to_documents
from ..retriever.rag_engine import GeographicRAGEngine
from ..retriever.synthesizer import Synthesizer
from ..retriever.vector_store import GeographicVectorStore
from ..spatial.spatial_index import GridSpatialIndex
from .cache import QueryCache
from .executor import QueryExecutor, QueryResult, failed_result
from .query_parser import QueryParser

logger = logging.getLogger("georag.query.engine")

QUERY_PATTERNS = [
    "Find cities near {location}",
    "What is the vegetation in {location}?",
    "Show satellite analysis of {location}",
    "Compare {location1} and {location2}",
    "Find water bodies within {distance} of {location}",
    "Analyze land use changes in {location}",
    "What are the geographic features of {location}?",
    "Find mountains higher than {elevation} meters",
    "Show urban areas in {region}",
    "What is the climate like in {location}?",
]

MAX_SUGGESTIONS = 5

@dataclass
class ValidationResult:
    is_valid: bool
    issues: List[str] = field(default_factory=list)


class GeoQueryEngine:
    """
    Natural-language query interface over a spatial index and a RAG engine.

    Example:
        engine = build_engine()
        await engine.ingest_features(features)
        result = await engine.process_query("Find parks near 37.77, -122.42")
    """

    def __init__(
        self,
        rag_engine: GeographicRAGEngine,
        spatial_index: GridSpatialIndex,
        config: Optional[QueryConfig] = None,
        geocoder: Optional[Geocoder] = None,
        parser: Optional[QueryParser] = None,
        cache: Optional[QueryCache] = None,
        spatial_weight: float = 0.3,
    ):
        self._config = config or QueryConfig()
        self._rag = rag_engine
        self._index = spatial_index
        self._parser = parser or QueryParser()

        if cache is None and self._config.enable_caching:
            cache = QueryCache(
                ttl_seconds=self._config.cache_ttl_seconds,
                max_size=self._config.max_cache_size,
            )

        self._executor = QueryExecutor(
            rag_engine=rag_engine,
            spatial_index=spatial_index,
            cache=cache if self._config.enable_caching else None,
            geocoder=geocoder,
            default_spatial_radius=self._config.default_spatial_radius,
            spatial_weight=spatial_weight,
        )

    @property
    def rag_engine(self) -> GeographicRAGEngine:
        return self._rag

    @property
    def spatial_index(self) -> GridSpatialIndex:
        return self._index

    async def process_query(self, text: str) -> QueryResult:
        """
        Answer a natural language query.

        Invalid input and low-confidence parses are returned as failed
        results without execution; nothing is raised.
        """
        validation = self.validate_query(text)
        if not validation.is_valid:
            logger.info("Rejected invalid query: %s", "; ".join(validation.issues))
            return failed_result("Invalid query: " + "; ".join(validation.issues))

        try:
            parsed = self._parser.parse(text)
        except Exception as e:
            logger.error("Query parsing failed: %s", e, exc_info=True)
            return failed_result(str(e))

        threshold = self._config.confidence_threshold
        if parsed.confidence < threshold:
            logger.info("Query confidence %.2f below threshold %.2f", parsed.confidence, threshold)
            return failed_result(
                f"Query parsing confidence ({parsed.confidence:.2f}) is below threshold "
                f"({threshold:.2f}). Please rephrase your query.",
                confidence=parsed.confidence,
            )

        return await self._executor.execute_query(parsed)

    def validate_query(self, text: str) -> ValidationResult:
        issues = []
        text = text or ""

        if not text.strip():
            issues.append("Query cannot be empty")
        if len(text) > self._config.max_query_length:
            issues.append(f"Query is too long (max {self._config.max_query_length} characters)")
        if len(text) < self._config.min_query_length:
            issues.append(f"Query is too short (min {self._config.min_query_length} characters)")
        if not any(c.isalpha() for c in text):
            issues.append("Query must contain at least some text")

        return ValidationResult(is_valid=not issues, issues=issues)

    def get_suggestions(self, partial: str) -> List[str]:
        return suggest_queries(partial)

    def get_stats(self) -> Dict[str, Any]:
        cache = self._executor.cache
        return {
            "parsing_enabled": True,
            "execution_enabled": True,
            "cache_enabled": cache is not None,
            "cache_size": len(cache) if cache is not None else 0,
            "confidence_threshold": self._config.confidence_threshold,
            "spatial_index": self._index.get_stats(),
            "retrieval": self._rag.get_stats(),
        }

    async def ingest_features(
        self, features: List[GeographicFeature], index_documents: bool = True
    ) -> int:
        """
        Insert features into the spatial index and, optionally, their
        documents into the RAG engine. Cached results are dropped.

        Returns:
            Number of features ingested
        """
        for feature in features:
            self._index.insert(feature)

        if index_documents:
            await self._rag.add_documents(features_to_documents(features))

        self._clear_cache()
        logger.info("Ingested %d features", len(features))
        return len(features)

    def remove_feature(self, feature_id: str) -> bool:
        """Remove a feature and its document; True if the feature was indexed"""
        removed = self._index.remove(feature_id)
        self._rag.vector_store.remove_document(f"feature-{feature_id}")
        self._clear_cache()
        return removed

    def clear(self) -> None:
        self._index.clear()
        self._rag.clear()
        self._clear_cache()

    def _clear_cache(self) -> None:
        if self._executor.cache is not None:
            self._executor.cache.clear()


def suggest_queries(partial: str) -> List[str]:
    """Query patterns containing ``partial``; every pattern for very short input"""
    lowered = (partial or "").lower()
    matches = [p for p in QUERY_PATTERNS if len(lowered) < 3 or lowered in p.lower()]
    return matches[:MAX_SUGGESTIONS]


def build_engine(
    config: Optional[GeoRagConfig] = None,
    geocoder: Optional[Geocoder] = None,
) -> GeoQueryEngine:
    """Wire a query engine from configuration (loaded when not given)"""
    config = config or load_config()

    provider = create_embedding_provider(
        mode=config.embedding.mode,
        model=config.embedding.model,
        dimensions=config.embedding.dimensions,
        batch_size=config.embedding.batch_size,
    )

    llm_client = None
    if config.llm.api_key:
        llm_client = LLMClient(
            provider=config.llm.provider,
            model=config.llm.model,
            api_key=config.llm.api_key,
        )

    store_config = config.vector_store
    rag_engine = GeographicRAGEngine(
        embedding_provider=provider,
        vector_store=GeographicVectorStore(
            spatial_weight=store_config.spatial_weight,
            max_results=store_config.max_results,
            grid_size=store_config.grid_size,
            default_radius_km=store_config.default_radius_km,
        ),
        synthesizer=Synthesizer(llm_client),
    )

    return GeoQueryEngine(
        rag_engine=rag_engine,
        spatial_index=GridSpatialIndex(grid_size=config.spatial.grid_size),
        config=config.query,
        geocoder=geocoder,
        spatial_weight=store_config.spatial_weight,
    )


def format_result_for_display(result: QueryResult) -> str:
    """Plain-text rendering of a query result"""
    meta = result.metadata
    if not result.success:
        return f"Query failed: {result.error}\n(confidence: {meta.confidence:.2f})"

    data = result.data
    lines = [data.answer.rstrip(), ""]

    if data.sources:
        lines.append("Sources:")
        for i, source in enumerate(data.sources, 1):
            lines.append(
                f"  {i}. [{source.doc_id}] score={source.combined_score:.3f} "
                f"(semantic {source.similarity:.3f}, spatial {source.spatial_relevance:.3f})"
            )
        lines.append("")

    if data.spatial_filtering is not None:
        spatial = data.spatial_filtering
        lines.append(f"Spatial filter: {len(spatial.features)} features matched")
        if spatial.unresolved_locations:
            lines.append(f"  Unresolved locations: {', '.join(spatial.unresolved_locations)}")

    if data.analysis is not None:
        analysis = data.analysis
        if analysis.message:
            lines.append(f"Analysis: {analysis.message}")
        elif analysis.analysis is not None:
            stats = analysis.analysis
            types = ", ".join(f"{k}={v}" for k, v in sorted(stats.feature_types.items()))
            lines.append(f"Analysis: {stats.total_features} sources ({types})")
        elif analysis.comparison is not None:
            for aspect in analysis.comparison.differences:
                if aspect.aspect == "distance":
                    lines.append(f"Distance between top sources: {aspect.value:.1f} {aspect.unit}")

    if data.aggregation is not None:
        groups = ", ".join(f"{g.category}: {g.count}" for g in data.aggregation.groups)
        lines.append(f"Groups: {groups}")

    lines.append(
        f"Intent: {data.intent.type.value} | scope: {data.spatial_context.spatial_scope} | "
        f"confidence: {meta.confidence:.2f} | {meta.execution_time:.1f} ms"
        + (" (cached)" if meta.cache_hit else "")
    )
    return "\n".join(lines)
