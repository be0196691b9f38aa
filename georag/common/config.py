"""
Configuration Management for GeoRAG

Loads configuration from ~/.georag/config.json and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("georag.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".georag"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class EmbeddingConfig:
    """Embedding capability configuration"""
    mode: str = "hash"  # "hash" (deterministic) or "femb" (fastembed, on-device)
    model: str = "sentence-transformers/all-MiniLM-L6-v2"
    dimensions: int = 384
    batch_size: int = 10  # Bounds concurrent outstanding embedding requests


@dataclass
class LLMConfig:
    """Optional LLM used for answer synthesis"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    @property
    def api_key(self) -> str:
        if self.provider == "openai":
            return self.openai_api_key
        return self.anthropic_api_key

    @property
    def model(self) -> str:
        if self.provider == "openai":
            return self.openai_model
        return self.anthropic_model


@dataclass
class SpatialConfig:
    """Spatial index configuration"""
    grid_size: float = 0.01  # ~1km cells


@dataclass
class VectorStoreConfig:
    """Vector store configuration"""
    grid_size: float = 0.1  # ~10km cells
    spatial_weight: float = 0.3
    max_results: int = 10
    default_radius_km: float = 100.0


@dataclass
class QueryConfig:
    """Query engine configuration"""
    confidence_threshold: float = 0.5
    enable_caching: bool = True
    max_cache_size: int = 100
    cache_ttl_seconds: float = 300.0
    default_spatial_radius: float = 50.0
    min_query_length: int = 3
    max_query_length: int = 500


@dataclass
class GeoRagConfig:
    """Main GeoRAG configuration"""
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    spatial: SpatialConfig = field(default_factory=SpatialConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    query: QueryConfig = field(default_factory=QueryConfig)


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "hash"),
        model=embedding_data.get("model", "sentence-transformers/all-MiniLM-L6-v2"),
        dimensions=embedding_data.get("dimensions", 384),
        batch_size=embedding_data.get("batch_size", 10),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
    )


def _parse_spatial_config(data: dict) -> SpatialConfig:
    """Parse spatial section from config dict"""
    spatial_data = data.get("spatial", {})
    return SpatialConfig(grid_size=spatial_data.get("grid_size", 0.01))


def _parse_vector_store_config(data: dict) -> VectorStoreConfig:
    """Parse vector_store section from config dict"""
    store_data = data.get("vector_store", {})
    return VectorStoreConfig(
        grid_size=store_data.get("grid_size", 0.1),
        spatial_weight=store_data.get("spatial_weight", 0.3),
        max_results=store_data.get("max_results", 10),
        default_radius_km=store_data.get("default_radius_km", 100.0),
    )


def _parse_query_config(data: dict) -> QueryConfig:
    """Parse query section from config dict"""
    query_data = data.get("query", {})
    return QueryConfig(
        confidence_threshold=query_data.get("confidence_threshold", 0.5),
        enable_caching=query_data.get("enable_caching", True),
        max_cache_size=query_data.get("max_cache_size", 100),
        cache_ttl_seconds=query_data.get("cache_ttl_seconds", 300.0),
        default_spatial_radius=query_data.get("default_spatial_radius", 50.0),
        min_query_length=query_data.get("min_query_length", 3),
        max_query_length=query_data.get("max_query_length", 500),
    )


def load_config() -> GeoRagConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.georag/config.json)
    3. Default values
    """
    config = GeoRagConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.embedding = _parse_embedding_config(data)
            config.llm = _parse_llm_config(data)
            config.spatial = _parse_spatial_config(data)
            config.vector_store = _parse_vector_store_config(data)
            config.query = _parse_query_config(data)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Environment variable overrides
    if os.getenv("GEORAG_EMBEDDING_MODE"):
        config.embedding.mode = os.getenv("GEORAG_EMBEDDING_MODE")
    if os.getenv("GEORAG_EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("GEORAG_EMBEDDING_MODEL")

    if os.getenv("GEORAG_SPATIAL_WEIGHT"):
        config.vector_store.spatial_weight = float(os.getenv("GEORAG_SPATIAL_WEIGHT"))
    if os.getenv("GEORAG_MAX_RESULTS"):
        config.vector_store.max_results = int(os.getenv("GEORAG_MAX_RESULTS"))

    if os.getenv("GEORAG_CONFIDENCE_THRESHOLD"):
        config.query.confidence_threshold = float(os.getenv("GEORAG_CONFIDENCE_THRESHOLD"))
    if os.getenv("GEORAG_CACHE_TTL"):
        config.query.cache_ttl_seconds = float(os.getenv("GEORAG_CACHE_TTL"))

    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "ANTHROPIC_MODEL": "anthropic_model",
        "OPENAI_API_KEY": "openai_api_key",
        "OPENAI_MODEL": "openai_model",
        "GEORAG_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)

    return config
