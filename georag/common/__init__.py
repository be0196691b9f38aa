"""
GeoRAG Common Module

Shared infrastructure for the spatial index, retriever and query pipeline.
"""

from .config import GeoRagConfig, load_config
from .embedding_service import (
    EmbeddingProvider,
    EmbeddingService,
    HashEmbeddingProvider,
    create_embedding_provider,
)
from .geocoding import Geocoder, GazetteerGeocoder
from .llm_client import LLMClient

__all__ = [
    "GeoRagConfig",
    "load_config",
    "EmbeddingProvider",
    "EmbeddingService",
    "HashEmbeddingProvider",
    "create_embedding_provider",
    "Geocoder",
    "GazetteerGeocoder",
    "LLMClient",
]
