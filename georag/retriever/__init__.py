"""
Retriever - Spatially Aware Retrieval-Augmented Answering

Key Components:
- GeographicVectorStore: Documents + embeddings with hybrid (semantic + spatial) ranking
- GeographicRAGEngine: Embeds, retrieves and synthesizes answers
- Synthesizer: Template answers, optionally LLM-written
- document_processor: Features to documents, sentence chunking

Pipeline:
1. Convert features to documents
2. Embed text, append spatial features for located documents
3. Rank by (1 - w) * cosine + w * distance decay
4. Synthesize an answer with spatial scope and confidence
"""

from .document_processor import ChunkingStrategy, chunk_document, features_to_documents
from .rag_engine import GeographicRAGEngine, RAGResponse, RetrievalMetadata
from .synthesizer import SpatialScope, Synthesizer
from .vector_store import (
    GeographicVectorStore,
    RAGQuery,
    SearchFilters,
    SearchResult,
    cosine_similarity,
)

__all__ = [
    "ChunkingStrategy",
    "chunk_document",
    "features_to_documents",
    "GeographicRAGEngine",
    "RAGResponse",
    "RetrievalMetadata",
    "SpatialScope",
    "Synthesizer",
    "GeographicVectorStore",
    "RAGQuery",
    "SearchFilters",
    "SearchResult",
    "cosine_similarity",
]
