"""
RAG Engine

Bridges text queries to the vector store:
1. Embed documents (text embedding + spatial features) at ingestion
2. Embed the query text (textual only, no spatial features)
3. Retrieve and rank via the hybrid vector store
4. Synthesize an answer with spatial scope and a confidence estimate
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..common.embedding_service import EmbeddingProvider
from ..common.schemas import GeographicDocument
from .spatial_features import enhance_with_spatial_context
from .synthesizer import SpatialScope, Synthesizer, calculate_confidence
from .vector_store import GeographicVectorStore, RAGQuery, SearchResult

logger = logging.getLogger("georag.retriever.rag_engine")


@dataclass
class RetrievalMetadata:
    """Timings (milliseconds) and counts for one response"""
    retrieval_time: float
    generation_time: float
    documents_retrieved: int
    spatial_filtering: bool


@dataclass
class RAGResponse:
    """Answer with its ranked sources"""
    answer: str
    sources: List[SearchResult]
    spatial_context: SpatialScope
    confidence: float
    metadata: RetrievalMetadata


class GeographicRAGEngine:
    """
    Retrieval-augmented answering over geographic documents.

    Owns nothing global: the embedding provider, vector store and
    synthesizer are all passed in.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        vector_store: Optional[GeographicVectorStore] = None,
        synthesizer: Optional[Synthesizer] = None,
    ):
        self._embedding = embedding_provider
        self._store = vector_store or GeographicVectorStore()
        self._synthesizer = synthesizer or Synthesizer()

    @property
    def vector_store(self) -> GeographicVectorStore:
        return self._store

    async def initialize(self, documents: List[GeographicDocument]) -> None:
        """
        Load documents, embedding only those that lack an embedding.

        Provided embeddings are stored untouched.
        """
        logger.info("Initializing RAG engine with %d documents", len(documents))

        pending = [doc for doc in documents if doc.embedding is None]
        embedded = {doc.id: doc for doc in await self._embed_documents(pending)}
        if pending:
            logger.info("Generated embeddings for %d documents", len(pending))

        self._store.add_documents([
            embedded[doc.id] if doc.embedding is None else doc
            for doc in documents
        ])

    async def add_documents(self, documents: List[GeographicDocument]) -> None:
        """Embed (or re-embed) and store documents"""
        self._store.add_documents(await self._embed_documents(documents))

    async def query(self, query: RAGQuery) -> RAGResponse:
        start = time.perf_counter()

        query_embedding = await self._embedding.embed(query.text)
        sources = self._store.search(query_embedding, query)
        retrieval_time = (time.perf_counter() - start) * 1000

        generation_start = time.perf_counter()
        answer = self._synthesizer.synthesize(query, sources)
        generation_time = (time.perf_counter() - generation_start) * 1000

        return RAGResponse(
            answer=answer,
            sources=sources,
            spatial_context=self._synthesizer.analyze_spatial_context(query, sources),
            confidence=calculate_confidence(sources),
            metadata=RetrievalMetadata(
                retrieval_time=retrieval_time,
                generation_time=generation_time,
                documents_retrieved=len(sources),
                spatial_filtering=query.location is not None,
            ),
        )

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = dict(self._store.get_stats())
        stats["embedding_dimensions"] = self._embedding.dimensions()
        stats["llm_synthesis"] = self._synthesizer.has_llm
        return stats

    def clear(self) -> None:
        self._store.clear()

    async def _embed_documents(self, documents: List[GeographicDocument]) -> List[GeographicDocument]:
        if not documents:
            return []

        embeddings = await self._embedding.embed_batch([doc.content for doc in documents])
        return [
            doc.model_copy(update={"embedding": enhance_with_spatial_context(embedding, doc)})
            for doc, embedding in zip(documents, embeddings)
        ]
