"""
Vector Store

Holds documents with their embeddings plus a parallel spatial grid keyed
by document location, and ranks documents with a hybrid score:

    combined = (1 - w) * cosine_similarity + w * spatial_relevance

where spatial_relevance = exp(-distance_km / (radius_km / 3)) when both the
query and the document are located, and a neutral 0.5 otherwise.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Set

import numpy as np

from ..common.geo import GridKey, bounding_box_around, grid_key, grid_range, haversine_km
from ..common.locking import ReadWriteLock
from ..common.schemas import Coordinates, GeographicDocument

logger = logging.getLogger("georag.retriever.vector_store")

NEUTRAL_SPATIAL_RELEVANCE = 0.5


@dataclass
class SearchFilters:
    """Document filters, combined with AND"""
    types: Optional[List[str]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    tags: Optional[List[str]] = None
    min_confidence: Optional[float] = None

    @property
    def is_empty(self) -> bool:
        return (
            not self.types
            and self.start_date is None
            and self.end_date is None
            and not self.tags
            and self.min_confidence is None
        )


@dataclass
class RAGQuery:
    """A retrieval request"""
    text: str
    location: Optional[Coordinates] = None
    radius: Optional[float] = None  # km
    filters: SearchFilters = field(default_factory=SearchFilters)
    spatial_weight: Optional[float] = None  # 0-1, store default when None


@dataclass
class SearchResult:
    """A single ranked document"""
    document: GeographicDocument
    similarity: float
    spatial_relevance: float
    combined_score: float

    @property
    def doc_id(self) -> str:
        return self.document.id


def cosine_similarity(a: Iterable[float], b: Iterable[float]) -> float:
    """
    Cosine similarity of two equal-length vectors.

    Raises:
        ValueError: If the vectors differ in length
    """
    v1 = np.asarray(a, dtype=np.float64)
    v2 = np.asarray(b, dtype=np.float64)

    if v1.shape != v2.shape:
        raise ValueError(f"Vector dimension mismatch: {v1.shape} vs {v2.shape}")

    denom = np.linalg.norm(v1) * np.linalg.norm(v2)
    if denom == 0:
        return 0.0
    return float(np.dot(v1, v2) / denom)


def combine_scores(similarity: float, spatial_relevance: float, spatial_weight: float) -> float:
    return (1 - spatial_weight) * similarity + spatial_weight * spatial_relevance


def spatial_relevance(
    query_location: Optional[Coordinates],
    doc_location: Optional[Coordinates],
    radius_km: float,
) -> float:
    """Exponential distance decay; neutral when either side has no location"""
    if query_location is None or doc_location is None:
        return NEUTRAL_SPATIAL_RELEVANCE
    distance = haversine_km(query_location, doc_location)
    return math.exp(-distance / (radius_km / 3))


class GeographicVectorStore:
    """
    In-memory vector database with spatial awareness.

    Query vectors are compared with the leading components of each stored
    embedding. Stored embeddings may be longer than the query vector because
    located documents carry extra spatial features; a stored embedding
    shorter than the query is an error.
    """

    def __init__(
        self,
        spatial_weight: float = 0.3,
        max_results: int = 10,
        grid_size: float = 0.1,
        default_radius_km: float = 100.0,
    ):
        self._spatial_weight = spatial_weight
        self._max_results = max_results
        self._grid_size = grid_size
        self._default_radius_km = default_radius_km

        self._documents: Dict[str, GeographicDocument] = {}
        self._embeddings: Dict[str, np.ndarray] = {}
        self._grid: Dict[GridKey, Set[str]] = {}
        self._doc_keys: Dict[str, GridKey] = {}
        self._lock = ReadWriteLock()

    @property
    def spatial_weight(self) -> float:
        return self._spatial_weight

    @property
    def max_results(self) -> int:
        return self._max_results

    def add_document(self, document: GeographicDocument) -> None:
        """Add or replace a document (idempotent per id)"""
        with self._lock.write():
            self._add_unlocked(document)

    def add_documents(self, documents: List[GeographicDocument]) -> None:
        with self._lock.write():
            for document in documents:
                self._add_unlocked(document)
        logger.debug("Indexed %d documents", len(documents))

    def remove_document(self, doc_id: str) -> bool:
        with self._lock.write():
            if doc_id not in self._documents:
                return False
            self._remove_unlocked(doc_id)
            return True

    def clear(self) -> None:
        with self._lock.write():
            self._documents.clear()
            self._embeddings.clear()
            self._grid.clear()
            self._doc_keys.clear()

    def get_document(self, doc_id: str) -> Optional[GeographicDocument]:
        with self._lock.read():
            return self._documents.get(doc_id)

    def get_all_documents(self) -> List[GeographicDocument]:
        with self._lock.read():
            return list(self._documents.values())

    def search(self, query_embedding: List[float], query: RAGQuery) -> List[SearchResult]:
        """
        Rank documents for a query embedding.

        Steps:
        1. Candidate selection (spatial grid when the query is located,
           falling back to every document when the grid yields nothing)
        2. Filters (type, date range, tags, minimum confidence)
        3. Hybrid scoring
        4. Sort descending, truncate to max_results
        """
        query_vec = np.asarray(query_embedding, dtype=np.float64)
        radius_km = query.radius or self._default_radius_km
        weight = query.spatial_weight if query.spatial_weight is not None else self._spatial_weight

        with self._lock.read():
            candidates = self._candidate_ids(query, radius_km)
            results = []

            for doc_id in sorted(candidates):
                document = self._documents[doc_id]
                embedding = self._embeddings.get(doc_id)
                if embedding is None:
                    continue
                if not self._passes_filters(document, query.filters):
                    continue

                if embedding.shape[0] < query_vec.shape[0]:
                    raise ValueError(
                        f"Document {doc_id} embedding has {embedding.shape[0]} dimensions, "
                        f"query has {query_vec.shape[0]}"
                    )
                similarity = cosine_similarity(query_vec, embedding[:query_vec.shape[0]])
                relevance = spatial_relevance(query.location, document.metadata.location, radius_km)

                results.append(SearchResult(
                    document=document,
                    similarity=similarity,
                    spatial_relevance=relevance,
                    combined_score=combine_scores(similarity, relevance, weight),
                ))

        results.sort(key=lambda r: r.combined_score, reverse=True)
        return results[:self._max_results]

    def get_stats(self) -> Dict[str, int]:
        with self._lock.read():
            return {
                "total_documents": len(self._documents),
                "documents_with_embeddings": len(self._embeddings),
                "documents_with_location": len(self._doc_keys),
                "spatial_grid_cells": len(self._grid),
            }

    def _add_unlocked(self, document: GeographicDocument) -> None:
        if document.id in self._documents:
            self._remove_unlocked(document.id)

        self._documents[document.id] = document
        if document.embedding is not None:
            self._embeddings[document.id] = np.asarray(document.embedding, dtype=np.float64)

        location = document.metadata.location
        if location is not None:
            key = grid_key(location, self._grid_size)
            self._grid.setdefault(key, set()).add(document.id)
            self._doc_keys[document.id] = key

    def _remove_unlocked(self, doc_id: str) -> None:
        self._documents.pop(doc_id, None)
        self._embeddings.pop(doc_id, None)

        key = self._doc_keys.pop(doc_id, None)
        if key is not None:
            bucket = self._grid.get(key)
            if bucket is not None:
                bucket.discard(doc_id)
                if not bucket:
                    del self._grid[key]

    def _candidate_ids(self, query: RAGQuery, radius_km: float) -> Set[str]:
        if query.location is None:
            return set(self._documents)

        candidates = self._spatial_candidates(query.location, radius_km)
        if not candidates:
            logger.debug("No documents within %.1f km, searching all documents", radius_km)
            return set(self._documents)
        return candidates

    def _spatial_candidates(self, location: Coordinates, radius_km: float) -> Set[str]:
        bounds = bounding_box_around(location, radius_km)
        candidates: Set[str] = set()

        for key in grid_range(bounds, self._grid_size):
            for doc_id in self._grid.get(key, ()):
                doc_location = self._documents[doc_id].metadata.location
                if haversine_km(location, doc_location) <= radius_km:
                    candidates.add(doc_id)

        return candidates

    @staticmethod
    def _passes_filters(document: GeographicDocument, filters: SearchFilters) -> bool:
        metadata = document.metadata

        if filters.types and metadata.doc_type.value not in filters.types:
            return False

        doc_date = metadata.timestamp.date()
        if filters.start_date is not None and doc_date < filters.start_date:
            return False
        if filters.end_date is not None and doc_date > filters.end_date:
            return False

        if filters.tags and not metadata.tags.intersection(filters.tags):
            return False

        # Documents without a confidence value are not excluded
        if (
            filters.min_confidence is not None
            and metadata.confidence is not None
            and metadata.confidence < filters.min_confidence
        ):
            return False

        return True
