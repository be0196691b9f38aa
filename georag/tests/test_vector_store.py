"""
Tests for the hybrid vector store

Tests similarity math, candidate selection, filters and ranking.
"""

from datetime import date, datetime, timezone

import pytest


def make_doc(doc_id, embedding, lat=None, lon=None, doc_type="feature", tags=(), confidence=None,
             timestamp=None, content=None):
    from georag.common.schemas import Coordinates, DocumentMetadata, GeographicDocument

    location = Coordinates(latitude=lat, longitude=lon) if lat is not None else None
    metadata = DocumentMetadata(
        doc_type=doc_type,
        location=location,
        tags=set(tags),
        confidence=confidence,
        timestamp=timestamp or datetime(2024, 6, 1, tzinfo=timezone.utc),
    )
    return GeographicDocument(
        id=doc_id,
        content=content or doc_id,
        metadata=metadata,
        embedding=embedding,
    )


class TestSimilarity:
    def test_cosine_symmetric(self):
        from georag.retriever.vector_store import cosine_similarity

        a, b = [1.0, 2.0, 3.0], [-2.0, 0.5, 4.0]

        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_cosine_identity(self):
        from georag.retriever.vector_store import cosine_similarity

        assert cosine_similarity([0.3, -0.4, 5.0], [0.3, -0.4, 5.0]) == pytest.approx(1.0)

    def test_cosine_zero_vector(self):
        from georag.retriever.vector_store import cosine_similarity

        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_cosine_length_mismatch_raises(self):
        from georag.retriever.vector_store import cosine_similarity

        with pytest.raises(ValueError, match="mismatch"):
            cosine_similarity([1.0, 0.0], [1.0, 0.0, 0.0])

    def test_combined_score_monotonic_in_spatial_relevance(self):
        from georag.retriever.vector_store import combine_scores

        relevances = [i / 10 for i in range(11)]
        for weight in (0.1, 0.3, 0.9):
            scores = [combine_scores(0.42, r, weight) for r in relevances]
            assert scores == sorted(scores)

    def test_spatial_relevance_neutral_without_location(self):
        from georag.common.schemas import Coordinates
        from georag.retriever.vector_store import NEUTRAL_SPATIAL_RELEVANCE, spatial_relevance

        point = Coordinates(latitude=1, longitude=1)

        assert spatial_relevance(None, point, 100) == NEUTRAL_SPATIAL_RELEVANCE
        assert spatial_relevance(point, None, 100) == NEUTRAL_SPATIAL_RELEVANCE
        assert spatial_relevance(point, point, 100) == pytest.approx(1.0)


class TestGeographicVectorStore:
    @pytest.fixture
    def store(self):
        from georag.retriever.vector_store import GeographicVectorStore
        return GeographicVectorStore()

    def test_search_ranks_by_similarity_without_location(self, store):
        from georag.retriever.vector_store import RAGQuery

        store.add_documents([
            make_doc("close", [1.0, 0.1]),
            make_doc("far", [0.0, 1.0]),
        ])

        results = store.search([1.0, 0.0], RAGQuery(text="q"))

        assert [r.doc_id for r in results] == ["close", "far"]
        assert all(r.spatial_relevance == 0.5 for r in results)
        assert results[0].combined_score == pytest.approx(0.7 * results[0].similarity + 0.3 * 0.5)

    def test_spatial_candidates_restrict_results(self, store):
        from georag.common.schemas import Coordinates
        from georag.retriever.vector_store import RAGQuery

        store.add_documents([
            make_doc("sf", [1.0, 0.0], 37.7749, -122.4194),
            make_doc("la", [1.0, 0.0], 34.0522, -118.2437),
        ])

        query = RAGQuery(text="q", location=Coordinates(latitude=37.78, longitude=-122.42), radius=50)
        results = store.search([1.0, 0.0], query)

        assert [r.doc_id for r in results] == ["sf"]

    def test_fallback_to_all_documents_when_no_spatial_candidates(self, store):
        from georag.common.schemas import Coordinates
        from georag.retriever.vector_store import RAGQuery

        store.add_document(make_doc("la", [1.0, 0.0], 34.0522, -118.2437))

        query = RAGQuery(text="q", location=Coordinates(latitude=0.0, longitude=0.0), radius=10)
        results = store.search([1.0, 0.0], query)

        assert [r.doc_id for r in results] == ["la"]
        assert results[0].spatial_relevance < 1e-6

    def test_spatial_candidates_across_antimeridian(self, store):
        from georag.common.schemas import Coordinates
        from georag.retriever.vector_store import RAGQuery

        store.add_documents([
            make_doc("suva_side", [1.0, 0.0], -16.8, -179.95),
            make_doc("elsewhere", [1.0, 0.0], -16.8, 170.0),
        ])

        query = RAGQuery(text="q", location=Coordinates(latitude=-16.8, longitude=179.95), radius=50)
        results = store.search([1.0, 0.0], query)

        assert [r.doc_id for r in results] == ["suva_side"]
        assert results[0].spatial_relevance > 0.1

    def test_nearer_document_ranks_higher(self, store):
        from georag.common.schemas import Coordinates
        from georag.retriever.vector_store import RAGQuery

        store.add_documents([
            make_doc("near", [1.0, 0.0], 10.01, 10.01),
            make_doc("farther", [1.0, 0.0], 10.3, 10.3),
        ])

        query = RAGQuery(text="q", location=Coordinates(latitude=10.0, longitude=10.0), radius=100)
        results = store.search([1.0, 0.0], query)

        assert [r.doc_id for r in results] == ["near", "farther"]
        assert results[0].spatial_relevance > results[1].spatial_relevance

    def test_query_vector_compared_with_leading_components(self, store):
        from georag.retriever.vector_store import RAGQuery

        # Two trailing components stand in for spatial features
        store.add_document(make_doc("doc", [1.0, 0.0, 0.7, -0.2]))

        results = store.search([1.0, 0.0], RAGQuery(text="q"))

        assert results[0].similarity == pytest.approx(1.0)

    def test_shorter_document_vector_raises(self, store):
        from georag.retriever.vector_store import RAGQuery

        store.add_document(make_doc("doc", [1.0]))

        with pytest.raises(ValueError):
            store.search([1.0, 0.0], RAGQuery(text="q"))

    def test_documents_without_embedding_skipped(self, store):
        from georag.retriever.vector_store import RAGQuery

        store.add_document(make_doc("bare", None))
        store.add_document(make_doc("embedded", [1.0, 0.0]))

        results = store.search([1.0, 0.0], RAGQuery(text="q"))

        assert [r.doc_id for r in results] == ["embedded"]

    def test_filters_combine_with_and(self, store):
        from georag.retriever.vector_store import RAGQuery, SearchFilters

        store.add_documents([
            make_doc("match", [1.0, 0.0], doc_type="report", tags=["water"], confidence=0.9),
            make_doc("wrong-type", [1.0, 0.0], doc_type="feature", tags=["water"], confidence=0.9),
            make_doc("wrong-tag", [1.0, 0.0], doc_type="report", tags=["urban"], confidence=0.9),
            make_doc("low-confidence", [1.0, 0.0], doc_type="report", tags=["water"], confidence=0.2),
            make_doc("no-confidence", [1.0, 0.0], doc_type="report", tags=["water"]),
        ])

        filters = SearchFilters(types=["report"], tags=["water"], min_confidence=0.5)
        results = store.search([1.0, 0.0], RAGQuery(text="q", filters=filters))

        assert sorted(r.doc_id for r in results) == ["match", "no-confidence"]

    def test_date_range_filter(self, store):
        from georag.retriever.vector_store import RAGQuery, SearchFilters

        store.add_documents([
            make_doc("old", [1.0, 0.0], timestamp=datetime(2020, 1, 1, tzinfo=timezone.utc)),
            make_doc("new", [1.0, 0.0], timestamp=datetime(2024, 3, 15, tzinfo=timezone.utc)),
        ])

        filters = SearchFilters(start_date=date(2024, 1, 1), end_date=date(2024, 12, 31))
        results = store.search([1.0, 0.0], RAGQuery(text="q", filters=filters))

        assert [r.doc_id for r in results] == ["new"]

    def test_results_truncated_to_max(self):
        from georag.retriever.vector_store import GeographicVectorStore, RAGQuery

        store = GeographicVectorStore(max_results=3)
        store.add_documents([make_doc(f"d{i}", [1.0, i / 10]) for i in range(8)])

        results = store.search([1.0, 0.0], RAGQuery(text="q"))

        assert len(results) == 3
        scores = [r.combined_score for r in results]
        assert scores == sorted(scores, reverse=True)

    def test_add_is_idempotent_per_id(self, store):
        store.add_document(make_doc("doc", [1.0, 0.0], 10.0, 10.0))
        store.add_document(make_doc("doc", [0.0, 1.0], 20.0, 20.0))

        stats = store.get_stats()

        assert stats["total_documents"] == 1
        assert stats["spatial_grid_cells"] == 1
        assert store.get_document("doc").metadata.location.latitude == 20.0

    def test_remove_document(self, store):
        store.add_document(make_doc("doc", [1.0, 0.0], 10.0, 10.0))

        assert store.remove_document("doc") is True
        assert store.remove_document("doc") is False
        assert store.get_stats() == {
            "total_documents": 0,
            "documents_with_embeddings": 0,
            "documents_with_location": 0,
            "spatial_grid_cells": 0,
        }
