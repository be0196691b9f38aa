"""
GeoRAG

Natural-language geographic question answering over an in-memory spatial
index and a spatially aware vector store.

Philosophy:
- Two independent indexes over the same entities (features and documents)
- Hybrid ranking: cosine similarity blended with geographic distance decay
- Rule-based query understanding, no learned parser
- Every external lookup (embedding, geocoding, LLM) is an injected capability

Usage:
    from georag.common import load_config
    from georag.query import build_engine

    engine = build_engine(load_config())
    await engine.ingest_features(features)
    result = await engine.process_query("Find parks within 50km of 34.05,-118.24")
"""

__version__ = "0.1.0"
