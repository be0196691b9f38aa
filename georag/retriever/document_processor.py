"""
Document Processor

Turns geographic features into retrievable documents and splits long
documents into overlapping sentence chunks.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Set

from ..common.schemas import (
    DocumentMetadata,
    DocumentType,
    GeographicDocument,
    GeographicFeature,
    GeometryType,
    SpatialContext,
)


@dataclass
class ChunkingStrategy:
    """How to split long documents"""
    name: str = "sentence"
    chunk_size: int = 500  # characters
    overlap: int = 1  # sentences carried into the next chunk


def features_to_documents(features: List[GeographicFeature]) -> List[GeographicDocument]:
    """Convert features to feature documents (one per feature)"""
    return [feature_to_document(feature) for feature in features]


def feature_to_document(feature: GeographicFeature) -> GeographicDocument:
    metadata = feature.metadata
    is_point = feature.geometry_type == GeometryType.POINT

    confidence = None
    if metadata is not None and metadata.accuracy is not None:
        confidence = metadata.accuracy / 100

    return GeographicDocument(
        id=f"feature-{feature.id}",
        content=feature_to_text(feature),
        metadata=DocumentMetadata(
            doc_type=DocumentType.FEATURE,
            location=feature.geometry if is_point else None,
            bounds=None if is_point else feature.bounds(),
            timestamp=(metadata.timestamp if metadata and metadata.timestamp else datetime.now(timezone.utc)),
            source=(metadata.source if metadata and metadata.source else "unknown"),
            tags=_feature_tags(feature),
            confidence=confidence,
        ),
        spatial_context=SpatialContext(
            region=_determine_region(feature),
            climate=_determine_climate(feature),
            elevation=feature.properties.get("elevation"),
        ),
    )


def feature_to_text(feature: GeographicFeature) -> str:
    text = f"{feature.name} is a {feature.geometry_type.value}"

    if feature.geometry_type == GeometryType.POINT:
        coords = feature.geometry
        text += f" located at coordinates {coords.latitude:.4f}, {coords.longitude:.4f}"

    properties = ", ".join(
        f"{key}: {value}" for key, value in feature.properties.items() if value is not None
    )
    if properties:
        text += f". Properties include: {properties}"

    if feature.metadata is not None and feature.metadata.source:
        text += f". Data source: {feature.metadata.source}"

    return text


def chunk_document(document: GeographicDocument, strategy: ChunkingStrategy) -> List[GeographicDocument]:
    """
    Split a document on sentence boundaries.

    Documents no longer than ``strategy.chunk_size`` are returned as-is.
    Chunks share the parent's metadata plus a ``chunk`` tag and get ids
    ``<parent>-chunk-<n>``.
    """
    if len(document.content) <= strategy.chunk_size:
        return [document]

    sentences = _split_sentences(document.content)
    chunks: List[GeographicDocument] = []
    current: List[str] = []

    for index, sentence in enumerate(sentences):
        if current and len(" ".join(current + [sentence])) > strategy.chunk_size:
            chunks.append(_make_chunk(document, current, len(chunks)))
            start = max(0, index - strategy.overlap) if strategy.overlap > 0 else index
            current = sentences[start:index]
        current.append(sentence)

    if current:
        chunks.append(_make_chunk(document, current, len(chunks)))

    return chunks


def _make_chunk(document: GeographicDocument, sentences: List[str], index: int) -> GeographicDocument:
    metadata = document.metadata.model_copy(update={"tags": set(document.metadata.tags) | {"chunk"}})
    return document.model_copy(update={
        "id": f"{document.id}-chunk-{index}",
        "content": " ".join(sentences),
        "metadata": metadata,
        "embedding": None,
    })


def _split_sentences(text: str) -> List[str]:
    return [s.strip() + "." for s in re.split(r"[.!?]+", text) if s.strip()]


def _feature_tags(feature: GeographicFeature) -> Set[str]:
    tags = {feature.geometry_type.value}
    props = feature.properties

    if props.get("type"):
        tags.add(str(props["type"]))
    if props.get("state"):
        tags.add(str(props["state"]).lower())
    if props.get("country"):
        tags.add(str(props["country"]).lower())

    elevation = props.get("elevation")
    if elevation:
        if elevation > 3000:
            tags.add("high_altitude")
        elif elevation > 1000:
            tags.add("medium_altitude")
        else:
            tags.add("low_altitude")

    return tags


def _determine_region(feature: GeographicFeature) -> str:
    state = feature.properties.get("state")
    country = feature.properties.get("country")
    if state and country:
        return f"{state}, {country}"
    if country:
        return str(country)

    if feature.geometry_type == GeometryType.POINT:
        coords = feature.geometry
        hemisphere = "Northern" if coords.latitude > 0 else "Southern"
        side = "East" if coords.longitude > 0 else "West"
        return f"{hemisphere} Hemisphere ({side})"

    return "Unknown Region"


def _determine_climate(feature: GeographicFeature) -> str:
    """Coarse latitude-band climate; non-point features default to temperate"""
    if feature.geometry_type != GeometryType.POINT:
        return "temperate"

    abs_lat = abs(feature.geometry.latitude)
    if abs_lat > 66.5:
        return "polar"
    if abs_lat > 40:
        return "temperate"
    if abs_lat > 23.5:
        return "subtropical"
    return "tropical"
