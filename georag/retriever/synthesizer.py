"""
Synthesizer

Answer synthesis from ranked geographic sources.

Default is a templated answer grouped by document type. When an LLM client
is available it writes the answer instead, grounded in the same sources;
any LLM failure falls back to the template.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..common.llm_client import LLMClient
from ..common.schemas import Coordinates, DocumentType
from .vector_store import RAGQuery, SearchResult

logger = logging.getLogger("georag.retriever.synthesizer")

INSUFFICIENT_INFORMATION = (
    "I don't have enough information to answer your question about this geographic area. "
    "Please try a different query or expand your search radius."
)

LOW_CONFIDENCE_NOTE = (
    "Note: This information has moderate confidence. "
    "Consider expanding your search or consulting additional sources."
)

LOW_CONFIDENCE_THRESHOLD = 0.7

# Heading and number of listed sources per document type
SECTIONS = {
    DocumentType.FEATURE: ("Geographic Features", 3),
    DocumentType.ANALYSIS: ("Satellite Analysis Insights", 2),
    DocumentType.REPORT: ("Reports", 2),
    DocumentType.OBSERVATION: ("Observations", 2),
}

SYNTHESIS_PROMPT = """You answer geographic questions using only the records below.

Rules:
1. ONLY use information from the provided records. Do NOT make up information.
2. Cite records by their ID in brackets, like [feature-42].
3. If the records do not answer the question, say so.
4. Be concise.

Question: {query}
{location_line}
Records:
{records}

Answer:"""


@dataclass
class SpatialScope:
    """Spatial framing of a response"""
    query_location: Optional[Coordinates] = None
    relevant_regions: List[str] = field(default_factory=list)
    spatial_scope: str = "global"


def spatial_scope_label(query: RAGQuery) -> str:
    """local (<=10 km), regional (<=100 km), national otherwise, global without a location"""
    if query.location is None:
        return "global"
    if query.radius and query.radius <= 10:
        return "local"
    if query.radius and query.radius <= 100:
        return "regional"
    return "national"


def mean_combined_score(sources: List[SearchResult]) -> float:
    if not sources:
        return 0.0
    return sum(s.combined_score for s in sources) / len(sources)


def calculate_confidence(sources: List[SearchResult]) -> float:
    """Mean combined score plus a small diversity bonus, capped at 1.0"""
    if not sources:
        return 0.0
    diversity_bonus = min(len(sources) / 5, 1.0) * 0.1
    return min(1.0, mean_combined_score(sources) + diversity_bonus)


class Synthesizer:
    """
    Synthesizes answers from search results.

    Falls back to template formatting if no LLM is available.
    """

    def __init__(self, llm_client: Optional[LLMClient] = None):
        self._llm = llm_client

    @property
    def has_llm(self) -> bool:
        return self._llm is not None and self._llm.is_available

    def synthesize(self, query: RAGQuery, sources: List[SearchResult]) -> str:
        if not sources:
            return INSUFFICIENT_INFORMATION

        if self.has_llm:
            try:
                return self._synthesize_with_llm(query, sources)
            except Exception as e:
                logger.warning("LLM synthesis failed, using template answer: %s", e)

        return self.template_answer(query, sources)

    def analyze_spatial_context(self, query: RAGQuery, sources: List[SearchResult]) -> SpatialScope:
        regions: List[str] = []
        for source in sources:
            context = source.document.spatial_context
            if context is not None and context.region and context.region not in regions:
                regions.append(context.region)

        return SpatialScope(
            query_location=query.location,
            relevant_regions=regions,
            spatial_scope=spatial_scope_label(query),
        )

    def template_answer(self, query: RAGQuery, sources: List[SearchResult]) -> str:
        parts = ["Based on the available geographic data, here's what I found:\n"]

        grouped: Dict[DocumentType, List[SearchResult]] = {}
        for source in sources:
            grouped.setdefault(source.document.metadata.doc_type, []).append(source)

        for doc_type, (heading, limit) in SECTIONS.items():
            group = grouped.get(doc_type)
            if not group:
                continue
            lines = [f"{heading}:"]
            for i, source in enumerate(group[:limit], 1):
                lines.append(f"{i}. {_first_sentence(source.document.content)}")
            parts.append("\n".join(lines) + "\n")

        if query.location is not None:
            sentence = (
                f"This information is relevant to the area around coordinates "
                f"{query.location.latitude:.4f}, {query.location.longitude:.4f}"
            )
            if query.radius:
                sentence += f" within a {query.radius:g}km radius"
            parts.append(sentence + ".\n")

        if mean_combined_score(sources) < LOW_CONFIDENCE_THRESHOLD:
            parts.append(LOW_CONFIDENCE_NOTE)

        return "\n".join(parts).rstrip() + "\n"

    def _synthesize_with_llm(self, query: RAGQuery, sources: List[SearchResult]) -> str:
        records = "\n".join(
            f"---\n[{s.document.id}] ({s.document.metadata.doc_type.value}, "
            f"score {s.combined_score:.2f})\n{s.document.content[:800]}"
            for s in sources
        )
        location_line = ""
        if query.location is not None:
            location_line = (
                f"Area of interest: {query.location.latitude:.4f}, {query.location.longitude:.4f}"
                + (f" within {query.radius:g} km" if query.radius else "")
                + "\n"
            )

        prompt = SYNTHESIS_PROMPT.format(query=query.text, location_line=location_line, records=records)
        return self._llm.generate(prompt, max_tokens=1024)


def _first_sentence(content: str) -> str:
    line = content.strip().split("\n")[0]
    # Decimal points in coordinates are not sentence ends
    sentence = re.split(r"(?<=[.!?])\s+", line)[0].strip()
    if sentence and not sentence.endswith((".", "!", "?")):
        sentence += "."
    return sentence
