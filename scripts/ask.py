#!/usr/bin/env python3
"""
Ask GeoRAG

Loads geographic features from a JSON file, indexes them and answers
natural language queries from the command line.

Usage:
    python scripts/ask.py features.json "Find parks within 50km of 34.05, -118.24"
    python scripts/ask.py features.json --gazetteer places.json "Find parks near Los Angeles"
    python scripts/ask.py --suggest "find"
"""

import sys
import json
import asyncio
import logging
import argparse
from pathlib import Path
from typing import Dict, List

from pydantic import TypeAdapter, ValidationError

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def load_features(path: Path):
    from georag.common.schemas import GeographicFeature

    with open(path) as f:
        return TypeAdapter(List[GeographicFeature]).validate_python(json.load(f))


def load_gazetteer(path: Path):
    from georag.common.geocoding import GazetteerGeocoder
    from georag.common.schemas import Coordinates

    with open(path) as f:
        places = TypeAdapter(Dict[str, Coordinates]).validate_python(json.load(f))
    return GazetteerGeocoder(places)


async def run(args) -> int:
    from georag.common.config import load_config
    from georag.query import build_engine, format_result_for_display

    try:
        features = load_features(args.features)
        geocoder = load_gazetteer(args.gazetteer) if args.gazetteer else None
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        print(f"[GeoRAG] ERROR: {e}")
        return 1

    engine = build_engine(load_config(), geocoder=geocoder)
    count = await engine.ingest_features(features)
    print(f"[GeoRAG] Indexed {count} features")

    failures = 0
    for query in args.queries:
        print(f"\n> {query}")
        result = await engine.process_query(query)
        print(format_result_for_display(result))
        if not result.success:
            failures += 1

    if args.stats:
        print(json.dumps(engine.get_stats(), indent=2))

    return 1 if failures else 0


def main():
    parser = argparse.ArgumentParser(description="Answer geographic questions over a feature file")
    parser.add_argument("features", type=Path, nargs="?", help="JSON file with a list of features")
    parser.add_argument("queries", nargs="*", help="Natural language queries")
    parser.add_argument("--gazetteer", type=Path, help="JSON object mapping place names to coordinates")
    parser.add_argument("--suggest", type=str, help="Print query suggestions for a partial query and exit")
    parser.add_argument("--stats", action="store_true", help="Print engine statistics after answering")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    if args.suggest is not None:
        from georag.query.engine import suggest_queries

        for suggestion in suggest_queries(args.suggest):
            print(suggestion)
        return

    if args.features is None or not args.queries:
        parser.error("a features file and at least one query are required")

    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
