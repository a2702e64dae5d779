"""Gợi ý collection: heuristic (cục bộ) và LLM, chung interface CollectionSuggester."""
from ingest_core.matching.associate import associate_suggestions
from ingest_core.matching.base import CollectionSuggester
from ingest_core.matching.heuristic import HeuristicSuggester, MatchingRules
from ingest_core.matching.llm import LlmSuggester

__all__ = [
    "associate_suggestions",
    "CollectionSuggester",
    "HeuristicSuggester",
    "LlmSuggester",
    "MatchingRules",
]
