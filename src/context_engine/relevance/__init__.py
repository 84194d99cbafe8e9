"""
Relevance Module

Weighted relevance scoring with a pluggable query matcher.
"""

from .models import RelevanceFactor, RelevanceResult
from .scorer import FACTOR_NAMES, LexicalQueryMatcher, QueryMatcher, RelevanceScorer

__all__ = [
    "RelevanceScorer",
    "QueryMatcher",
    "LexicalQueryMatcher",
    "RelevanceResult",
    "RelevanceFactor",
    "FACTOR_NAMES",
]
