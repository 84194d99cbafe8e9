"""
Relevance Scorer

Weighted factor model producing a 0-1 relevance score per context entry.

Factors and default weights:
- recency (0.25): max(floor, 1 - age_hours / window), floor 0.1 after 24h
- quality (0.25): the item's quality signal
- query_match (0.20): share of query terms found in the item text
- importance (0.15): numeric priority of the importance tier
- frequency (0.10): access_count / (access_count + 3)
- cross_reference (0.05): min(1, linked items / 3)

Query matching is pluggable through QueryMatcher so a semantic matcher can
replace the lexical one without touching callers.
"""

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import UTC, datetime

from ..config.schemas import WEIGHT_SUM_TOLERANCE, RelevanceConfig
from ..context.models import (
    ContextItem,
    ContextSnapshot,
    ImportanceTier,
    ItemType,
    SystemState,
    SystemStatus,
    UserProfile,
)
from ..errors import ConfigurationError
from .models import RelevanceFactor, RelevanceResult

logger = logging.getLogger(__name__)

_WORD = re.compile(r"\w+")

FACTOR_NAMES = ("recency", "quality", "query_match", "importance", "frequency", "cross_reference")


class QueryMatcher(ABC):
    """Scores how well a text answers a query."""

    @abstractmethod
    def match(self, text: str, query: str) -> float | None:
        """
        Return a 0-1 match score, or None when the query has no usable terms.
        """
        pass


class LexicalQueryMatcher(QueryMatcher):
    """Fraction of query terms that occur as case-insensitive substrings of the text."""

    def __init__(self, min_token_length: int = 3):
        self.min_token_length = min_token_length

    def terms(self, query: str) -> list[str]:
        return [t for t in _WORD.findall(query.lower()) if len(t) >= self.min_token_length]

    def match(self, text: str, query: str) -> float | None:
        terms = self.terms(query)
        if not terms:
            return None
        haystack = text.lower()
        found = sum(1 for term in terms if term in haystack)
        return found / len(terms)


class RelevanceScorer:
    """
    Deterministic weighted relevance scorer.

    The clock is only consulted for the recency factor; pass `now`
    explicitly to score a whole snapshot against a single instant.
    """

    def __init__(
        self,
        config: RelevanceConfig | None = None,
        matcher: QueryMatcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.config = config or RelevanceConfig()
        self.matcher = matcher or LexicalQueryMatcher(self.config.min_query_token_length)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.weights = self.config.weights.as_dict()
        self._validate_weights()

    def _validate_weights(self) -> None:
        missing = [name for name in FACTOR_NAMES if name not in self.weights]
        if missing:
            raise ConfigurationError("Relevance weights missing factors", details={"missing": missing})
        total = sum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_SUM_TOLERANCE:
            raise ConfigurationError(
                f"Relevance weights must sum to 1.0, got {total!r}",
                details={"weights": self.weights},
            )

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------
    # Factors
    # ------------------------------------------------------------------

    def recency_factor(self, timestamp: datetime, now: datetime | None = None) -> float:
        """Linear decay to the configured floor; never increases with age."""
        now = now or self.now()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=UTC)
        age_hours = max(0.0, (now - timestamp).total_seconds() / 3600)
        return max(self.config.recency_floor, 1.0 - age_hours / self.config.recency_window_hours)

    def query_factor(self, text: str, query: str | None) -> float:
        if not query:
            return self.config.neutral_query_score
        score = self.matcher.match(text, query)
        if score is None:
            return self.config.neutral_query_score
        return min(1.0, max(0.0, score))

    @staticmethod
    def frequency_factor(access_count: int) -> float:
        return access_count / (access_count + 3)

    @staticmethod
    def cross_reference_factor(linked: int) -> float:
        return min(1.0, linked / 3)

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def _combine(self, item_id: str, item_type: ItemType, values: dict[str, float]) -> RelevanceResult:
        factors = tuple(
            RelevanceFactor(name=name, value=min(1.0, max(0.0, values[name])), weight=self.weights[name])
            for name in FACTOR_NAMES
        )
        total = sum(f.contribution for f in factors)
        return RelevanceResult(
            item_id=item_id,
            item_type=item_type,
            final_score=min(1.0, max(0.0, total)),
            factors=factors,
        )

    def score(self, item: ContextItem, query: str | None = None, now: datetime | None = None) -> RelevanceResult:
        """Score a conversation, knowledge or external item."""
        values = {
            "recency": self.recency_factor(item.timestamp, now),
            "quality": item.quality_signal(),
            "query_match": self.query_factor(item.content, query),
            "importance": item.importance.priority,
            "frequency": self.frequency_factor(item.access_count),
            "cross_reference": self.cross_reference_factor(len(item.linked_ids)),
        }
        return self._combine(item.id, item.item_type, values)

    def score_profile(self, profile: UserProfile, query: str | None = None) -> RelevanceResult:
        """Profile is always current; its importance is fixed at the important tier."""
        searchable = " ".join([profile.summary, *profile.subjects, *profile.strengths, *profile.weaknesses])
        values = {
            "recency": 1.0,
            "quality": 1.0 if profile.summary else 0.5,
            "query_match": self.query_factor(searchable, query),
            "importance": ImportanceTier.IMPORTANT.priority,
            "frequency": 0.5,
            "cross_reference": 0.5,
        }
        return self._combine(f"profile:{profile.user_id}", ItemType.PROFILE, values)

    def score_system(self, system: SystemStatus, query: str | None = None) -> RelevanceResult:
        """System status matters more when something is not operational."""
        values = {
            "recency": 1.0,
            "quality": 0.5,
            "query_match": self.query_factor(system.render(), query),
            "importance": 0.9 if system.status != SystemState.OPERATIONAL else ImportanceTier.CONTEXTUAL.priority,
            "frequency": 0.0,
            "cross_reference": 0.0,
        }
        return self._combine("system", ItemType.SYSTEM, values)

    def score_snapshot(self, snapshot: ContextSnapshot, query: str | None = None) -> list[RelevanceResult]:
        """
        Score every entry of a snapshot against one instant.

        Returns:
            Results sorted by score descending, ties broken by item id
        """
        query = query if query is not None else snapshot.query
        now = self.now()
        results = [self.score(item, query, now) for item in snapshot.items()]
        if snapshot.profile is not None:
            results.append(self.score_profile(snapshot.profile, query))
        if snapshot.system is not None:
            results.append(self.score_system(snapshot.system, query))
        results.sort(key=lambda r: (-r.final_score, r.item_id))
        return results

    def score_map(self, snapshot: ContextSnapshot, query: str | None = None) -> dict[str, float]:
        """Final scores of the snapshot's items keyed by item id."""
        query = query if query is not None else snapshot.query
        now = self.now()
        return {item.id: self.score(item, query, now).final_score for item in snapshot.items()}
