"""
Context Engine - Relevance Scorer Tests

Tests factor computation, weighting and deterministic ordering.
"""

from datetime import timedelta

import pytest

from context_engine.config import RelevanceConfig, RelevanceWeights
from context_engine.context import ContextSnapshot, ImportanceTier, ItemType, SystemState, SystemStatus, UserProfile
from context_engine.errors import ConfigurationError
from context_engine.relevance import FACTOR_NAMES, LexicalQueryMatcher, QueryMatcher, RelevanceScorer


class TestFactors:
    """Test suite for individual relevance factors."""

    def test_recency_is_monotonic(self, scorer: RelevanceScorer, now) -> None:
        """Test that recency never increases with age."""
        ages = [0, 1, 6, 12, 23, 24, 48, 500]
        values = [scorer.recency_factor(now - timedelta(hours=h), now) for h in ages]
        assert values == sorted(values, reverse=True)
        assert values[0] == 1.0
        assert values[-1] == pytest.approx(0.1)

    def test_future_timestamp_counts_as_now(self, scorer: RelevanceScorer, now) -> None:
        """Test that clock skew cannot push recency above 1."""
        assert scorer.recency_factor(now + timedelta(hours=3), now) == 1.0

    def test_frequency_and_cross_reference(self) -> None:
        """Test saturating frequency and cross-reference factors."""
        assert RelevanceScorer.frequency_factor(0) == 0.0
        assert RelevanceScorer.frequency_factor(3) == 0.5
        assert RelevanceScorer.cross_reference_factor(6) == 1.0

    def test_neutral_query_factor(self, scorer: RelevanceScorer) -> None:
        """Test the neutral value when no query is given."""
        assert scorer.query_factor("anything", None) == 0.5
        assert scorer.query_factor("anything", "a an") == 0.5

    def test_lexical_match(self) -> None:
        """Test case-insensitive term coverage."""
        matcher = LexicalQueryMatcher()
        assert matcher.match("Triangles and Circles", "triangle circle square") == pytest.approx(2 / 3)
        assert matcher.match("anything", "of to") is None


class TestScoring:
    """Test suite for composite scores."""

    def test_score_in_unit_interval(self, scorer: RelevanceScorer, mixed_snapshot: ContextSnapshot) -> None:
        """Test bounds and factor bookkeeping."""
        for result in scorer.score_snapshot(mixed_snapshot):
            assert 0.0 <= result.final_score <= 1.0
            assert tuple(f.name for f in result.factors) == FACTOR_NAMES
            assert result.final_score == pytest.approx(sum(f.contribution for f in result.factors))

    def test_weighted_sum(self, scorer: RelevanceScorer, make_turn) -> None:
        """Test the exact weighted composite for a fresh, unqueried item."""
        turn = make_turn("t", "hello", hours_ago=0, quality_score=0.8, importance=ImportanceTier.IMPORTANT)
        result = scorer.score(turn)
        expected = 0.25 * 1.0 + 0.25 * 0.8 + 0.20 * 0.5 + 0.15 * 0.8 + 0.10 * 0.0 + 0.05 * 0.0
        assert result.final_score == pytest.approx(expected)
        assert result.factor("quality").value == 0.8

    def test_query_raises_matching_items(self, scorer: RelevanceScorer, make_turn) -> None:
        """Test that a matching query scores higher than a non-matching one."""
        turn = make_turn("t", "We discussed quadratic equations")
        assert scorer.score(turn, "quadratic").final_score > scorer.score(turn, "photosynthesis").final_score

    def test_snapshot_ordering_is_deterministic(self, scorer: RelevanceScorer, make_turn) -> None:
        """Test descending order with ties broken by id."""
        turns = tuple(make_turn(f"t{i}", "same text", hours_ago=5) for i in (3, 1, 2))
        snapshot = ContextSnapshot(user_id="u", conversation=turns)
        ids = [r.item_id for r in scorer.score_snapshot(snapshot)]
        assert ids == ["t1", "t2", "t3"]

    def test_profile_and_system_scored(self, scorer: RelevanceScorer) -> None:
        """Test that profile and system status appear in snapshot scores."""
        snapshot = ContextSnapshot(
            user_id="u",
            profile=UserProfile(user_id="u", summary="geometry", token_count=2),
            system=SystemStatus(status=SystemState.DEGRADED, token_count=3),
        )
        results = {r.item_id: r for r in scorer.score_snapshot(snapshot)}
        assert results["profile:u"].item_type == ItemType.PROFILE
        assert results["system"].factor("importance").value == 0.9

    def test_custom_matcher(self, clock, make_turn) -> None:
        """Test that the query matcher is pluggable."""

        class AlwaysMatch(QueryMatcher):
            def match(self, text: str, query: str) -> float | None:
                return 1.0

        scorer = RelevanceScorer(matcher=AlwaysMatch(), clock=clock)
        assert scorer.score(make_turn("t", "x"), "zzz").factor("query_match").value == 1.0


class TestWeightValidation:
    """Test suite for weight validation."""

    def test_missing_factor_rejected(self) -> None:
        """Test that a scorer refuses weights without every factor."""
        scorer = RelevanceScorer()
        scorer.weights = {"recency": 1.0}
        with pytest.raises(ConfigurationError):
            scorer._validate_weights()

    def test_custom_weights_used(self, clock, make_turn) -> None:
        """Test that configured weights drive the composite."""
        weights = RelevanceWeights(
            recency=1.0, quality=0.0, query_match=0.0, importance=0.0, frequency=0.0, cross_reference=0.0
        )
        scorer = RelevanceScorer(RelevanceConfig(weights=weights), clock=clock)
        assert scorer.score(make_turn("t", "x", hours_ago=0)).final_score == pytest.approx(1.0)
