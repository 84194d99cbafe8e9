"""
Quality retention metrics and recommendations.

Metrics compare the optimized snapshot against a baseline captured from the
original snapshot before any strategy runs, so they never depend on
partially transformed data.
"""

from dataclasses import dataclass
from datetime import datetime

from ..config.schemas import BudgetStrategy, OptimizationStrategy
from ..context.models import ContextSnapshot
from .models import QualityMetrics

RECENT_RETENTION_REQUIRED = 0.8
LOW_RELEVANCE_RETENTION = 0.8
SMALL_STRICT_BUDGET = 1000

STRATEGY_RECOMMENDATIONS: dict[OptimizationStrategy, str] = {
    OptimizationStrategy.COMPRESSION: "Compression keeps every item; use summarization or hierarchical for deeper cuts",
    OptimizationStrategy.TRUNCATION: "Truncation removed whole items; review preserve flags to keep fresh conversation",
    OptimizationStrategy.SUMMARIZATION: "Summaries keep key sentences; mark essential turns critical to keep them intact",
    OptimizationStrategy.RELEVANCE_FILTERING: "Supply a query to sharpen relevance filtering",
    OptimizationStrategy.HIERARCHICAL: "Hierarchical rules balance reduction and quality for mixed contexts",
}


@dataclass(frozen=True)
class QualityBaseline:
    """Measurements of the original snapshot."""

    scores: dict[str, float]
    item_ids: frozenset[str]
    critical_ids: frozenset[str]
    recent_conversation_ids: frozenset[str]
    total_tokens: int

    @classmethod
    def capture(
        cls,
        snapshot: ContextSnapshot,
        scores: dict[str, float],
        now: datetime,
        recent_window_hours: float,
    ) -> "QualityBaseline":
        return cls(
            scores=dict(scores),
            item_ids=frozenset(snapshot.item_ids()),
            critical_ids=frozenset(item.id for item in snapshot.items() if item.is_critical),
            recent_conversation_ids=frozenset(
                turn.id for turn in snapshot.conversation if turn.age_hours(now) < recent_window_hours
            ),
            total_tokens=snapshot.total_tokens,
        )


def measure_quality(baseline: QualityBaseline, optimized: ContextSnapshot) -> QualityMetrics:
    """
    Retention of the baseline in the optimized snapshot.

    - relevance: surviving items' summed scores / original summed scores
    - completeness: surviving item count / original item count
    - critical: every original critical item is still present
    - recent: at least 80% of recent conversation turns are still present
    """
    surviving = optimized.item_ids() & baseline.item_ids

    original_mass = sum(baseline.scores.get(item_id, 0.0) for item_id in baseline.item_ids)
    surviving_mass = sum(baseline.scores.get(item_id, 0.0) for item_id in surviving)
    relevance = surviving_mass / original_mass if original_mass > 0 else 1.0

    completeness = len(surviving) / len(baseline.item_ids) if baseline.item_ids else 1.0

    recent_kept = len(baseline.recent_conversation_ids & surviving)
    recent_ok = (
        recent_kept >= RECENT_RETENTION_REQUIRED * len(baseline.recent_conversation_ids)
        if baseline.recent_conversation_ids
        else True
    )

    return QualityMetrics(
        relevance_retention=min(1.0, relevance),
        completeness_retention=min(1.0, completeness),
        critical_info_preserved=baseline.critical_ids <= surviving,
        recent_info_preserved=recent_ok,
    )


def build_recommendations(
    strategy: OptimizationStrategy,
    budget_strategy: BudgetStrategy,
    quality: QualityMetrics,
    max_tokens: int,
) -> list[str]:
    recommendations = [STRATEGY_RECOMMENDATIONS[strategy]]
    if quality.relevance_retention < LOW_RELEVANCE_RETENTION:
        recommendations.append("Relevance retention is low; consider a larger token budget or relevance filtering")
    if not quality.critical_info_preserved:
        recommendations.append("Critical information was lost; enable preserve_critical or raise the token budget")
    if not quality.recent_info_preserved:
        recommendations.append("Recent conversation was lost; enable preserve_recent or raise the token budget")
    if budget_strategy == BudgetStrategy.STRICT and max_tokens < SMALL_STRICT_BUDGET:
        recommendations.append("Strict allocation with a small budget can starve categories; consider adaptive")
    return recommendations
