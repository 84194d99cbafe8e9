"""
Adjustment Planner

Picks a reduction strategy for a target size from heuristic profiles of
each strategy's reduction capability, quality retention and speed.
"""

import logging
from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from ..config.schemas import OptimizationStrategy
from ..context.models import ContextSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StrategyProfile:
    reduction_capability: float
    quality_retention: float
    speed_ms: float


STRATEGY_PROFILES: dict[OptimizationStrategy, StrategyProfile] = {
    OptimizationStrategy.COMPRESSION: StrategyProfile(0.2, 0.95, 100),
    OptimizationStrategy.TRUNCATION: StrategyProfile(0.5, 0.8, 50),
    OptimizationStrategy.SUMMARIZATION: StrategyProfile(0.4, 0.85, 200),
    OptimizationStrategy.RELEVANCE_FILTERING: StrategyProfile(0.6, 0.9, 150),
    OptimizationStrategy.HIERARCHICAL: StrategyProfile(0.7, 0.88, 300),
}

FALLBACK_STRATEGY = OptimizationStrategy.RELEVANCE_FILTERING
FALLBACK_CONFIDENCE = 0.3


class AdjustmentPlan(BaseModel):
    """Recommended strategy for bringing a snapshot to a target size."""

    model_config = ConfigDict(frozen=True)

    strategy: OptimizationStrategy | None = Field(description="None when no reduction is needed")
    current_tokens: int
    target_tokens: int
    required_reduction: float = Field(ge=0.0, le=1.0, description="Fraction of tokens to remove")
    estimated_reduction: int = Field(ge=0, description="Estimated tokens removed")
    quality_impact: float = Field(ge=0.0, le=1.0)
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str

    @property
    def needs_adjustment(self) -> bool:
        return self.strategy is not None


class AdjustmentPlanner:
    """Heuristic strategy selection."""

    def __init__(self, profiles: dict[OptimizationStrategy, StrategyProfile] | None = None):
        self.profiles = profiles or STRATEGY_PROFILES

    @staticmethod
    def _score(profile: StrategyProfile) -> float:
        return 0.4 * profile.reduction_capability + 0.3 * profile.quality_retention + 0.3 * (1 - profile.speed_ms / 1000)

    def plan(
        self,
        snapshot: ContextSnapshot,
        target_tokens: int,
        quality_requirement: float = 0.8,
        time_constraint_ms: float | None = None,
    ) -> AdjustmentPlan:
        """
        Choose the best strategy meeting reduction, quality and time constraints.

        Args:
            snapshot: Snapshot to be reduced
            target_tokens: Desired token count
            quality_requirement: Minimum acceptable quality retention
            time_constraint_ms: Optional processing time limit

        Returns:
            AdjustmentPlan, falling back to relevance filtering with low
            confidence when no strategy satisfies every constraint
        """
        current = snapshot.total_tokens
        if current <= target_tokens:
            return AdjustmentPlan(
                strategy=None,
                current_tokens=current,
                target_tokens=target_tokens,
                required_reduction=0.0,
                estimated_reduction=0,
                quality_impact=0.0,
                confidence=1.0,
                reason="Snapshot already within target",
            )

        required = (current - target_tokens) / current
        quality_factor = 0.8 if quality_requirement < 0.8 else 1.0

        candidates = [
            (strategy, profile)
            for strategy, profile in self.profiles.items()
            if profile.reduction_capability >= required
            and profile.quality_retention >= quality_requirement
            and (time_constraint_ms is None or profile.speed_ms <= time_constraint_ms)
        ]

        if not candidates:
            profile = self.profiles[FALLBACK_STRATEGY]
            logger.info(
                "No strategy satisfies adjustment constraints, using fallback",
                extra={"required_reduction": round(required, 3), "quality_requirement": quality_requirement},
            )
            return AdjustmentPlan(
                strategy=FALLBACK_STRATEGY,
                current_tokens=current,
                target_tokens=target_tokens,
                required_reduction=min(1.0, required),
                estimated_reduction=int(profile.reduction_capability * current * quality_factor),
                quality_impact=1 - profile.quality_retention,
                confidence=FALLBACK_CONFIDENCE,
                reason="No strategy meets every constraint; falling back to relevance filtering",
            )

        strategy, profile = max(candidates, key=lambda pair: self._score(pair[1]))
        return AdjustmentPlan(
            strategy=strategy,
            current_tokens=current,
            target_tokens=target_tokens,
            required_reduction=min(1.0, required),
            estimated_reduction=int(profile.reduction_capability * current * quality_factor),
            quality_impact=1 - profile.quality_retention,
            confidence=profile.quality_retention * 0.9,
            reason=(
                f"{strategy.value} offers {profile.reduction_capability:.0%} reduction "
                f"at {profile.quality_retention:.0%} quality retention"
            ),
        )
