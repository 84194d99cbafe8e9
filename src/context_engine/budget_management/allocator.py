"""
Budget Allocator

Splits a total token budget across snapshot categories.

Strategies:
- strict: fixed 15/40/30/10/5 percent split, never reallocated
- adaptive: proportional to actual usage, at least 100 tokens per non-empty category
- flexible: adaptive, with every allocation reassignable
- priority_based: proportional to each category's average relevance

Allocations are never clipped to fit. An overrun is logged and reported to
the caller, which is responsible for further reduction.
"""

import logging

from ..config.schemas import BudgetStrategy
from ..context.models import ContextSnapshot, ItemType
from ..relevance.scorer import RelevanceScorer
from .models import BudgetAllocation, allocation_overrun, total_allocated

logger = logging.getLogger(__name__)

STRICT_PERCENT: dict[ItemType, int] = {
    ItemType.PROFILE: 15,
    ItemType.CONVERSATION: 40,
    ItemType.KNOWLEDGE: 30,
    ItemType.EXTERNAL: 10,
    ItemType.SYSTEM: 5,
}

CATEGORY_PRIORITY: dict[ItemType, int] = {
    ItemType.PROFILE: 9,
    ItemType.CONVERSATION: 8,
    ItemType.KNOWLEDGE: 7,
    ItemType.EXTERNAL: 5,
    ItemType.SYSTEM: 3,
}

MIN_CATEGORY_ALLOCATION = 100
FLEXIBLE_SHARE_THRESHOLD = 0.1


class BudgetAllocator:
    """Computes per-category budget allocations for a snapshot."""

    def __init__(self, scorer: RelevanceScorer | None = None):
        self.scorer = scorer or RelevanceScorer()

    def allocate(
        self,
        snapshot: ContextSnapshot,
        total_budget: int,
        strategy: BudgetStrategy = BudgetStrategy.ADAPTIVE,
    ) -> list[BudgetAllocation]:
        """
        Allocate total_budget across categories.

        Args:
            snapshot: Snapshot whose usage drives adaptive strategies
            total_budget: Total tokens available
            strategy: Allocation strategy

        Returns:
            One allocation per category, in category order
        """
        total_budget = max(0, total_budget)
        usage = snapshot.category_tokens()

        if strategy == BudgetStrategy.STRICT:
            shares = self._strict(total_budget)
            flexible = dict.fromkeys(shares, False)
        elif strategy in (BudgetStrategy.ADAPTIVE, BudgetStrategy.FLEXIBLE):
            shares, flexible = self._adaptive(usage, total_budget)
            if strategy == BudgetStrategy.FLEXIBLE:
                flexible = dict.fromkeys(shares, True)
        elif strategy == BudgetStrategy.PRIORITY_BASED:
            shares = self._priority_based(snapshot, usage, total_budget)
            flexible = dict.fromkeys(shares, False)
        else:
            raise ValueError(f"Unknown budget strategy: {strategy}")

        allocations = [
            BudgetAllocation(
                category=category,
                allocated=shares[category],
                used=usage[category],
                remaining=max(0, shares[category] - usage[category]),
                priority=CATEGORY_PRIORITY[category],
                is_flexible=flexible[category],
            )
            for category in ItemType
        ]

        overrun = allocation_overrun(allocations, total_budget)
        if overrun:
            logger.warning(
                "Budget allocation overrun",
                extra={
                    "strategy": strategy.value,
                    "total_budget": total_budget,
                    "allocated": total_allocated(allocations),
                    "overrun": overrun,
                },
            )
        return allocations

    @staticmethod
    def _strict(total_budget: int) -> dict[ItemType, int]:
        return {category: total_budget * pct // 100 for category, pct in STRICT_PERCENT.items()}

    def _adaptive(
        self, usage: dict[ItemType, int], total_budget: int
    ) -> tuple[dict[ItemType, int], dict[ItemType, bool]]:
        total_used = sum(usage.values())
        if total_used == 0:
            strict = self._strict(total_budget)
            return strict, dict.fromkeys(strict, False)

        shares: dict[ItemType, int] = {}
        flexible: dict[ItemType, bool] = {}
        for category in ItemType:
            used = usage[category]
            if used == 0:
                shares[category] = 0
                flexible[category] = True
                continue
            proportion = used / total_used
            shares[category] = max(int(total_budget * proportion), MIN_CATEGORY_ALLOCATION)
            flexible[category] = proportion < FLEXIBLE_SHARE_THRESHOLD
        return shares, flexible

    def _priority_based(
        self, snapshot: ContextSnapshot, usage: dict[ItemType, int], total_budget: int
    ) -> dict[ItemType, int]:
        non_empty = [category for category in ItemType if usage[category] > 0]
        if not non_empty:
            return self._strict(total_budget)

        scores: dict[ItemType, list[float]] = {category: [] for category in ItemType}
        for result in self.scorer.score_snapshot(snapshot):
            scores[result.item_type].append(result.final_score)

        averages = {
            category: (sum(scores[category]) / len(scores[category])) if scores[category] else 0.0
            for category in non_empty
        }
        weight_sum = sum(averages.values())

        shares = dict.fromkeys(ItemType, 0)
        for category in non_empty:
            weight = averages[category] / weight_sum if weight_sum > 0 else 1 / len(non_empty)
            shares[category] = int(total_budget * weight)
        return shares
