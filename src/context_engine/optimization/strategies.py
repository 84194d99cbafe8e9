"""
Reduction Strategies

Each strategy takes an over-budget snapshot and returns a new, smaller one
together with AppliedOptimization audit records. Strategies never mutate
their input.

- compression: shortens text per item, never removes items
- truncation: removes lowest-priority items until within budget
- summarization: extractive summaries of item text
- relevance_filtering: drops items scoring below the relevance threshold
- hierarchical: ordered rules, stopping once within budget
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from functools import cached_property
from typing import ClassVar

from ..budget_management.models import BudgetAllocation
from ..config.schemas import CompressionLevel, OptimizationStrategy
from ..context import text as textops
from ..context.models import (
    ContextItem,
    ContextSnapshot,
    ImportanceTier,
    ItemType,
    KnowledgeEntry,
)
from ..relevance.scorer import RelevanceScorer
from ..token_optimization.counter import TokenCounter
from .models import AppliedOptimization, OptimizationType, OptimizeOptions

logger = logging.getLogger(__name__)

TIER_COMPRESSION: dict[ImportanceTier, CompressionLevel] = {
    ImportanceTier.CRITICAL: CompressionLevel.LOW,
    ImportanceTier.IMPORTANT: CompressionLevel.MEDIUM,
    ImportanceTier.CONTEXTUAL: CompressionLevel.HIGH,
    ImportanceTier.SUPPLEMENTARY: CompressionLevel.AGGRESSIVE,
}

HIGH_RELIABILITY = 0.8
LOW_RELIABILITY = 0.5
SUMMARIZATION_QUALITY_IMPACT = 0.15
ONE_DAY_HOURS = 24.0
ONE_WEEK_HOURS = 24.0 * 7


@dataclass
class StrategyContext:
    """Inputs shared by every strategy during one optimization pass."""

    counter: TokenCounter
    scorer: RelevanceScorer
    options: OptimizeOptions
    max_tokens: int
    now: datetime
    scores: dict[str, float]
    allocations: list[BudgetAllocation] = field(default_factory=list)
    recent_window_hours: float = 2.0
    min_protected_item_tokens: int = 8

    @cached_property
    def over_allocated(self) -> frozenset[ItemType]:
        """Categories using more than their allocation."""
        return frozenset(a.category for a in self.allocations if a.overage > 0)

    @cached_property
    def relevance_mass(self) -> float:
        return sum(self.scores.values())

    def is_recent(self, item: ContextItem) -> bool:
        return item.age_hours(self.now) < self.recent_window_hours

    def is_protected(self, item: ContextItem) -> bool:
        """Items the caller asked to keep: critical and/or recent."""
        if self.options.preserve_critical and item.is_critical:
            return True
        return self.options.preserve_recent and self.is_recent(item)

    def priority(self, item: ContextItem) -> float:
        """
        Removal priority, lower is removed first.

        0.5 x tier priority x recency x quality, doubled for preserved critical
        items and x1.5 for preserved recent items, capped at 1.0.
        """
        value = (
            0.5
            * item.importance.priority
            * self.scorer.recency_factor(item.timestamp, self.now)
            * item.quality_signal()
        )
        if self.options.preserve_critical and item.is_critical:
            value *= 2.0
        if self.options.preserve_recent and self.is_recent(item):
            value *= 1.5
        return min(1.0, value)

    def removal_order(self, items: Iterable[ContextItem]) -> list[ContextItem]:
        """Over-allocated categories first, then ascending priority, relevance and id."""
        over = self.over_allocated
        return sorted(
            items,
            key=lambda i: (i.item_type not in over, self.priority(i), self.scores.get(i.id, 0.0), i.id),
        )

    def relevance_loss(self, items: Iterable[ContextItem]) -> float:
        if self.relevance_mass <= 0:
            return 0.0
        lost = sum(self.scores.get(item.id, 0.0) for item in items)
        return min(1.0, lost / self.relevance_mass)


@dataclass
class StrategyOutcome:
    snapshot: ContextSnapshot
    applied: list[AppliedOptimization] = field(default_factory=list)
    protected_ids: frozenset[str] = frozenset()


# ----------------------------------------------------------------------
# Shared operations
# ----------------------------------------------------------------------


def remove_until_within(
    snapshot: ContextSnapshot,
    candidates: Iterable[ContextItem],
    ctx: StrategyContext,
) -> tuple[ContextSnapshot, list[ContextItem]]:
    """Remove candidates in removal order until the snapshot fits max_tokens."""
    total = snapshot.total_tokens
    removed: list[ContextItem] = []
    for item in ctx.removal_order(candidates):
        if total <= ctx.max_tokens:
            break
        removed.append(item)
        total -= item.token_count
    return snapshot.without_items(item.id for item in removed), removed


def removal_record(
    kind: OptimizationType,
    description: str,
    removed: list[ContextItem],
    ctx: StrategyContext,
) -> AppliedOptimization:
    return AppliedOptimization(
        type=kind,
        description=description,
        tokens_affected=sum(item.token_count for item in removed),
        quality_impact=ctx.relevance_loss(removed),
        item_ids=tuple(item.id for item in removed),
    )


def compression_level_for(item: ContextItem, configured: CompressionLevel) -> CompressionLevel:
    """Lightest compression for critical or highly reliable content, heavier for lower tiers."""
    if item.is_critical:
        return CompressionLevel.LOW
    if isinstance(item, KnowledgeEntry) and item.reliability > HIGH_RELIABILITY:
        return CompressionLevel.LOW
    tier_level = TIER_COMPRESSION[item.importance]
    return tier_level if tier_level.rank >= configured.rank else configured


def compress_items(
    snapshot: ContextSnapshot,
    items: Iterable[ContextItem],
    level_for: Callable[[ContextItem], CompressionLevel],
    ctx: StrategyContext,
) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
    """Compress item text, one audit record per compression level used."""
    replacements: dict[str, ContextItem] = {}
    saved: dict[CompressionLevel, int] = {}
    touched: dict[CompressionLevel, list[str]] = {}

    for item in items:
        level = level_for(item)
        compressed = textops.compress_text(item.content, level)
        if compressed == item.content:
            continue
        tokens = ctx.counter.count(compressed)
        if tokens >= item.token_count:
            continue
        replacements[item.id] = item.with_content(compressed, tokens)
        saved[level] = saved.get(level, 0) + item.token_count - tokens
        touched.setdefault(level, []).append(item.id)

    records = [
        AppliedOptimization(
            type=OptimizationType.COMPRESSION,
            description=f"Applied {level.value} compression to {len(touched[level])} items",
            tokens_affected=saved[level],
            quality_impact=textops.COMPRESSION_QUALITY_IMPACT[level],
            item_ids=tuple(touched[level]),
        )
        for level in CompressionLevel
        if level in saved
    ]
    return snapshot.with_replaced_items(replacements), records


def compress_profile(
    snapshot: ContextSnapshot,
    ctx: StrategyContext,
    level: CompressionLevel = CompressionLevel.LOW,
) -> tuple[ContextSnapshot, AppliedOptimization | None]:
    """Cap profile lists and compress the profile summary."""
    profile = snapshot.profile
    if profile is None:
        return snapshot, None

    summary = textops.compress_text(profile.summary, level) if profile.summary else profile.summary
    tokens = ctx.counter.count(summary)
    compressed = profile.compress_lists()
    if tokens < profile.token_count:
        compressed = compressed.with_summary(summary, tokens)
    if compressed == profile:
        return snapshot, None

    record = AppliedOptimization(
        type=OptimizationType.COMPRESSION,
        description="Compressed user profile lists and summary",
        tokens_affected=profile.token_count - compressed.token_count,
        quality_impact=textops.COMPRESSION_QUALITY_IMPACT[level],
        item_ids=(f"profile:{profile.user_id}",),
    )
    return snapshot.evolve(profile=compressed), record


def summarize_items(
    snapshot: ContextSnapshot,
    items: Iterable[ContextItem],
    ctx: StrategyContext,
) -> tuple[ContextSnapshot, AppliedOptimization | None]:
    """Replace item text with an extractive summary where that saves tokens."""
    replacements: dict[str, ContextItem] = {}
    saved = 0
    for item in items:
        markers = textops.DEFINITION_MARKERS if isinstance(item, KnowledgeEntry) else textops.CONVERSATION_KEY_MARKERS
        summary = textops.extractive_summary(item.content, markers)
        if summary == item.content:
            continue
        tokens = ctx.counter.count(summary)
        if tokens >= item.token_count:
            continue
        replacements[item.id] = item.with_content(summary, tokens)
        saved += item.token_count - tokens

    if not replacements:
        return snapshot, None
    record = AppliedOptimization(
        type=OptimizationType.SUMMARIZATION,
        description=f"Summarized {len(replacements)} items",
        tokens_affected=saved,
        quality_impact=SUMMARIZATION_QUALITY_IMPACT,
        item_ids=tuple(replacements),
    )
    return snapshot.with_replaced_items(replacements), record


# ----------------------------------------------------------------------
# Strategies
# ----------------------------------------------------------------------


class ReductionStrategy(ABC):
    """A way of bringing a snapshot under its token budget."""

    name: ClassVar[OptimizationStrategy]

    @abstractmethod
    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        """Return a reduced snapshot and audit records."""
        pass

    def protected_ids(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> frozenset[str]:
        return frozenset(item.id for item in snapshot.items() if ctx.is_protected(item))


class CompressionStrategy(ReductionStrategy):
    """Lossy text shrinking per item. Never removes anything."""

    name = OptimizationStrategy.COMPRESSION

    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        configured = ctx.options.compression_level
        snapshot, applied = compress_items(
            snapshot, list(snapshot.items()), lambda item: compression_level_for(item, configured), ctx
        )
        snapshot, profile_record = compress_profile(snapshot, ctx)
        if profile_record:
            applied.append(profile_record)
        return StrategyOutcome(snapshot, applied, self.protected_ids(snapshot, ctx))


class TruncationStrategy(ReductionStrategy):
    """Removes the lowest-priority removable items first."""

    name = OptimizationStrategy.TRUNCATION

    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        protected = self.protected_ids(snapshot, ctx)
        candidates = [item for item in snapshot.items() if item.id not in protected]
        reduced, removed = remove_until_within(snapshot, candidates, ctx)

        applied = []
        if removed:
            applied.append(
                removal_record(
                    OptimizationType.TRUNCATION,
                    f"Truncated {len(removed)} lowest-priority items",
                    removed,
                    ctx,
                )
            )
        return StrategyOutcome(reduced, applied, protected)


class SummarizationStrategy(ReductionStrategy):
    """Extractive summaries: first, key and last sentences."""

    name = OptimizationStrategy.SUMMARIZATION

    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        keep_intact = ctx.options.preserve_critical
        candidates = [item for item in snapshot.items() if not (keep_intact and item.is_critical)]
        reduced, record = summarize_items(snapshot, candidates, ctx)
        return StrategyOutcome(reduced, [record] if record else [], self.protected_ids(reduced, ctx))


class RelevanceFilteringStrategy(ReductionStrategy):
    """Drops items scoring below the relevance threshold."""

    name = OptimizationStrategy.RELEVANCE_FILTERING

    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        threshold = ctx.options.relevance_threshold
        keep_critical = ctx.options.preserve_critical
        dropped = [
            item
            for item in snapshot.items()
            if ctx.scores.get(item.id, 0.0) < threshold and not (keep_critical and item.is_critical)
        ]
        reduced = snapshot.without_items(item.id for item in dropped)

        applied = []
        if dropped:
            applied.append(
                removal_record(
                    OptimizationType.FILTERING,
                    f"Filtered {len(dropped)} items below relevance {threshold:.2f}",
                    dropped,
                    ctx,
                )
            )
        return StrategyOutcome(reduced, applied, self.protected_ids(reduced, ctx))


HierarchicalRule = Callable[
    [ContextSnapshot, StrategyContext, frozenset[str]],
    tuple[ContextSnapshot, list[AppliedOptimization]],
]


class HierarchicalStrategy(ReductionStrategy):
    """
    Fixed, ordered rule set.

    Critical items and items younger than the recent window are always
    protected by the first two rules; the remaining rules skip them.
    Rules run in order and stop as soon as the snapshot fits.
    """

    name = OptimizationStrategy.HIERARCHICAL

    def __init__(self) -> None:
        self.rules: list[tuple[str, HierarchicalRule]] = [
            ("compress_profile_lists", self._compress_profile),
            ("summarize_old_conversation", self._summarize_old_conversation),
            ("compress_reliable_knowledge", self._compress_reliable_knowledge),
            ("remove_stale_conversation", self._remove_stale_conversation),
            ("remove_unreliable_knowledge", self._remove_unreliable_knowledge),
            ("remove_low_value_external", self._remove_low_value_external),
        ]

    def protected_ids(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> frozenset[str]:
        return frozenset(item.id for item in snapshot.items() if item.is_critical or ctx.is_recent(item))

    def apply(self, snapshot: ContextSnapshot, ctx: StrategyContext) -> StrategyOutcome:
        protected = self.protected_ids(snapshot, ctx)
        applied: list[AppliedOptimization] = []

        for rule_name, rule in self.rules:
            if snapshot.total_tokens <= ctx.max_tokens:
                break
            snapshot, records = rule(snapshot, ctx, protected)
            applied.extend(records)
            logger.debug(
                f"Hierarchical rule {rule_name} applied",
                extra={"rule": rule_name, "total_tokens": snapshot.total_tokens, "records": len(records)},
            )

        return StrategyOutcome(snapshot, applied, protected)

    @staticmethod
    def _compress_profile(
        snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        snapshot, record = compress_profile(snapshot, ctx, CompressionLevel.MEDIUM)
        return snapshot, [record] if record else []

    @staticmethod
    def _summarize_old_conversation(
        snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        old = [
            turn
            for turn in snapshot.conversation
            if turn.id not in protected and turn.age_hours(ctx.now) > ONE_DAY_HOURS
        ]
        snapshot, record = summarize_items(snapshot, old, ctx)
        return snapshot, [record] if record else []

    @staticmethod
    def _compress_reliable_knowledge(
        snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        reliable = [
            entry
            for entry in snapshot.knowledge
            if entry.id not in protected and entry.reliability > HIGH_RELIABILITY
        ]
        return compress_items(snapshot, reliable, lambda _: CompressionLevel.LOW, ctx)

    @staticmethod
    def _remove(
        snapshot: ContextSnapshot,
        ctx: StrategyContext,
        candidates: list[ContextItem],
        description: str,
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        snapshot, removed = remove_until_within(snapshot, candidates, ctx)
        if not removed:
            return snapshot, []
        return snapshot, [removal_record(OptimizationType.REMOVAL, description.format(n=len(removed)), removed, ctx)]

    def _remove_stale_conversation(
        self, snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        stale: list[ContextItem] = [
            turn
            for turn in snapshot.conversation
            if turn.id not in protected and turn.age_hours(ctx.now) > ONE_WEEK_HOURS
        ]
        return self._remove(snapshot, ctx, stale, "Removed {n} conversation turns older than a week")

    def _remove_unreliable_knowledge(
        self, snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        unreliable: list[ContextItem] = [
            entry for entry in snapshot.knowledge if entry.id not in protected and entry.reliability < LOW_RELIABILITY
        ]
        return self._remove(snapshot, ctx, unreliable, "Removed {n} low-reliability knowledge entries")

    def _remove_low_value_external(
        self, snapshot: ContextSnapshot, ctx: StrategyContext, protected: frozenset[str]
    ) -> tuple[ContextSnapshot, list[AppliedOptimization]]:
        low_value: list[ContextItem] = [
            entry
            for entry in snapshot.external
            if entry.id not in protected
            and (entry.importance == ImportanceTier.SUPPLEMENTARY or entry.reliability < LOW_RELIABILITY)
        ]
        return self._remove(snapshot, ctx, low_value, "Removed {n} low-value external sources")


def default_strategies() -> dict[OptimizationStrategy, ReductionStrategy]:
    strategies: list[ReductionStrategy] = [
        CompressionStrategy(),
        TruncationStrategy(),
        SummarizationStrategy(),
        RelevanceFilteringStrategy(),
        HierarchicalStrategy(),
    ]
    return {strategy.name: strategy for strategy in strategies}

