"""
Budget Enforcement

Runs after a strategy when the snapshot still exceeds its budget. Steps go
from least to most lossy and stop as soon as the snapshot fits:

1. remove unprotected items, lowest priority first
2. hard-truncate protected items down to a per-item floor
3. compress the profile, cut its summary to half the budget, drop the system status
4. remove protected items (extreme budget pressure, reported as a warning)
5. truncate the profile summary to whatever budget is left
"""

import logging

from ..config.schemas import CompressionLevel
from ..context.models import ContextItem, ContextSnapshot
from ..errors import EngineWarning, ErrorCode
from .models import AppliedOptimization, OptimizationType
from .strategies import StrategyContext, compress_profile, removal_record, remove_until_within

logger = logging.getLogger(__name__)


class BudgetEnforcer:
    """Brings a snapshot under max_tokens at any cost."""

    def enforce(
        self,
        snapshot: ContextSnapshot,
        ctx: StrategyContext,
        protected_ids: frozenset[str],
    ) -> tuple[ContextSnapshot, list[AppliedOptimization], list[EngineWarning]]:
        applied: list[AppliedOptimization] = []
        warnings: list[EngineWarning] = []
        starting_tokens = snapshot.total_tokens

        # 1. Unprotected items
        unprotected = [item for item in snapshot.items() if item.id not in protected_ids]
        snapshot, removed = remove_until_within(snapshot, unprotected, ctx)
        if removed:
            applied.append(
                removal_record(
                    OptimizationType.REMOVAL,
                    f"Budget enforcement removed {len(removed)} items",
                    removed,
                    ctx,
                )
            )

        # 2. Shorten protected items
        if snapshot.total_tokens > ctx.max_tokens:
            snapshot, record = self._truncate_protected(snapshot, ctx, protected_ids)
            if record:
                applied.append(record)

        # 3. Profile and system status
        if snapshot.total_tokens > ctx.max_tokens:
            snapshot, record = compress_profile(snapshot, ctx, CompressionLevel.AGGRESSIVE)
            if record:
                applied.append(record)
        if snapshot.total_tokens > ctx.max_tokens and snapshot.profile is not None:
            # Profile may shrink to half the budget before protected items are touched
            overage = snapshot.total_tokens - ctx.max_tokens
            target = max(snapshot.profile.token_count - overage, ctx.max_tokens // 2)
            snapshot, record = self._truncate_profile(snapshot, ctx, target)
            if record:
                applied.append(record)
        if snapshot.total_tokens > ctx.max_tokens and snapshot.system is not None:
            dropped_tokens = snapshot.system.token_count
            snapshot = snapshot.evolve(system=None)
            applied.append(
                AppliedOptimization(
                    type=OptimizationType.REMOVAL,
                    description="Dropped system status under budget pressure",
                    tokens_affected=dropped_tokens,
                    quality_impact=0.0,
                    item_ids=("system",),
                )
            )

        # 4. Extreme pressure: protected items go too
        if snapshot.total_tokens > ctx.max_tokens:
            remaining = list(snapshot.items())
            snapshot, removed = remove_until_within(snapshot, remaining, ctx)
            if removed:
                applied.append(
                    removal_record(
                        OptimizationType.REMOVAL,
                        f"Removed {len(removed)} protected items under extreme budget pressure",
                        removed,
                        ctx,
                    )
                )
                warnings.append(
                    EngineWarning(
                        code=ErrorCode.BUDGET_OVERRUN,
                        message="Protected items removed to satisfy the token budget",
                        details={"item_ids": [item.id for item in removed], "max_tokens": ctx.max_tokens},
                    )
                )
                logger.warning(
                    "Removed protected items under extreme budget pressure",
                    extra={"removed": len(removed), "max_tokens": ctx.max_tokens},
                )

        # 5. Whatever budget is left goes to the profile summary
        if snapshot.total_tokens > ctx.max_tokens and snapshot.profile is not None:
            allowance = max(0, ctx.max_tokens - (snapshot.total_tokens - snapshot.profile.token_count))
            snapshot, record = self._truncate_profile(snapshot, ctx, allowance)
            if record:
                applied.append(record)

        logger.debug(
            "Budget enforcement finished",
            extra={
                "starting_tokens": starting_tokens,
                "final_tokens": snapshot.total_tokens,
                "max_tokens": ctx.max_tokens,
                "steps": len(applied),
            },
        )
        return snapshot, applied, warnings

    @staticmethod
    def _truncate_profile(
        snapshot: ContextSnapshot,
        ctx: StrategyContext,
        target_tokens: int,
    ) -> tuple[ContextSnapshot, AppliedOptimization | None]:
        profile = snapshot.profile
        if profile is None or target_tokens >= profile.token_count:
            return snapshot, None
        summary = ctx.counter.truncate(profile.summary, target_tokens)
        truncated = profile.with_summary(summary, ctx.counter.count(summary))
        record = AppliedOptimization(
            type=OptimizationType.TRUNCATION,
            description=f"Truncated profile summary to {target_tokens} tokens",
            tokens_affected=max(0, profile.token_count - truncated.token_count),
            quality_impact=0.2,
            item_ids=(f"profile:{profile.user_id}",),
        )
        return snapshot.evolve(profile=truncated), record

    @staticmethod
    def _truncate_protected(
        snapshot: ContextSnapshot,
        ctx: StrategyContext,
        protected_ids: frozenset[str],
    ) -> tuple[ContextSnapshot, AppliedOptimization | None]:
        floor = ctx.min_protected_item_tokens
        overage = snapshot.total_tokens - ctx.max_tokens
        replacements: dict[str, ContextItem] = {}
        saved = 0

        protected = [item for item in snapshot.items() if item.id in protected_ids]
        for item in ctx.removal_order(protected):
            if overage <= 0:
                break
            target = max(floor, item.token_count - overage)
            if target >= item.token_count:
                continue
            shortened = ctx.counter.truncate(item.content, target)
            tokens = ctx.counter.count(shortened)
            if tokens >= item.token_count:
                continue
            replacements[item.id] = item.with_content(shortened, tokens)
            saved += item.token_count - tokens
            overage -= item.token_count - tokens

        if not replacements:
            return snapshot, None
        record = AppliedOptimization(
            type=OptimizationType.TRUNCATION,
            description=f"Hard-truncated {len(replacements)} protected items",
            tokens_affected=saved,
            quality_impact=ctx.relevance_loss(replacements.values()) / 2,
            item_ids=tuple(replacements),
        )
        return snapshot.with_replaced_items(replacements), record
