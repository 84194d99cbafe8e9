"""
Context Engine - Snapshot Model Tests

Tests immutability, derived token totals and constructor-based transformations.
"""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from context_engine.context import (
    ContextSnapshot,
    ConversationTurn,
    ExternalEntry,
    ImportanceTier,
    ItemType,
    KnowledgeEntry,
    SystemStatus,
    UserProfile,
    VerificationStatus,
)


class TestContextItems:
    """Test suite for context item types."""

    def test_items_are_frozen(self, make_turn) -> None:
        """Test that items cannot be mutated in place."""
        turn = make_turn("t1", "hello there")
        with pytest.raises(ValidationError):
            turn.content = "changed"  # type: ignore[misc]

    def test_naive_timestamp_treated_as_utc(self) -> None:
        """Test that naive timestamps become timezone-aware."""
        turn = ConversationTurn(id="t1", content="x", token_count=1, timestamp=datetime(2026, 1, 1, 9, 0))
        assert turn.timestamp.tzinfo == UTC

    def test_tier_priorities(self) -> None:
        """Test the shared tier priority mapping."""
        assert ImportanceTier.CRITICAL.priority == 1.0
        assert ImportanceTier.IMPORTANT.priority == 0.8
        assert ImportanceTier.CONTEXTUAL.priority == 0.6
        assert ImportanceTier.SUPPLEMENTARY.priority == 0.4

    def test_critical_by_tier_or_tag(self, make_turn) -> None:
        """Test both ways an item becomes critical."""
        assert make_turn("a", "x", importance=ImportanceTier.CRITICAL).is_critical
        assert make_turn("b", "x", tags=frozenset({"critical"})).is_critical
        assert not make_turn("c", "x").is_critical

    def test_quality_signals(self, make_knowledge, now) -> None:
        """Test per-type quality signals."""
        entry = make_knowledge("k", "fact", reliability=0.8, verification_status=VerificationStatus.VERIFIED)
        assert entry.quality_signal() == pytest.approx(0.7 * 0.8 + 0.3 * 1.0)

        disputed = make_knowledge("d", "fact", reliability=0.5, verification_status=VerificationStatus.DISPUTED)
        assert disputed.quality_signal() == pytest.approx(0.7 * 0.5 + 0.3 * 0.3)

        external = ExternalEntry(id="e", content="x", token_count=1, timestamp=now, reliability=0.42)
        assert external.quality_signal() == 0.42

    def test_with_content_returns_new_item(self, make_turn) -> None:
        """Test that with_content leaves the original untouched."""
        turn = make_turn("t1", "original text")
        shorter = turn.with_content("short", 2)
        assert shorter.content == "short"
        assert shorter.token_count == 2
        assert turn.content == "original text"
        assert shorter.id == turn.id


class TestContextSnapshot:
    """Test suite for ContextSnapshot."""

    def test_total_tokens_is_sum_of_categories(self, mixed_snapshot: ContextSnapshot) -> None:
        """Test that total_tokens is derived from contents."""
        usage = mixed_snapshot.category_tokens()
        assert mixed_snapshot.total_tokens == sum(usage.values())
        assert usage[ItemType.CONVERSATION] == 600

    def test_profile_and_system_count(self, now) -> None:
        """Test that profile and system tokens are included."""
        snapshot = ContextSnapshot(
            user_id="u",
            profile=UserProfile(user_id="u", summary="s", token_count=12),
            system=SystemStatus(token_count=5),
            created_at=now,
        )
        assert snapshot.total_tokens == 17

    def test_duplicate_ids_rejected(self, make_turn, make_knowledge) -> None:
        """Test that ids are unique across categories."""
        with pytest.raises(ValidationError):
            ContextSnapshot(
                user_id="u",
                conversation=(make_turn("same", "a"),),
                knowledge=(make_knowledge("same", "b"),),
            )

    def test_without_items(self, mixed_snapshot: ContextSnapshot) -> None:
        """Test removal builds a new snapshot."""
        reduced = mixed_snapshot.without_items(["turn-1", "fact-2"])
        assert "turn-1" not in reduced.item_ids()
        assert "fact-2" not in reduced.item_ids()
        assert reduced.total_tokens == mixed_snapshot.total_tokens - 100 - mixed_snapshot.get_item("fact-2").token_count
        assert "turn-1" in mixed_snapshot.item_ids()

    def test_without_nothing_is_identity(self, mixed_snapshot: ContextSnapshot) -> None:
        """Test that removing no items returns the same snapshot."""
        assert mixed_snapshot.without_items([]) is mixed_snapshot

    def test_with_replaced_items_preserves_order(self, mixed_snapshot: ContextSnapshot) -> None:
        """Test that replacements keep item positions."""
        original = mixed_snapshot.get_item("turn-2")
        replaced = mixed_snapshot.with_replaced_items({"turn-2": original.with_content("tiny", 1)})
        assert [t.id for t in replaced.conversation] == [t.id for t in mixed_snapshot.conversation]
        assert replaced.get_item("turn-2").content == "tiny"
        assert replaced.total_tokens == mixed_snapshot.total_tokens - 99

    def test_evolve_revalidates(self, mixed_snapshot: ContextSnapshot, make_turn) -> None:
        """Test that evolve runs validators on the new snapshot."""
        duplicate = make_turn("fact-1", "clash")
        with pytest.raises(ValidationError):
            mixed_snapshot.evolve(conversation=(duplicate,))

    def test_items_order(self, mixed_snapshot: ContextSnapshot) -> None:
        """Test iteration order: conversation, knowledge, external."""
        kinds = [type(item) for item in mixed_snapshot.items()]
        assert kinds == [ConversationTurn] * 6 + [KnowledgeEntry] * 2

    def test_profile_compress_lists(self) -> None:
        """Test list caps on the profile."""
        profile = UserProfile(
            user_id="u",
            subjects=tuple(f"s{i}" for i in range(8)),
            strengths=tuple(f"g{i}" for i in range(5)),
            weaknesses=tuple(f"w{i}" for i in range(5)),
        )
        compressed = profile.compress_lists()
        assert len(compressed.subjects) == 5
        assert len(compressed.strengths) == 3
        assert len(compressed.weaknesses) == 3
