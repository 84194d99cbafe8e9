"""
Context Engine - Test Configuration and Shared Fixtures

Provides a frozen clock, an estimation-only token counter, in-memory
upstream fetchers and sample snapshots for unit and integration tests.
"""

import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import pytest

from context_engine.context import (
    ContextLevel,
    ContextSnapshot,
    ConversationTurn,
    ImportanceTier,
    KnowledgeEntry,
    KnowledgeFetcher,
    KnowledgeFilters,
    KnowledgeRecord,
    MemoryFetcher,
    MemoryRecord,
    ProfileData,
    ProfileFetcher,
    UserProfile,
)
from context_engine.relevance import RelevanceScorer
from context_engine.token_optimization import TokenCounter

# Set test environment
os.environ["CONTEXT_ENVIRONMENT"] = "test"

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=UTC)


class InMemoryProfileFetcher(ProfileFetcher):
    def __init__(self, profiles: dict[str, ProfileData] | None = None):
        self.profiles = profiles or {}
        self.calls = 0

    def fetch_profile(self, user_id: str) -> ProfileData | None:
        self.calls += 1
        return self.profiles.get(user_id)


class InMemoryMemoryFetcher(MemoryFetcher):
    def __init__(self, memories: list[MemoryRecord] | None = None):
        self.memories = memories or []

    def fetch_recent_memories(self, user_id: str, limit: int) -> list[MemoryRecord]:
        ordered = sorted(self.memories, key=lambda m: m.timestamp, reverse=True)
        return ordered[:limit]


class InMemoryKnowledgeFetcher(KnowledgeFetcher):
    def __init__(self, records: list[KnowledgeRecord] | None = None):
        self.records = records or []

    def fetch_knowledge(self, query: str | None, filters: KnowledgeFilters) -> list[KnowledgeRecord]:
        if not filters.topics:
            return list(self.records)
        wanted = {t.lower() for t in filters.topics}
        return [r for r in self.records if wanted.intersection(t.lower() for t in r.topics)]


class FailingFetcher(ProfileFetcher, MemoryFetcher, KnowledgeFetcher):
    """Every fetch raises, simulating an unavailable store."""

    def fetch_profile(self, user_id: str) -> ProfileData | None:
        raise ConnectionError("profile store unreachable")

    def fetch_recent_memories(self, user_id: str, limit: int) -> list[MemoryRecord]:
        raise ConnectionError("memory store unreachable")

    def fetch_knowledge(self, query: str | None, filters: KnowledgeFilters) -> list[KnowledgeRecord]:
        raise ConnectionError("knowledge store unreachable")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def clock() -> Callable[[], datetime]:
    """Frozen wall clock."""
    return lambda: NOW


@pytest.fixture
def counter() -> TokenCounter:
    """Estimation-only counter: tokens == ceil(len / 4)."""
    return TokenCounter(use_tiktoken=False)


@pytest.fixture
def scorer(clock: Callable[[], datetime]) -> RelevanceScorer:
    return RelevanceScorer(clock=clock)


@pytest.fixture
def make_turn(counter: TokenCounter) -> Callable[..., ConversationTurn]:
    """Factory for conversation turns aged relative to NOW."""

    def _make(item_id: str, content: str, hours_ago: float = 1.0, **kwargs) -> ConversationTurn:
        token_count = kwargs.pop("token_count", counter.count(content))
        return ConversationTurn(
            id=item_id,
            content=content,
            token_count=token_count,
            timestamp=NOW - timedelta(hours=hours_ago),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_knowledge(counter: TokenCounter) -> Callable[..., KnowledgeEntry]:
    def _make(item_id: str, content: str, reliability: float = 0.6, hours_ago: float = 1.0, **kwargs) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=item_id,
            content=content,
            token_count=counter.count(content),
            timestamp=NOW - timedelta(hours=hours_ago),
            reliability=reliability,
            **kwargs,
        )

    return _make


@pytest.fixture
def light_snapshot(make_turn: Callable[..., ConversationTurn], counter: TokenCounter) -> ContextSnapshot:
    """
    Light-level snapshot: ten 90-token turns, ten days old, one critical,
    plus a short profile summary.
    """
    content = "word " * 72  # 360 chars -> 90 tokens
    turns = [
        make_turn(
            f"turn-{i}",
            content,
            hours_ago=240 + i,
            importance=ImportanceTier.CRITICAL if i == 3 else ImportanceTier.CONTEXTUAL,
        )
        for i in range(10)
    ]
    summary = "Ana (Grade 10) studying math. Accuracy: 82%"
    profile = UserProfile(user_id="user-1", name="Ana", summary=summary, token_count=counter.count(summary))
    return ContextSnapshot(
        user_id="user-1",
        level=ContextLevel.LIGHT,
        profile=profile,
        conversation=tuple(sorted(turns, key=lambda t: t.timestamp)),
        created_at=NOW,
    )


@pytest.fixture
def mixed_snapshot(make_turn, make_knowledge) -> ContextSnapshot:
    """Six 100-token turns three days old (one critical) and two knowledge entries."""
    content = "note " * 80  # 400 chars -> 100 tokens
    turns = [
        make_turn(
            f"turn-{i}",
            content,
            hours_ago=72 + i,
            importance=ImportanceTier.CRITICAL if i == 0 else ImportanceTier.CONTEXTUAL,
        )
        for i in range(6)
    ]
    knowledge = [
        make_knowledge("fact-1", "A derivative is the rate of change of a function.", reliability=0.9),
        make_knowledge("fact-2", "Some forum post claims integrals are optional.", reliability=0.3),
    ]
    return ContextSnapshot(user_id="user-1", conversation=tuple(turns), knowledge=tuple(knowledge), created_at=NOW)


@pytest.fixture
def sample_profile() -> ProfileData:
    return ProfileData(
        user_id="user-1",
        name="Ana",
        academic_level="Grade 10",
        subjects=["math", "physics", "chemistry"],
        strengths=["algebra"],
        weaknesses=["geometry"],
        study_goals=["Pass the final exam"],
        learning_style="visual",
        streak=5,
        level=3,
        points=420,
        accuracy=82.4,
        total_topics=20,
        completed_topics=12,
        last_study_at=NOW - timedelta(days=1),
        questions_answered_7d=30,
        correct_answers_7d=24,
        strong_topics=["algebra"],
        improving_topics=["trigonometry"],
    )


@pytest.fixture
def sample_memories() -> list[MemoryRecord]:
    return [
        MemoryRecord(
            id=f"mem-{i}",
            content=f"Worked through geometry exercise {i}. Key idea: similar triangles.",
            relevance_score=0.9 - i * 0.1,
            timestamp=NOW - timedelta(hours=i + 1),
            tags=["geometry"] if i % 2 == 0 else [],
        )
        for i in range(5)
    ]


@pytest.fixture
def sample_knowledge() -> list[KnowledgeRecord]:
    return [
        KnowledgeRecord(
            id="kb-1",
            content="Similar triangles have proportional sides.",
            title="Similar triangles",
            reliability=0.95,
            topics=["geometry"],
        ),
        KnowledgeRecord(
            id="kb-2",
            content="Unverified shortcut for area of a circle.",
            title="Circle shortcut",
            reliability=0.3,
            topics=["geometry"],
        ),
    ]


@pytest.fixture
def profile_fetcher(sample_profile: ProfileData) -> InMemoryProfileFetcher:
    return InMemoryProfileFetcher({sample_profile.user_id: sample_profile})


@pytest.fixture
def memory_fetcher(sample_memories: list[MemoryRecord]) -> InMemoryMemoryFetcher:
    return InMemoryMemoryFetcher(sample_memories)


@pytest.fixture
def knowledge_fetcher(sample_knowledge: list[KnowledgeRecord]) -> InMemoryKnowledgeFetcher:
    return InMemoryKnowledgeFetcher(sample_knowledge)


@pytest.fixture
def failing_fetcher() -> FailingFetcher:
    return FailingFetcher()


@pytest.fixture
def empty_profile_fetcher() -> InMemoryProfileFetcher:
    """Fetcher that knows no users."""
    return InMemoryProfileFetcher()
