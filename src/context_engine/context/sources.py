"""
Upstream data contracts.

Raw records returned by the profile, memory and knowledge stores, and the
fetcher interfaces the engine is constructed with. Implementations live in
the host application.
"""

from abc import ABC, abstractmethod
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .models import ExternalEntry, Role, SystemStatus, VerificationStatus


class StudyPreferences(BaseModel):
    """Study preferences rendered at the Full level."""

    model_config = ConfigDict(frozen=True)

    difficulty: str = "medium"
    session_duration_minutes: int = Field(default=60, ge=0)
    break_interval_minutes: int = Field(default=15, ge=0)
    preferred_time: str = "evening"


class ProfileData(BaseModel):
    """User profile and learning statistics from the persistent store."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str = ""
    academic_level: str = ""
    subjects: list[str] = Field(default_factory=list)
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    study_goals: list[str] = Field(default_factory=list)
    learning_style: str | None = None
    exam_target: str | None = None

    # Standing
    streak: int = Field(default=0, ge=0)
    level: int = Field(default=1, ge=0)
    points: int = Field(default=0, ge=0)
    accuracy: float = Field(default=0.0, ge=0.0, le=100.0, description="Overall accuracy percentage")
    total_topics: int = Field(default=0, ge=0)
    completed_topics: int = Field(default=0, ge=0)
    study_hours: float = Field(default=0.0, ge=0.0)

    # 7-day activity
    last_study_at: datetime | None = None
    questions_answered_7d: int = Field(default=0, ge=0)
    correct_answers_7d: int = Field(default=0, ge=0)
    strong_topics: list[str] = Field(default_factory=list)
    improving_topics: list[str] = Field(default_factory=list)
    pending_topics: list[str] = Field(default_factory=list)
    revision_queue: list[str] = Field(default_factory=list)

    preferences: StudyPreferences = Field(default_factory=StudyPreferences)


class MemoryRecord(BaseModel):
    """A conversation memory."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    relevance_score: float = Field(default=0.5, ge=0.0, le=1.0)
    timestamp: datetime
    tags: list[str] = Field(default_factory=list)
    role: Role = Role.USER
    access_count: int = Field(default=0, ge=0)


class KnowledgeRecord(BaseModel):
    """A knowledge store record."""

    model_config = ConfigDict(frozen=True)

    id: str
    content: str
    title: str = ""
    reliability: float = Field(default=0.5, ge=0.0, le=1.0)
    verification_status: VerificationStatus = VerificationStatus.PENDING
    topics: list[str] = Field(default_factory=list)
    source: str = ""
    fact_type: str = "general"
    timestamp: datetime | None = None


class KnowledgeFilters(BaseModel):
    """Filters passed through to the knowledge store."""

    model_config = ConfigDict(frozen=True)

    topics: list[str] = Field(default_factory=list)
    min_reliability: float = Field(default=0.0, ge=0.0, le=1.0)
    limit: int = Field(default=20, ge=0)


class RawContextData(BaseModel):
    """Everything the level builder needs for one snapshot."""

    model_config = ConfigDict(frozen=True)

    profile: ProfileData | None = None
    memories: list[MemoryRecord] = Field(default_factory=list)
    knowledge: list[KnowledgeRecord] = Field(default_factory=list)
    external: list[ExternalEntry] = Field(default_factory=list)
    system: SystemStatus | None = None


class ProfileFetcher(ABC):
    """Loads a user profile."""

    @abstractmethod
    def fetch_profile(self, user_id: str) -> ProfileData | None:
        """Return the profile, or None when the user has none."""
        pass


class MemoryFetcher(ABC):
    """Loads recent conversation memories."""

    @abstractmethod
    def fetch_recent_memories(self, user_id: str, limit: int) -> list[MemoryRecord]:
        """Return up to limit memories, most recent first."""
        pass


class KnowledgeFetcher(ABC):
    """Loads knowledge records relevant to a query."""

    @abstractmethod
    def fetch_knowledge(self, query: str | None, filters: KnowledgeFilters) -> list[KnowledgeRecord]:
        """Return knowledge records matching the query and filters."""
        pass
