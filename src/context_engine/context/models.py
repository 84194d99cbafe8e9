"""
Context Model

Immutable value types for an assembled context and its token accounting.

Snapshots are never mutated in place. Every transformation goes through
evolve() (or the helpers built on it), which constructs and re-validates a
new snapshot, so an original and an optimized view never share mutable state.
"""

from collections.abc import Iterable, Iterator, Mapping
from datetime import UTC, datetime
from enum import Enum
from typing import ClassVar, Self

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_serializer, field_validator, model_validator

from .levels import ContextLevel


class ImportanceTier(str, Enum):
    """Importance tier of a context item."""

    CRITICAL = "critical"
    IMPORTANT = "important"
    CONTEXTUAL = "contextual"
    SUPPLEMENTARY = "supplementary"

    @property
    def priority(self) -> float:
        """Numeric priority shared by the scorer, allocator and optimizer."""
        return TIER_PRIORITY[self]


TIER_PRIORITY: dict[ImportanceTier, float] = {
    ImportanceTier.CRITICAL: 1.0,
    ImportanceTier.IMPORTANT: 0.8,
    ImportanceTier.CONTEXTUAL: 0.6,
    ImportanceTier.SUPPLEMENTARY: 0.4,
}


class ItemType(str, Enum):
    """Snapshot content categories, in allocation order."""

    PROFILE = "profile"
    CONVERSATION = "conversation"
    KNOWLEDGE = "knowledge"
    EXTERNAL = "external"
    SYSTEM = "system"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    PENDING = "pending"
    DISPUTED = "disputed"

    @property
    def score(self) -> float:
        return _VERIFICATION_SCORE[self]


_VERIFICATION_SCORE = {
    VerificationStatus.VERIFIED: 1.0,
    VerificationStatus.PENDING: 0.6,
    VerificationStatus.DISPUTED: 0.3,
}


class SourceType(str, Enum):
    WEB = "web"
    API = "api"
    DOCUMENT = "document"
    DATABASE = "database"


class SystemState(str, Enum):
    OPERATIONAL = "operational"
    DEGRADED = "degraded"
    MAINTENANCE = "maintenance"


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class ContextItem(BaseModel):
    """
    Base type for snapshot items.

    Concrete subclasses: ConversationTurn, KnowledgeEntry, ExternalEntry.
    """

    model_config = ConfigDict(frozen=True)

    item_type: ClassVar[ItemType]

    id: str = Field(min_length=1, description="Identity, unique within a snapshot")
    content: str = Field(description="Text content")
    token_count: int = Field(ge=0, description="Tokens occupied by content")
    timestamp: datetime = Field(description="When the item was produced")
    quality_score: float = Field(default=0.5, ge=0.0, le=1.0)
    importance: ImportanceTier = Field(default=ImportanceTier.CONTEXTUAL)
    tags: frozenset[str] = Field(default_factory=frozenset)
    access_count: int = Field(default=0, ge=0, description="How often the item was retrieved")
    linked_ids: tuple[str, ...] = Field(default=(), description="Identities of related items")

    @field_validator("timestamp")
    @classmethod
    def validate_timestamp(cls, v: datetime) -> datetime:
        """Treat naive timestamps as UTC."""
        return _ensure_aware(v)

    @field_serializer("tags", when_used="json")
    def serialize_tags(self, tags: frozenset[str]) -> list[str]:
        """Sorted, so equal items always dump to identical JSON."""
        return sorted(tags)

    @property
    def is_critical(self) -> bool:
        return self.importance == ImportanceTier.CRITICAL or "critical" in self.tags

    def quality_signal(self) -> float:
        """Quality factor used by relevance scoring."""
        return self.quality_score

    def age_hours(self, now: datetime) -> float:
        return max(0.0, (_ensure_aware(now) - self.timestamp).total_seconds() / 3600)

    def with_content(self, content: str, token_count: int) -> Self:
        """New item with replaced text."""
        return self.model_copy(update={"content": content, "token_count": max(0, token_count)})


class ConversationTurn(ContextItem):
    """A turn of conversation history."""

    item_type: ClassVar[ItemType] = ItemType.CONVERSATION

    role: Role = Field(default=Role.USER)
    category: str | None = Field(default=None, description="Conversation category, e.g. question or explanation")


class KnowledgeEntry(ContextItem):
    """A retrieved knowledge record."""

    item_type: ClassVar[ItemType] = ItemType.KNOWLEDGE

    title: str = ""
    source: str = ""
    reliability: float = Field(default=0.5, ge=0.0, le=1.0)
    verification_status: VerificationStatus = Field(default=VerificationStatus.PENDING)
    fact_type: str = "general"
    topics: tuple[str, ...] = ()

    def quality_signal(self) -> float:
        return 0.7 * self.reliability + 0.3 * self.verification_status.score


class ExternalEntry(ContextItem):
    """Data from an external source."""

    item_type: ClassVar[ItemType] = ItemType.EXTERNAL

    source_type: SourceType = Field(default=SourceType.WEB)
    source: str = ""
    reliability: float = Field(default=0.5, ge=0.0, le=1.0)

    def quality_signal(self) -> float:
        return self.reliability


class UserProfile(BaseModel):
    """Profile summary rendered for a context level."""

    model_config = ConfigDict(frozen=True)

    user_id: str
    name: str = ""
    academic_level: str = ""
    subjects: tuple[str, ...] = ()
    strengths: tuple[str, ...] = ()
    weaknesses: tuple[str, ...] = ()
    study_goals: tuple[str, ...] = ()
    learning_style: str | None = None
    summary: str = Field(default="", description="Level-formatted profile text")
    token_count: int = Field(default=0, ge=0)

    def compress_lists(self) -> "UserProfile":
        """Cap subjects at 5 and strengths/weaknesses at 3."""
        return self.model_copy(
            update={
                "subjects": self.subjects[:5],
                "strengths": self.strengths[:3],
                "weaknesses": self.weaknesses[:3],
            }
        )

    def with_summary(self, summary: str, token_count: int) -> "UserProfile":
        return self.model_copy(update={"summary": summary, "token_count": max(0, token_count)})


class SystemStatus(BaseModel):
    """Host system status included for the model's awareness."""

    model_config = ConfigDict(frozen=True)

    status: SystemState = Field(default=SystemState.OPERATIONAL)
    active_services: tuple[str, ...] = ()
    alerts: tuple[str, ...] = ()
    token_count: int = Field(default=0, ge=0)

    def render(self) -> str:
        parts = [f"System status: {self.status.value}"]
        if self.active_services:
            parts.append(f"Services: {', '.join(self.active_services)}")
        if self.alerts:
            parts.append(f"Alerts: {'; '.join(self.alerts)}")
        return ". ".join(parts)


class ContextSnapshot(BaseModel):
    """
    Point-in-time aggregate of everything assembled for one request.

    total_tokens is always derived from contents, never stored.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    level: ContextLevel | None = None
    query: str | None = None
    profile: UserProfile | None = None
    conversation: tuple[ConversationTurn, ...] = ()
    knowledge: tuple[KnowledgeEntry, ...] = ()
    external: tuple[ExternalEntry, ...] = ()
    system: SystemStatus | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @model_validator(mode="after")
    def validate_unique_ids(self) -> "ContextSnapshot":
        """No two items may share an identity."""
        seen: set[str] = set()
        for item in self.items():
            if item.id in seen:
                raise ValueError(f"duplicate item id in snapshot: {item.id}")
            seen.add(item.id)
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_tokens(self) -> int:
        return sum(self.category_tokens().values())

    def items(self) -> Iterator[ContextItem]:
        """Iterate conversation, knowledge and external items in order."""
        yield from self.conversation
        yield from self.knowledge
        yield from self.external

    def item_ids(self) -> set[str]:
        return {item.id for item in self.items()}

    def item_count(self) -> int:
        return len(self.conversation) + len(self.knowledge) + len(self.external)

    def category_items(self, category: ItemType) -> tuple[ContextItem, ...]:
        if category == ItemType.CONVERSATION:
            return self.conversation
        if category == ItemType.KNOWLEDGE:
            return self.knowledge
        if category == ItemType.EXTERNAL:
            return self.external
        return ()

    def category_tokens(self) -> dict[ItemType, int]:
        """Token usage per category."""
        return {
            ItemType.PROFILE: self.profile.token_count if self.profile else 0,
            ItemType.CONVERSATION: sum(item.token_count for item in self.conversation),
            ItemType.KNOWLEDGE: sum(item.token_count for item in self.knowledge),
            ItemType.EXTERNAL: sum(item.token_count for item in self.external),
            ItemType.SYSTEM: self.system.token_count if self.system else 0,
        }

    def get_item(self, item_id: str) -> ContextItem | None:
        for item in self.items():
            if item.id == item_id:
                return item
        return None

    def evolve(self, **changes: object) -> "ContextSnapshot":
        """Build a new, validated snapshot with the given fields replaced."""
        data = {name: getattr(self, name) for name in type(self).model_fields}
        data.update(changes)
        return type(self)(**data)

    def without_items(self, item_ids: Iterable[str]) -> "ContextSnapshot":
        """New snapshot without the given items."""
        drop = set(item_ids)
        if not drop:
            return self
        return self.evolve(
            conversation=tuple(i for i in self.conversation if i.id not in drop),
            knowledge=tuple(i for i in self.knowledge if i.id not in drop),
            external=tuple(i for i in self.external if i.id not in drop),
        )

    def with_replaced_items(self, replacements: Mapping[str, ContextItem]) -> "ContextSnapshot":
        """New snapshot with items swapped by id, preserving order."""
        if not replacements:
            return self
        return self.evolve(
            conversation=tuple(replacements.get(i.id, i) for i in self.conversation),
            knowledge=tuple(replacements.get(i.id, i) for i in self.knowledge),
            external=tuple(replacements.get(i.id, i) for i in self.external),
        )
