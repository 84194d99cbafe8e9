"""
Context Module

Value types for assembled contexts, upstream data contracts, and the
level builder that turns raw data into snapshots.
"""

from .builder import FALLBACK_SUMMARY, LevelBuilder
from .enrichment import (
    MIN_CONTEXT_RELEVANCE,
    ContextMetadata,
    Difficulty,
    context_relevance,
    enrichment_sections,
    extract_metadata,
)
from .levels import LEVEL_SPECS, ContextLevel, LevelSpec
from .models import (
    TIER_PRIORITY,
    ContextItem,
    ContextSnapshot,
    ConversationTurn,
    ExternalEntry,
    ImportanceTier,
    ItemType,
    KnowledgeEntry,
    Role,
    SourceType,
    SystemState,
    SystemStatus,
    UserProfile,
    VerificationStatus,
)
from .sources import (
    KnowledgeFetcher,
    KnowledgeFilters,
    KnowledgeRecord,
    MemoryFetcher,
    MemoryRecord,
    ProfileData,
    ProfileFetcher,
    RawContextData,
    StudyPreferences,
)

__all__ = [
    # Levels
    "ContextLevel",
    "LevelSpec",
    "LEVEL_SPECS",
    # Models
    "ContextItem",
    "ConversationTurn",
    "KnowledgeEntry",
    "ExternalEntry",
    "UserProfile",
    "SystemStatus",
    "ContextSnapshot",
    "ImportanceTier",
    "TIER_PRIORITY",
    "ItemType",
    "Role",
    "SourceType",
    "SystemState",
    "VerificationStatus",
    # Upstream contracts
    "ProfileData",
    "StudyPreferences",
    "MemoryRecord",
    "KnowledgeRecord",
    "KnowledgeFilters",
    "RawContextData",
    "ProfileFetcher",
    "MemoryFetcher",
    "KnowledgeFetcher",
    # Builder
    "LevelBuilder",
    "FALLBACK_SUMMARY",
    # Query relevance and metadata
    "ContextMetadata",
    "Difficulty",
    "MIN_CONTEXT_RELEVANCE",
    "context_relevance",
    "enrichment_sections",
    "extract_metadata",
]
