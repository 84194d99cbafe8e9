"""
Level Builder

Builds Light/Recent/Selective/Full context snapshots from raw upstream data.

Each level renders profile text of increasing detail under a fixed
character and token ceiling. When rendered text exceeds the ceiling a
deterministic compression pass runs, cheapest and least lossy step first:
1. whitespace and blank-line collapsing
2. abbreviation substitution (aggressiveness >= medium)
3. dropping non-critical sentences (aggressiveness >= high)
4. hard truncation with an ellipsis marker
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import UTC, datetime

from ..config.schemas import BuilderConfig, CompressionLevel
from ..token_optimization.counter import TokenCounter
from . import enrichment
from . import text as textops
from .enrichment import ContextMetadata
from .levels import ContextLevel, LevelSpec
from .models import (
    ContextItem,
    ContextSnapshot,
    ConversationTurn,
    ImportanceTier,
    KnowledgeEntry,
    SystemStatus,
    UserProfile,
)
from .sources import KnowledgeRecord, MemoryRecord, ProfileData, RawContextData

logger = logging.getLogger(__name__)

FALLBACK_SUMMARY = "Student learning actively. Context optimization temporarily unavailable."
LIGHT_FALLBACK = "Student profile: Learning actively"
RECENT_FALLBACK = "Recent learning activity: Active student"

LEARNING_STYLE_HINTS: dict[str, str] = {
    "visual": "Prefers visual explanations with diagrams and charts",
    "auditory": "Prefers verbal explanations and discussion",
    "kinesthetic": "Prefers hands-on examples and practice problems",
    "reading": "Prefers detailed written explanations",
}


def memory_tier(record: MemoryRecord) -> ImportanceTier:
    """Importance tier for a memory: explicit tags win, then relevance."""
    tags = {t.lower() for t in record.tags}
    if "critical" in tags:
        return ImportanceTier.CRITICAL
    if "important" in tags or record.relevance_score >= 0.8:
        return ImportanceTier.IMPORTANT
    if record.relevance_score >= 0.5:
        return ImportanceTier.CONTEXTUAL
    return ImportanceTier.SUPPLEMENTARY


def knowledge_tier(record: KnowledgeRecord) -> ImportanceTier:
    if record.reliability >= 0.8:
        return ImportanceTier.IMPORTANT
    if record.reliability >= 0.5:
        return ImportanceTier.CONTEXTUAL
    return ImportanceTier.SUPPLEMENTARY


class LevelBuilder:
    """Assembles snapshots for a context level. Pure apart from the clock."""

    def __init__(
        self,
        counter: TokenCounter,
        config: BuilderConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.counter = counter
        self.config = config or BuilderConfig()
        self._clock = clock or (lambda: datetime.now(UTC))

    def build(
        self,
        user_id: str,
        level: ContextLevel,
        raw: RawContextData,
        query: str | None = None,
        include_memories: bool = True,
        include_preferences: bool = True,
    ) -> ContextSnapshot:
        """
        Build a snapshot for the given level.

        Args:
            user_id: User the context is built for
            level: Target context level
            raw: Upstream profile, memories, knowledge, external and system data
            query: Current request query, recorded on the snapshot
            include_memories: Turn memories into conversation items and highlights
            include_preferences: Render study preferences at the Full level

        Returns:
            New ContextSnapshot (a fallback snapshot when the profile is missing)
        """
        if raw.profile is None:
            logger.warning(
                "Profile data unavailable, building fallback snapshot",
                extra={"user_id": user_id, "level": level.value},
            )
            return self.build_fallback(user_id, level, query)

        now = self._clock()
        cap = self.config.max_items_per_category
        memories = sorted(raw.memories, key=lambda m: (-m.relevance_score, m.id)) if include_memories else []

        rendered = self.render_level_text(level, raw.profile, memories, now, include_preferences)
        rendered = self._integrate_learning_style(rendered, raw.profile.learning_style)
        summary = self.compress_to_ceiling(rendered, level.spec)
        if query and self.config.enrich_low_relevance:
            summary = self._enrich_for_query(rendered, summary, query, raw.profile, memories, level.spec)

        profile = UserProfile(
            user_id=user_id,
            name=raw.profile.name,
            academic_level=raw.profile.academic_level,
            subjects=tuple(raw.profile.subjects),
            strengths=tuple(raw.profile.strengths),
            weaknesses=tuple(raw.profile.weaknesses),
            study_goals=tuple(raw.profile.study_goals),
            learning_style=raw.profile.learning_style,
            summary=summary,
            token_count=self.counter.count(summary),
        )

        conversation = sorted(
            (self._memory_to_turn(m) for m in memories[:cap]),
            key=lambda turn: (turn.timestamp, turn.id),
        )
        knowledge = [self._knowledge_to_entry(k, now) for k in raw.knowledge[:cap]]
        external = list(raw.external[:cap])

        system = raw.system
        if system is not None and system.token_count == 0:
            system = system.model_copy(update={"token_count": self.counter.count(system.render())})

        conversation, knowledge, external = _drop_duplicate_ids(conversation, knowledge, external)

        snapshot = ContextSnapshot(
            user_id=user_id,
            level=level,
            query=query,
            profile=profile,
            conversation=tuple(conversation),
            knowledge=tuple(knowledge),
            external=tuple(external),
            system=system,
            created_at=now,
        )
        logger.debug(
            f"Built {level.value} snapshot for {user_id}",
            extra={
                "user_id": user_id,
                "level": level.value,
                "profile_tokens": profile.token_count,
                "total_tokens": snapshot.total_tokens,
                "items": snapshot.item_count(),
            },
        )
        return snapshot

    def build_fallback(self, user_id: str, level: ContextLevel | None = None, query: str | None = None) -> ContextSnapshot:
        """Minimal safe snapshot used when upstream data is unavailable."""
        profile = UserProfile(
            user_id=user_id,
            summary=FALLBACK_SUMMARY,
            token_count=self.counter.count(FALLBACK_SUMMARY),
        )
        return ContextSnapshot(user_id=user_id, level=level, query=query, profile=profile, created_at=self._clock())

    def _enrich_for_query(
        self,
        rendered: str,
        summary: str,
        query: str,
        profile: ProfileData,
        memories: list[MemoryRecord],
        spec: LevelSpec,
    ) -> str:
        """
        Append query-driven profile sections when the level text scores low.

        The level text is refitted into the room the sections leave (never
        less than half the ceiling) and the result is fitted to the ceiling.
        """
        score = enrichment.context_relevance(summary, query)
        if score is None or score >= self.config.min_context_relevance:
            return summary
        sections = enrichment.enrichment_sections(query, profile, memories)
        if not sections:
            return summary

        extra = "\n".join(sections)
        room = replace(
            spec,
            max_chars=max(spec.max_chars // 2, spec.max_chars - len(extra) - 1),
            max_tokens=max(spec.max_tokens // 2, spec.max_tokens - self.counter.count(extra) - 1),
        )
        base = self.compress_to_ceiling(rendered, room)
        enriched = self.compress_to_ceiling(f"{base}\n{extra}", spec)
        logger.debug(
            f"Enriched {spec.level.value} text for query",
            extra={
                "relevance": round(score, 3),
                "sections": [section.split(":", 1)[0] for section in sections],
                "length": len(enriched),
            },
        )
        return enriched

    def describe(self, snapshot: ContextSnapshot, raw: RawContextData) -> ContextMetadata:
        """Metadata for a built snapshot's profile text and its upstream data."""
        text = snapshot.profile.summary if snapshot.profile is not None else ""
        return enrichment.extract_metadata(text, raw.profile, list(raw.memories), list(raw.knowledge))

    # ------------------------------------------------------------------
    # Level text
    # ------------------------------------------------------------------

    def render_level_text(
        self,
        level: ContextLevel,
        profile: ProfileData,
        memories: list[MemoryRecord],
        now: datetime,
        include_preferences: bool = True,
    ) -> str:
        if level == ContextLevel.LIGHT:
            return self._light_text(profile)
        if level == ContextLevel.RECENT:
            return self._recent_text(profile, now)
        if level == ContextLevel.SELECTIVE:
            return self._selective_text(profile, memories, now)
        return self._full_text(profile, memories, now, include_preferences)

    @staticmethod
    def _identity_line(profile: ProfileData) -> str:
        ident = profile.name or "Student"
        if profile.academic_level:
            ident = f"{ident} ({profile.academic_level})"
        if profile.subjects:
            ident = f"{ident} studying {', '.join(profile.subjects[:3])}"
        return ident

    def _standing_parts(self, profile: ProfileData) -> list[str]:
        parts = []
        if profile.accuracy > 0:
            parts.append(f"Accuracy: {round(profile.accuracy)}%")
        if profile.level > 1:
            parts.append(f"Level {profile.level}, {profile.streak} day streak")
        return parts

    def _light_text(self, profile: ProfileData) -> str:
        parts = [self._identity_line(profile), *self._standing_parts(profile)]
        text = ". ".join(p for p in parts if p)
        return text or LIGHT_FALLBACK

    @staticmethod
    def _days_since(moment: datetime | None, now: datetime) -> int | None:
        if moment is None:
            return None
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        return max(0, (now - moment).days)

    def _activity_parts(self, profile: ProfileData, now: datetime) -> list[str]:
        parts = []
        days = self._days_since(profile.last_study_at, now)
        if days is not None and days <= 7:
            parts.append(f"Last study: {days} days ago")
        if profile.questions_answered_7d > 0:
            parts.append(f"This week: {profile.questions_answered_7d} questions, {profile.correct_answers_7d} correct")
        if profile.strong_topics:
            parts.append(f"Strong: {', '.join(profile.strong_topics[:2])}")
        if profile.improving_topics:
            parts.append(f"Improving: {', '.join(profile.improving_topics[:2])}")
        return parts

    def _recent_text(self, profile: ProfileData, now: datetime) -> str:
        activity = self._activity_parts(profile, now)
        if not activity and not profile.name:
            return RECENT_FALLBACK
        parts = [self._identity_line(profile), *self._standing_parts(profile), *activity]
        return "\n".join(parts)

    def _metric_lines(self, profile: ProfileData) -> list[str]:
        lines = [
            f"- Accuracy: {round(profile.accuracy)}%",
            f"- Level: {profile.level} ({profile.points} points)",
            f"- Study streak: {profile.streak} days",
        ]
        if profile.total_topics:
            lines.append(f"- Progress: {profile.completed_topics}/{profile.total_topics} topics")
        if profile.study_hours:
            lines.append(f"- Study time: {profile.study_hours:g} hours")
        return lines

    def _analysis_lines(self, profile: ProfileData) -> list[str]:
        lines = []
        if profile.strengths:
            lines.append(f"- Strengths: {', '.join(profile.strengths[:3])}")
        if profile.weaknesses:
            lines.append(f"- Weaknesses: {', '.join(profile.weaknesses[:3])}")
        return lines

    def _recent_activity_lines(self, profile: ProfileData, now: datetime) -> list[str]:
        lines = []
        if profile.questions_answered_7d:
            lines.append(f"- Questions: {profile.questions_answered_7d} ({profile.correct_answers_7d} correct)")
        days = self._days_since(profile.last_study_at, now)
        if days is not None:
            lines.append(f"- Last study: {days} days ago")
        return lines

    def _highlight_lines(self, memories: list[MemoryRecord], with_scores: bool = False) -> list[str]:
        lines = []
        for memory in memories[: self.config.memory_highlights]:
            excerpt = textops.hard_truncate(textops.collapse_whitespace(memory.content).replace("\n", " "), 80)
            if with_scores:
                lines.append(f"• {excerpt} (relevance: {memory.relevance_score:.2f})")
            else:
                lines.append(f"- {excerpt}")
        return lines

    def _cross_referenced(self, profile: ProfileData, memories: list[MemoryRecord], exclude: set[str]) -> list[MemoryRecord]:
        anchors = {s.lower() for s in (*profile.subjects, *profile.weaknesses)}
        if not anchors:
            return []
        return [
            m for m in memories if m.id not in exclude and anchors.intersection(t.lower() for t in m.tags)
        ][: self.config.memory_highlights]

    def _selective_text(self, profile: ProfileData, memories: list[MemoryRecord], now: datetime) -> str:
        sections: list[tuple[str, list[str]]] = [
            ("STUDENT PROFILE:", [f"- {self._identity_line(profile)}", *(f"- Goal: {g}" for g in profile.study_goals[:2])]),
            ("PERFORMANCE METRICS:", self._metric_lines(profile)),
            ("PERFORMANCE ANALYSIS:", self._analysis_lines(profile)),
            ("RECENT ACTIVITY (7 days):", self._recent_activity_lines(profile, now)),
            ("RECENT MEMORIES:", self._highlight_lines(memories)),
            ("LEARNING STYLE:", [f"- {profile.learning_style}"] if profile.learning_style else []),
            ("EXAM TARGET:", [f"- {profile.exam_target}"] if profile.exam_target else []),
        ]
        return _render_sections(sections)

    def _full_text(
        self,
        profile: ProfileData,
        memories: list[MemoryRecord],
        now: datetime,
        include_preferences: bool,
    ) -> str:
        prefs = profile.preferences
        shown = {m.id for m in memories[: self.config.memory_highlights]}
        cross = self._cross_referenced(profile, memories, shown)

        activity = self._recent_activity_lines(profile, now)
        if profile.pending_topics:
            activity.append(f"- Pending topics: {', '.join(profile.pending_topics[:5])}")
        if profile.revision_queue:
            activity.append(f"- Revision queue: {', '.join(profile.revision_queue[:5])}")

        sections: list[tuple[str, list[str]]] = [
            (
                "=== COMPLETE STUDENT PROFILE ===",
                [
                    f"- {self._identity_line(profile)}",
                    *(f"- Goal: {g}" for g in profile.study_goals),
                    *([f"- Exam target: {profile.exam_target}"] if profile.exam_target else []),
                ],
            ),
            ("=== PERFORMANCE ===", self._metric_lines(profile)),
            ("=== STRENGTHS & WEAKNESSES ===", self._analysis_lines(profile)),
            ("=== RECENT ACTIVITY ===", activity),
            (
                "=== STUDY PREFERENCES ===",
                [
                    f"- Difficulty: {prefs.difficulty}",
                    f"- Session duration: {prefs.session_duration_minutes} minutes",
                    f"- Break interval: {prefs.break_interval_minutes} minutes",
                    f"- Preferred time: {prefs.preferred_time}",
                    *([f"- Learning style: {profile.learning_style}"] if profile.learning_style else []),
                ]
                if include_preferences
                else [],
            ),
            ("=== RELEVANT LEARNING MEMORIES ===", self._highlight_lines(memories, with_scores=True)),
            ("=== CROSS-REFERENCED MEMORIES ===", self._highlight_lines(cross, with_scores=True)),
        ]
        return _render_sections(sections)

    @staticmethod
    def _integrate_learning_style(text: str, learning_style: str | None) -> str:
        if not learning_style:
            return text
        style = learning_style.lower()
        if style in text.lower():
            return text
        hint = LEARNING_STYLE_HINTS.get(style, f"Learning style: {learning_style}")
        separator = "\n" if "\n" in text else ". "
        return f"{text}{separator}{hint}"

    # ------------------------------------------------------------------
    # Compression pass
    # ------------------------------------------------------------------

    def compress_to_ceiling(self, text: str, spec: LevelSpec) -> str:
        """
        Fit text under the level's character and token ceilings.

        Steps run in order and each only while the text is still too long.
        """
        original_length = len(text)
        aggressiveness = self.config.compression_aggressiveness
        steps: list[str] = []

        if len(text) > spec.max_chars:
            text = textops.collapse_whitespace(text)
            steps.append("whitespace")
        if len(text) > spec.max_chars and aggressiveness.rank >= CompressionLevel.MEDIUM.rank:
            text = textops.apply_abbreviations(text)
            steps.append("abbreviations")
        if len(text) > spec.max_chars and aggressiveness.rank >= CompressionLevel.HIGH.rank:
            text = textops.keep_critical_sentences(text)
            steps.append("critical_sentences")
        if len(text) > spec.max_chars:
            text = textops.hard_truncate(text, spec.max_chars)
            steps.append("truncation")

        if self.counter.count(text) > spec.max_tokens:
            text = self.counter.truncate(text, spec.max_tokens)
            steps.append("token_truncation")

        if steps:
            ratio = len(text) / original_length if original_length else 1.0
            logger.debug(
                f"Compressed {spec.level.value} text",
                extra={
                    "steps": steps,
                    "ratio": round(ratio, 3),
                    "target_ratio": spec.compression_ratio,
                    "length": len(text),
                },
            )
        return text

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    def _memory_to_turn(self, record: MemoryRecord) -> ConversationTurn:
        return ConversationTurn(
            id=record.id,
            content=record.content,
            token_count=self.counter.count(record.content),
            timestamp=record.timestamp,
            quality_score=record.relevance_score,
            importance=memory_tier(record),
            tags=frozenset(t.lower() for t in record.tags),
            access_count=record.access_count,
            role=record.role,
        )

    def _knowledge_to_entry(self, record: KnowledgeRecord, now: datetime) -> KnowledgeEntry:
        return KnowledgeEntry(
            id=record.id,
            content=record.content,
            token_count=self.counter.count(record.content),
            timestamp=record.timestamp or now,
            quality_score=record.reliability,
            importance=knowledge_tier(record),
            tags=frozenset(t.lower() for t in record.topics),
            title=record.title,
            source=record.source,
            reliability=record.reliability,
            verification_status=record.verification_status,
            fact_type=record.fact_type,
            topics=tuple(record.topics),
        )


def _render_sections(sections: list[tuple[str, list[str]]]) -> str:
    blocks = []
    for header, lines in sections:
        if lines:
            blocks.append("\n".join([header, *lines]))
    return "\n\n".join(blocks)


def _drop_duplicate_ids(*groups: Iterable[ContextItem]) -> list[list]:
    seen: set[str] = set()
    result: list[list] = []
    for group in groups:
        kept = []
        for item in group:
            if item.id in seen:
                logger.debug(f"Dropping duplicate item id {item.id}")
                continue
            seen.add(item.id)
            kept.append(item)
        result.append(kept)
    return result
