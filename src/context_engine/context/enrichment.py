"""
Query Relevance and Context Metadata

Scores rendered level text against the request query, builds enrichment
sections for queries the text does not answer, and extracts descriptive
metadata (topics, subjects, difficulty, accuracy) from the final text.
"""

import re
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from .sources import KnowledgeRecord, MemoryRecord, ProfileData

MIN_CONTEXT_RELEVANCE = 0.6
MIN_QUERY_WORDS = 10

RELEVANT_TERMS = (
    "progress",
    "performance",
    "accuracy",
    "study",
    "topics",
    "subjects",
    "level",
    "streak",
    "questions",
    "weak",
    "strong",
)

# (query keywords, section header)
ENRICHMENT_TRIGGERS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("progress", "performance"), "DETAILED PROGRESS"),
    (("accuracy", "score"), "ACCURACY ANALYSIS"),
    (("weak", "struggle"), "CHALLENGING AREAS"),
    (("strong", "good"), "STRONG AREAS"),
)

_TOPIC_PATTERNS = (
    re.compile(r"\btopics?:\s*([^.\n]+)", re.IGNORECASE),
    re.compile(r"\b(?:strong|improving|focus):\s*([^.\n]+)", re.IGNORECASE),
)
_SUBJECT_PATTERNS = (
    re.compile(r"\bstudying\s+([^.\n(]+)", re.IGNORECASE),
    re.compile(r"\bsubjects?:\s*([^.\n]+)", re.IGNORECASE),
)
_ACCURACY = re.compile(r"\bacc(?:uracy)?:?\s*(\d+(?:\.\d+)?)%", re.IGNORECASE)
_LIST_SPLIT = re.compile(r"[,;]")


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class ContextMetadata(BaseModel):
    """Descriptive metadata of a built context."""

    model_config = ConfigDict(frozen=True)

    topics: tuple[str, ...] = ()
    subjects: tuple[str, ...] = ()
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM)
    accuracy: float = Field(default=0.0, ge=0.0, le=100.0, description="Accuracy percentage found in the text")
    last_activity: datetime | None = None
    learning_style: str | None = None
    exam_target: str | None = None


def context_relevance(text: str, query: str | None) -> float | None:
    """
    How well text answers a query, in [0, 1].

    One point per query word present in the text, half a point per domain
    term in both, divided by max(query words, 10). None without a query.
    """
    if not query or not query.strip():
        return None
    query_lower = query.lower()
    text_lower = text.lower()
    query_words = query_lower.split()
    text_words = set(text_lower.split())

    matches = float(sum(1 for word in query_words if word in text_words))
    matches += 0.5 * sum(1 for term in RELEVANT_TERMS if term in query_lower and term in text_lower)
    return min(1.0, matches / max(len(query_words), MIN_QUERY_WORDS))


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for value in values:
        key = value.lower()
        if value and key not in seen:
            seen.add(key)
            result.append(value)
    return result


def _section_body(header: str, profile: ProfileData, memories: list[MemoryRecord]) -> str | None:
    if header == "DETAILED PROGRESS":
        parts = []
        if profile.total_topics:
            parts.append(f"{profile.completed_topics}/{profile.total_topics} topics completed")
        if profile.improving_topics:
            parts.append(f"improving in {', '.join(profile.improving_topics[:3])}")
        if memories:
            parts.append(f"{len(memories)} recent sessions")
        return ", ".join(parts) or None
    if header == "ACCURACY ANALYSIS":
        parts = []
        if profile.accuracy > 0:
            parts.append(f"{profile.accuracy:.1f}% overall")
        if profile.questions_answered_7d:
            parts.append(f"{profile.correct_answers_7d}/{profile.questions_answered_7d} correct this week")
        return ", ".join(parts) or None
    if header == "CHALLENGING AREAS":
        areas = _dedupe([*profile.weaknesses, *profile.revision_queue])
        return ", ".join(areas) or None
    areas = _dedupe([*profile.strengths, *profile.strong_topics])
    return ", ".join(areas) or None


def enrichment_sections(query: str, profile: ProfileData, memories: list[MemoryRecord]) -> list[str]:
    """Sections answering the query's progress, accuracy, weak-area and strong-area keywords."""
    query_lower = query.lower()
    sections = []
    for keywords, header in ENRICHMENT_TRIGGERS:
        if not any(keyword in query_lower for keyword in keywords):
            continue
        body = _section_body(header, profile, memories)
        if body:
            sections.append(f"{header}: {body}")
    return sections


def _extract_list(text: str, patterns: tuple[re.Pattern[str], ...]) -> list[str]:
    found = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            found.extend(part.strip() for part in _LIST_SPLIT.split(match.group(1)))
    return _dedupe(found)


def extract_difficulty(text: str) -> Difficulty:
    lower = text.lower()
    if "hard" in lower or "difficult" in lower:
        return Difficulty.HARD
    if "easy" in lower or "simple" in lower:
        return Difficulty.EASY
    return Difficulty.MEDIUM


def extract_accuracy(text: str) -> float:
    match = _ACCURACY.search(text)
    return min(100.0, float(match.group(1))) if match else 0.0


def extract_metadata(
    text: str,
    profile: ProfileData | None = None,
    memories: list[MemoryRecord] | None = None,
    knowledge: list[KnowledgeRecord] | None = None,
) -> ContextMetadata:
    """
    Metadata for a built context.

    Topics, subjects, difficulty and accuracy are read from the text;
    activity, learning style and exam target come from upstream data.
    """
    memories = memories or []
    knowledge = knowledge or []

    subjects = _extract_list(text, _SUBJECT_PATTERNS)
    if not subjects and profile is not None:
        subjects = list(profile.subjects)

    last_activity = _aware(profile.last_study_at) if profile is not None and profile.last_study_at else None
    if memories:
        latest = max(_aware(m.timestamp) for m in memories)
        if last_activity is None or latest > last_activity:
            last_activity = latest

    exam_target = profile.exam_target if profile is not None else None
    if exam_target is None:
        exam_target = next((k.content for k in knowledge if k.fact_type == "exam_target"), None)

    return ContextMetadata(
        topics=tuple(_extract_list(text, _TOPIC_PATTERNS)),
        subjects=tuple(subjects),
        difficulty=extract_difficulty(text),
        accuracy=extract_accuracy(text),
        last_activity=last_activity,
        learning_style=profile.learning_style if profile is not None else None,
        exam_target=exam_target,
    )
