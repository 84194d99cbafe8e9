"""
Deterministic text compression primitives.

Shared by the level builder (level text) and the optimizer (item text).
All functions are pure; the same input always yields the same output.
"""

import re

from ..config.schemas import CompressionLevel

_HORIZONTAL_WS = re.compile(r"[ \t\f\v]+")
_BLANK_LINES = re.compile(r"\n\s*\n+")
_ANY_WS = re.compile(r"\s+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")

# Cumulative rules per compression level: each level also applies the rules of lower levels
_COMPRESSION_RULES: dict[CompressionLevel, list[tuple[re.Pattern[str], str]]] = {
    CompressionLevel.LOW: [],
    CompressionLevel.MEDIUM: [
        (re.compile(r"\b(very|really|quite|pretty)\s+", re.IGNORECASE), ""),
        (re.compile(r"\b(okay|alright)\b", re.IGNORECASE), "ok"),
    ],
    CompressionLevel.HIGH: [
        (re.compile(r"\b(extremely|highly)\s+", re.IGNORECASE), ""),
        (re.compile(r"\bsomewhat\s+", re.IGNORECASE), ""),
        (re.compile(r"[,;]\s*\w+\s*$"), ""),
    ],
    CompressionLevel.AGGRESSIVE: [
        (re.compile(r"\b(absolutely|definitely)\s+", re.IGNORECASE), ""),
        (re.compile(r"\b(maybe|perhaps)\s+", re.IGNORECASE), ""),
        (re.compile(r"\b(the|a|an)\s+", re.IGNORECASE), ""),
    ],
}

# Estimated quality cost of compressing at each level
COMPRESSION_QUALITY_IMPACT: dict[CompressionLevel, float] = {
    CompressionLevel.LOW: 0.02,
    CompressionLevel.MEDIUM: 0.05,
    CompressionLevel.HIGH: 0.10,
    CompressionLevel.AGGRESSIVE: 0.20,
}

ABBREVIATIONS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\bapproximately\b", re.IGNORECASE), "~"),
    (re.compile(r"\bminutes\b", re.IGNORECASE), "min"),
    (re.compile(r"\bhours\b", re.IGNORECASE), "h"),
    (re.compile(r"\bquestions\b", re.IGNORECASE), "Q"),
    (re.compile(r"\banswers\b", re.IGNORECASE), "A"),
    (re.compile(r"\btopics\b", re.IGNORECASE), "T"),
    (re.compile(r"\bsubjects\b", re.IGNORECASE), "S"),
    (re.compile(r"\bperformance\b", re.IGNORECASE), "perf"),
    (re.compile(r"\baccuracy\b", re.IGNORECASE), "acc"),
    (re.compile(r"\bprogression\b", re.IGNORECASE), "prog"),
]

CRITICAL_SENTENCE = re.compile(r"\b(profile|level|acc|streak|prog)", re.IGNORECASE)

CONVERSATION_KEY_MARKERS = re.compile(r"\b(important|key|note)\b", re.IGNORECASE)
DEFINITION_MARKERS = re.compile(r"\b(definition|is|are|means|refers to|defined as)\b", re.IGNORECASE)

ELLIPSIS = "..."


def collapse_whitespace(text: str) -> str:
    """Collapse horizontal whitespace runs and blank lines."""
    lines = (_HORIZONTAL_WS.sub(" ", line).strip() for line in _BLANK_LINES.sub("\n", text).split("\n"))
    return "\n".join(line for line in lines if line)


def compress_text(text: str, level: CompressionLevel) -> str:
    """Apply cumulative compression rules up to the given level."""
    result = _ANY_WS.sub(" ", text).strip()
    for rule_level in CompressionLevel:
        if rule_level.rank > level.rank:
            break
        for pattern, replacement in _COMPRESSION_RULES[rule_level]:
            result = pattern.sub(replacement, result)
    return _ANY_WS.sub(" ", result).strip()


def apply_abbreviations(text: str) -> str:
    for pattern, replacement in ABBREVIATIONS:
        text = pattern.sub(replacement, text)
    return text


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_SPLIT.split(text) if s and s.strip()]


def keep_critical_sentences(text: str) -> str:
    """Drop sentences that carry no critical keyword. Returns text unchanged if none match."""
    sentences = split_sentences(text)
    critical = [s for s in sentences if CRITICAL_SENTENCE.search(s)]
    if not critical:
        return text
    return " ".join(critical)


def hard_truncate(text: str, max_chars: int) -> str:
    """Cut to max_chars including the ellipsis marker."""
    if len(text) <= max_chars:
        return text
    if max_chars <= len(ELLIPSIS):
        return text[:max_chars]
    return text[: max_chars - len(ELLIPSIS)].rstrip() + ELLIPSIS


def extractive_summary(text: str, key_markers: re.Pattern[str], max_key_sentences: int = 2) -> str:
    """
    Keep the first sentence, up to max_key_sentences marker sentences, and the last sentence.

    Text with three or fewer sentences is returned unchanged.
    """
    sentences = split_sentences(text)
    if len(sentences) <= 3:
        return text

    middle = sentences[1:-1]
    key = [s for s in middle if key_markers.search(s)][:max_key_sentences]
    return " ".join([sentences[0], *key, sentences[-1]])
