"""
Context Engine - Text Compression Tests
"""

import pytest

from context_engine.config import CompressionLevel
from context_engine.context import text as textops


class TestCompressText:
    """Test suite for cumulative compression rules."""

    def test_low_only_normalizes_whitespace(self) -> None:
        """Test that LOW compression only collapses whitespace."""
        assert textops.compress_text("  very   good  ", CompressionLevel.LOW) == "very good"

    def test_medium_drops_intensifiers(self) -> None:
        """Test MEDIUM filler removal."""
        assert textops.compress_text("This is really very good, okay", CompressionLevel.MEDIUM) == "This is good, ok"

    def test_levels_are_cumulative(self) -> None:
        """Test that AGGRESSIVE applies the MEDIUM rules too."""
        text = "The answer is really perhaps the best"
        compressed = textops.compress_text(text, CompressionLevel.AGGRESSIVE)
        assert "really" not in compressed
        assert "perhaps" not in compressed
        assert "the" not in compressed.lower().split()

    @pytest.mark.parametrize("level", list(CompressionLevel))
    def test_deterministic(self, level: CompressionLevel) -> None:
        """Test that compression is a pure function."""
        text = "It is extremely important, definitely, to review the notes"
        assert textops.compress_text(text, level) == textops.compress_text(text, level)


class TestSentenceHelpers:
    """Test suite for sentence-level helpers."""

    def test_abbreviations(self) -> None:
        """Test abbreviation substitutions."""
        assert textops.apply_abbreviations("approximately 30 minutes of questions") == "~ 30 min of Q"

    def test_keep_critical_sentences(self) -> None:
        """Test that only sentences with critical keywords remain."""
        text = "Nice weather today. Level 3 reached. Streak of 5 days! Random remark."
        assert textops.keep_critical_sentences(text) == "Level 3 reached. Streak of 5 days!"

    def test_keep_critical_without_matches(self) -> None:
        """Test that text without critical sentences is kept whole."""
        assert textops.keep_critical_sentences("Nothing here. At all.") == "Nothing here. At all."

    def test_hard_truncate(self) -> None:
        """Test truncation with the ellipsis marker."""
        truncated = textops.hard_truncate("abcdefghij", 8)
        assert truncated == "abcde..."
        assert len(truncated) == 8
        assert textops.hard_truncate("short", 8) == "short"

    def test_extractive_summary(self) -> None:
        """Test first, key and last sentence selection."""
        text = "First point. Filler one. This is important. Filler two. Last point."
        summary = textops.extractive_summary(text, textops.CONVERSATION_KEY_MARKERS)
        assert summary == "First point. This is important. Last point."

    def test_short_text_not_summarized(self) -> None:
        """Test that three or fewer sentences are left as-is."""
        text = "One. Two. Three."
        assert textops.extractive_summary(text, textops.CONVERSATION_KEY_MARKERS) == text
