"""
Token Counter Module

Counts tokens for context items using tiktoken (cl100k_base by default).
Falls back to a character-based estimate when the encoding cannot be loaded.
"""

import logging
import math
import threading
from typing import Any

import tiktoken
from cachetools import LRUCache

logger = logging.getLogger(__name__)

TRUNCATION_MARKER = "..."


class TokenCounter:
    """
    Token counter with memoization.

    Uses tiktoken when enabled and available, otherwise estimates
    ceil(len / 4) tokens. Counts are memoized in an LRU cache since the
    same item text is counted repeatedly across strategies.
    """

    def __init__(
        self,
        encoding_name: str = "cl100k_base",
        use_tiktoken: bool = True,
        memo_size: int = 4096,
    ) -> None:
        self.encoding_name = encoding_name
        self.use_tiktoken = use_tiktoken
        self._encoding: Any | None = None
        self._encoding_failed = False
        self._memo: LRUCache[str, int] = LRUCache(maxsize=memo_size)
        # LRUCache reorders on every read; shared across request threads
        self._memo_lock = threading.Lock()

    @property
    def method(self) -> str:
        """Counting method currently in effect."""
        return "tiktoken" if self._get_encoding() is not None else "estimate"

    def _get_encoding(self) -> Any | None:
        if not self.use_tiktoken or self._encoding_failed:
            return None
        if self._encoding is None:
            try:
                self._encoding = tiktoken.get_encoding(self.encoding_name)
            except Exception as e:
                logger.warning(
                    f"Failed to load tiktoken encoding '{self.encoding_name}', using estimation: {e}",
                    extra={"encoding": self.encoding_name, "error": str(e)},
                )
                self._encoding_failed = True
                return None
        return self._encoding

    @staticmethod
    def estimate(text: str) -> int:
        """Estimate tokens as ceil(len / 4)."""
        return math.ceil(len(text) / 4)

    def count(self, text: str) -> int:
        """Count tokens in text."""
        if not text:
            return 0

        with self._memo_lock:
            cached = self._memo.get(text)
        if cached is not None:
            return cached

        encoding = self._get_encoding()
        if encoding is None:
            tokens = self.estimate(text)
        else:
            try:
                tokens = len(encoding.encode(text))
            except Exception as e:
                logger.error(f"Error counting tokens with tiktoken: {e}")
                tokens = self.estimate(text)

        with self._memo_lock:
            self._memo[text] = tokens
        return tokens

    def truncate(self, text: str, max_tokens: int) -> str:
        """
        Hard-truncate text so that it fits in max_tokens.

        Appends an ellipsis marker when text is cut. Guarantees
        count(result) <= max_tokens.

        Args:
            text: Text to truncate
            max_tokens: Token ceiling (0 yields an empty string)

        Returns:
            Truncated text
        """
        if max_tokens <= 0:
            return ""
        if self.count(text) <= max_tokens:
            return text

        marker_tokens = self.count(TRUNCATION_MARKER)
        if max_tokens <= marker_tokens:
            return TRUNCATION_MARKER[: max_tokens]

        # Start from the character estimate and shrink until it fits
        chars = max(1, (max_tokens - marker_tokens) * 4)
        candidate = text[:chars].rstrip() + TRUNCATION_MARKER
        while chars > 1 and self.count(candidate) > max_tokens:
            chars = max(1, int(chars * 0.85))
            candidate = text[:chars].rstrip() + TRUNCATION_MARKER

        if self.count(candidate) > max_tokens:
            return TRUNCATION_MARKER
        return candidate

    def clear(self) -> None:
        """Drop memoized counts."""
        with self._memo_lock:
            self._memo.clear()
