"""
Token Optimization Module

Token counting and hard truncation shared by the builder and the optimizer.
"""

from .counter import TRUNCATION_MARKER, TokenCounter

__all__ = [
    "TokenCounter",
    "TRUNCATION_MARKER",
]
