"""Token Window - Token estimation and budget bookkeeping.

This module owns the token approximation contract used everywhere in
storyctx:
- Estimate token counts (ceil of characters / 4)
- Truncate text to a word budget
- Track how much of a budget has been consumed

Every component that needs a token count goes through ``estimate_tokens``.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

CHARS_PER_TOKEN = 4

ELLIPSIS = "..."


def estimate_tokens(text: str) -> int:
    """Estimate token count for text.

    Args:
        text: Input text

    Returns:
        ``ceil(len(text) / 4)``
    """
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def truncate_words(text: str, max_words: int) -> str:
    """Keep the first ``max_words`` words of text and append an ellipsis.

    Args:
        text: Content to truncate
        max_words: Number of leading words to keep

    Returns:
        Truncated content ending with ``...``
    """
    words = text.split()
    return " ".join(words[: max(0, max_words)]) + ELLIPSIS


@dataclass
class TokenBudget:
    """Running token budget for a single allocation pass.

    Attributes:
        total: Tokens available at the start
        used: Tokens consumed so far
    """

    total: int
    used: int = 0

    @property
    def remaining(self) -> int:
        return self.total - self.used

    def fits(self, tokens: int) -> bool:
        """Whether ``tokens`` fits in what is left of the budget."""
        return tokens <= self.remaining

    def consume(self, tokens: int) -> None:
        self.used += tokens


__all__ = [
    "CHARS_PER_TOKEN",
    "ELLIPSIS",
    "TokenBudget",
    "estimate_tokens",
    "truncate_words",
]
