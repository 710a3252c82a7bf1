"""Token estimation.

A word count stands in for a real tokenizer: it is monotonic in the text
length and cheap, which is all the chunk budget needs.
"""

from __future__ import annotations

from typing import Callable

TokenCounter = Callable[[str], int]


def estimate_tokens(text: str) -> int:
    """Return the approximate token count of *text* (whitespace-separated words)."""
    return len(text.split())


def tail_tokens(text: str, count: int, token_counter: TokenCounter = estimate_tokens) -> str:
    """Return the longest run of trailing words of *text* that *token_counter* scores at most *count*.

    Words are joined by single spaces.  Every word is assumed to cost at
    least one token, so no more than *count* words are ever considered.
    """
    if count <= 0:
        return ""
    words = text.split()[-count:]
    while words and token_counter(" ".join(words)) > count:
        words.pop(0)
    return " ".join(words)
