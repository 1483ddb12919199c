"""Token counters used to size chunks."""

from __future__ import annotations

import math
from typing import Protocol, runtime_checkable


@runtime_checkable
class TokenCounter(Protocol):
    name: str

    def count(self, text: str) -> int: ...

    def count_batch(self, texts: list[str]) -> list[int]: ...


class ApproximateTokenCounter:
    """4 characters ≈ 1 token, rounded up.

    Close to GPT tokeniser averages for English prose and technical docs,
    with no tokenizer dependency.
    """

    name = "approximate"

    def __init__(self, chars_per_token: float = 4.0) -> None:
        if chars_per_token <= 0:
            raise ValueError("chars_per_token must be > 0")
        self.chars_per_token = chars_per_token

    def count(self, text: str) -> int:
        return math.ceil(len(text) / self.chars_per_token)

    def count_batch(self, texts: list[str]) -> list[int]:
        return [self.count(t) for t in texts]


class WhitespaceTokenCounter:
    """One token per whitespace-separated word."""

    name = "whitespace"

    def count(self, text: str) -> int:
        return len(text.split())

    def count_batch(self, texts: list[str]) -> list[int]:
        return [self.count(t) for t in texts]
