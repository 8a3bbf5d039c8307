# Copyright © 2025 Ed Nutting
# SPDX-License-Identifier: MIT
# See LICENSE file for details

"""
Reference script model.

A script is loaded once and split into immutable, absolutely indexed
tokens. Matching windows are sliced from it on demand.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from .normalizer import normalize_word

DEFAULT_WINDOW_SIZE: int = 30


@dataclass(frozen=True)
class ScriptToken:
    """A word from the script with its absolute position."""
    text: str  # Word exactly as it appears in the script
    index: int  # Zero-based position in the full script
    normalized: str = field(init=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "normalized", normalize_word(self.text))

    def __repr__(self) -> str:
        return f"ScriptToken({self.index}: '{self.text}')"


@dataclass(frozen=True)
class ScriptWindow:
    """Contiguous slice [start, end) of the script used for one match."""
    start: int
    tokens: tuple[ScriptToken, ...]

    @property
    def end(self) -> int:
        return self.start + len(self.tokens)

    @property
    def words(self) -> list[str]:
        """Literal script words, as sent over the wire."""
        return [t.text for t in self.tokens]

    @property
    def normalized(self) -> list[str]:
        return [t.normalized for t in self.tokens]

    def __len__(self) -> int:
        return len(self.tokens)


class Script:
    """An ordered, immutable sequence of ScriptTokens fixed at load time."""

    tokens: tuple[ScriptToken, ...]

    def __init__(self, words: Sequence[str]) -> None:
        self.tokens = tuple(
            ScriptToken(text=word, index=i) for i, word in enumerate(words)
        )

    @classmethod
    def from_text(cls, text: str) -> 'Script':
        """
        Tokenize script text on whitespace.

        Raises:
            ValueError: If the text contains no words
        """
        words: list[str] = [w for w in text.split() if w]
        if not words:
            raise ValueError("Script is empty")
        return cls(words)

    def __len__(self) -> int:
        return len(self.tokens)

    def __iter__(self) -> Iterator[ScriptToken]:
        return iter(self.tokens)

    def __getitem__(self, index: int) -> ScriptToken:
        return self.tokens[index]

    @property
    def words(self) -> list[str]:
        return [t.text for t in self.tokens]

    def window(self, start: int, size: int = DEFAULT_WINDOW_SIZE) -> ScriptWindow:
        """
        Slice a matching window starting at the given index.

        The window is clipped to the end of the script, so it may hold fewer
        than `size` tokens (or none when start is at the end).
        """
        if size < 0:
            raise ValueError(f"Window size must be non-negative, got {size}")
        start = max(0, min(start, len(self.tokens)))
        end: int = min(start + size, len(self.tokens))
        return ScriptWindow(start=start, tokens=self.tokens[start:end])
