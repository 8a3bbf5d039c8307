"""
Window matching: find where a short transcript lines up inside a slice of
the script.

Every start position in the window is tried with a greedy, single pass
over the transcript. Each transcript word earns credit depending on how it
lines up with the script word under the cursor:

    exact match                       +1.0, cursor moves 1
    one word contains the other       +0.5, cursor moves 1
    next script word matches exactly  +0.8, cursor moves 2
    no match                          +0.0, cursor moves 1

The candidate score is the credit divided by the transcript length, so it
always lies in [0, 1]. The earliest start with the highest score wins.
The result also records the last script word the winning walk credited,
which is how far into the window the speaker has got.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from .normalizer import normalize_word

logger = logging.getLogger(__name__)

EXACT_CREDIT: float = 1.0
PARTIAL_CREDIT: float = 0.5
SKIP_CREDIT: float = 0.8


@dataclass(frozen=True)
class MatchResult:
    """Best alignment of a transcript against a window."""
    score: float  # Fraction of transcript words credited (0-1)
    matched_index: int | None = None  # Window-relative start, None if no alignment
    end_index: int | None = None  # Window-relative last script word that earned credit

    @property
    def matched(self) -> bool:
        return self.matched_index is not None

    @property
    def advance_index(self) -> int | None:
        """Window-relative word the speaker has reached (the position moves past it)."""
        if self.end_index is not None:
            return self.end_index
        return self.matched_index


NO_MATCH = MatchResult(score=0.0, matched_index=None)


def _is_partial(script_word: str, spoken_word: str) -> bool:
    """Check if either word contains the other (stems, split words)."""
    if not script_word:
        return False
    return spoken_word in script_word or script_word in spoken_word


def _walk(transcript_tokens: Sequence[str], window_tokens: Sequence[str],
          start: int) -> tuple[float, int | None]:
    """Greedy walk from `start`; returns (credit, last credited window position)."""
    credit: float = 0.0
    last_hit: int | None = None
    position: int = start
    window_len: int = len(window_tokens)

    for spoken in transcript_tokens:
        if position >= window_len:
            break

        script_word: str = window_tokens[position]

        if script_word == spoken:
            credit += EXACT_CREDIT
            last_hit = position
            position += 1
        elif _is_partial(script_word, spoken):
            credit += PARTIAL_CREDIT
            last_hit = position
            position += 1
        elif position + 1 < window_len and window_tokens[position + 1] == spoken:
            # Speaker dropped one script word
            credit += SKIP_CREDIT
            last_hit = position + 1
            position += 2
        else:
            position += 1

    return credit, last_hit


def score_at(transcript_tokens: Sequence[str], window_tokens: Sequence[str], start: int) -> float:
    """
    Score the transcript aligned so it begins at `start` in the window.

    Args:
        transcript_tokens: Normalized spoken words (must not be empty)
        window_tokens: Normalized script words
        start: Window-relative position to align the first spoken word with

    Returns:
        Credit divided by the number of transcript tokens
    """
    credit, _last = _walk(transcript_tokens, window_tokens, start)
    return credit / len(transcript_tokens)


def match(transcript_tokens: Sequence[str], window_tokens: Sequence[str]) -> MatchResult:
    """
    Find the best alignment of a transcript inside a script window.

    Args:
        transcript_tokens: Normalized transcript tokens
        window_tokens: Script words for the window (normalized here, so
            literal script words are accepted too)

    Returns:
        MatchResult with the best score, its window-relative start and the
        last script word it credited, or a zero score with no index when
        nothing was said or nothing lines up
    """
    if not transcript_tokens:
        return NO_MATCH

    window: list[str] = [normalize_word(w) for w in window_tokens]

    best_score: float = 0.0
    best_index: int | None = None
    best_end: int | None = None

    for i in range(len(window)):
        credit, last_hit = _walk(transcript_tokens, window, i)
        score: float = credit / len(transcript_tokens)
        if score > best_score:
            best_score = score
            best_index = i
            best_end = last_hit

    logger.debug(
        "Matched %d transcript words against %d window words: score=%.3f index=%s end=%s",
        len(transcript_tokens), len(window), best_score, best_index, best_end
    )
    return MatchResult(score=best_score, matched_index=best_index, end_index=best_end)
