"""
Text normalization for matching spoken words against script words.

Both the transcript and the script go through the same transform so that
token equality is plain string equality.
"""

import re

_NON_WORD = re.compile(r'[^\w\s]')
_WHITESPACE = re.compile(r'\s+')


def normalize_word(word: str) -> str:
    """Normalize a single word (lowercase, strip punctuation).

    Punctuation-only words such as "—" normalize to an empty string.
    """
    return _WHITESPACE.sub('', _NON_WORD.sub('', word.lower()))


def normalize(text: str) -> list[str]:
    """
    Convert raw text into a sequence of comparable tokens.

    Lowercases, drops everything that is not a letter, digit, underscore
    or whitespace, collapses whitespace and splits into words. Empty input
    (or punctuation-only input) gives an empty list.

    Args:
        text: Raw transcript or script text

    Returns:
        List of normalized tokens
    """
    cleaned: str = _NON_WORD.sub('', text.lower())
    cleaned = _WHITESPACE.sub(' ', cleaned).strip()
    return [token for token in cleaned.split(' ') if token]
