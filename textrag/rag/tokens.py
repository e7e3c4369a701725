"""Approximate token counting.

Exact subword tokenisation is not needed to stay under an embedder's
sequence limit; a word count (optionally scaled up to account for words that
split into several subword tokens) is close enough when the chunk budget
keeps a safety margin.
"""

from __future__ import annotations

from typing import Callable

TokenEstimator = Callable[[str], int]

# Average subword tokens per whitespace-delimited word.
SUBWORD_RATIO = 1.35


def count_words(text: str) -> int:
    """Number of whitespace-delimited words in *text*."""
    return len(text.split())


def estimate_words(text: str) -> int:
    """Raw word count, at least 1 for non-blank input."""
    words = count_words(text)
    if words == 0:
        return 0
    return max(1, words)


def estimate_scaled(text: str) -> int:
    """Word count scaled by :data:`SUBWORD_RATIO`, rounded half up."""
    words = count_words(text)
    if words == 0:
        return 0
    return max(1, int(words * SUBWORD_RATIO + 0.5))


_ESTIMATORS: dict[str, TokenEstimator] = {
    "scaled": estimate_scaled,
    "words": estimate_words,
}

# Default used when callers do not pick an estimator explicitly.
estimate_tokens: TokenEstimator = estimate_scaled


def get_estimator(name: str) -> TokenEstimator:
    """Return the estimator registered under *name* (``scaled`` or ``words``)."""
    try:
        return _ESTIMATORS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown token estimator {name!r}. Use one of: {', '.join(sorted(_ESTIMATORS))}"
        ) from None
