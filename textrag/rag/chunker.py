"""Token-bounded text chunker for the RAG ingestion pipeline.

Strategy: recursive splitting on a cascade of separators, coarsest first
(``\\n\\n`` → ``\\n`` → ``". "`` → ``" "``), greedily re-packing the pieces
produced at each level into the largest blocks that still fit the token
budget.  When no separator applies any more, the text is cut into
fixed-size character blocks.  Finally every chunk after the first is seeded
with the last few words of its predecessor so retrieval keeps some context
across chunk boundaries.

Token counts are estimated from word counts (see :mod:`textrag.rag.tokens`).
"""

from __future__ import annotations

from typing import Callable, Sequence

from textrag.config import DEFAULT_SEPARATORS
from textrag.rag.tokens import TokenEstimator, estimate_tokens

# Crude characters-per-token ratio used by the last-resort character cut.
CHARS_PER_TOKEN = 4


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _split_on(text: str, sep: str) -> list[str]:
    """Split *text* on *sep*, trimming and dropping empty parts.

    Sentence separators such as ``". "`` carry punctuation; it stays
    attached to the fragment on its left so no text is lost.
    """
    keep = sep.strip()
    raw_parts = text.split(sep)
    parts: list[str] = []
    for i, part in enumerate(raw_parts):
        if keep and i < len(raw_parts) - 1:
            part = part + keep
        stripped = part.strip()
        if stripped:
            parts.append(stripped)
    return parts


def _joiner(sep: str) -> str:
    """String used to glue parts back together after :func:`_split_on`."""
    keep = sep.strip()
    if not keep:
        return sep
    return sep.replace(keep, "", 1) or " "


def _hard_cut(text: str, max_tokens: int) -> list[str]:
    """Slice *text* into blocks of ``max_tokens * CHARS_PER_TOKEN`` characters.

    This is the only step that may emit a block over budget: a block that
    still contains many short whitespace-separated runs the cascade could
    not split on.
    """
    size = max(1, max_tokens * CHARS_PER_TOKEN)
    blocks = (text[i : i + size].strip() for i in range(0, len(text), size))
    return [b for b in blocks if b]


def _split_recursive(
    text: str,
    max_tokens: int,
    separators: Sequence[str],
    sep_idx: int,
    estimate: TokenEstimator,
) -> list[str]:
    if estimate(text) <= max_tokens:
        return [text.strip()]

    if sep_idx >= len(separators):
        return _hard_cut(text, max_tokens)

    sep = separators[sep_idx]
    parts = _split_on(text, sep)
    if len(parts) < 2:
        return _split_recursive(text, max_tokens, separators, sep_idx + 1, estimate)

    return repack(
        parts,
        _joiner(sep),
        max_tokens,
        lambda part: _split_recursive(part, max_tokens, separators, sep_idx + 1, estimate),
        estimate,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def repack(
    parts: Sequence[str],
    joiner: str,
    max_tokens: int,
    split_oversized: Callable[[str], list[str]],
    estimate: TokenEstimator = estimate_tokens,
) -> list[str]:
    """Greedily merge *parts* into the largest blocks within *max_tokens*.

    Parts are consumed in order and never reordered.  A part that is over
    budget on its own is handed to *split_oversized* (the next level of the
    cascade) and its pieces are emitted in place.
    """
    blocks: list[str] = []
    buf = ""

    def flush() -> None:
        nonlocal buf
        block = buf.strip()
        if block:
            blocks.append(block)
        buf = ""

    for part in parts:
        candidate = part if not buf else buf + joiner + part
        if estimate(candidate) <= max_tokens:
            buf = candidate
            continue

        flush()
        if estimate(part) <= max_tokens:
            buf = part
        else:
            blocks.extend(split_oversized(part))

    flush()
    return blocks


def split_text(
    text: str,
    max_tokens: int,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    estimate: TokenEstimator = estimate_tokens,
) -> list[str]:
    """Split *text* into ordered pieces of at most *max_tokens* estimated tokens.

    Args:
        text: The raw text to split.
        max_tokens: Token budget per piece.  Must be at least 1.
        separators: Boundary strings tried coarsest first.
        estimate: Token estimator.

    Returns:
        Trimmed, non-empty pieces in document order.  ``[]`` for blank input.

    Raises:
        ValueError: If *max_tokens* is less than 1.
    """
    if max_tokens < 1:
        raise ValueError(f"max_tokens must be >= 1, got {max_tokens}")

    cleaned = text.strip()
    if not cleaned:
        return []
    return _split_recursive(cleaned, max_tokens, tuple(separators), 0, estimate)


def stitch_overlap(chunks: Sequence[str], overlap_tokens: int) -> list[str]:
    """Prepend the tail of each chunk's predecessor to it.

    Chunk ``i > 0`` is prefixed with the last ``min(overlap_tokens, words)``
    whitespace-delimited words of chunk ``i - 1`` (as produced by the
    splitter, not the already-stitched version), separated by a line break.
    The first chunk is never changed.  Stitched chunks may exceed the split
    budget by up to *overlap_tokens* words.
    """
    if overlap_tokens <= 0 or len(chunks) < 2:
        return list(chunks)

    out = [chunks[0]]
    for prev, cur in zip(chunks, chunks[1:]):
        prev_words = prev.split()
        take = min(overlap_tokens, len(prev_words))
        overlap = " ".join(prev_words[-take:]) if take else ""
        out.append((overlap + "\n" + cur).strip())
    return out


def chunk_text(
    text: str,
    max_tokens: int = 235,
    overlap_tokens: int = 20,
    separators: Sequence[str] = DEFAULT_SEPARATORS,
    estimate: TokenEstimator = estimate_tokens,
) -> list[str]:
    """Split *text* into overlapping, token-bounded chunks.

    Args:
        text: The raw text to chunk.
        max_tokens: Maximum estimated tokens per chunk before overlap.
        overlap_tokens: How many trailing words of the previous chunk to
            prepend to the next one.
        separators: Separator cascade, coarsest first.
        estimate: Token estimator.

    Returns:
        A list of non-empty string chunks in document order.  Returns ``[]``
        for blank input.

    Algorithm:
        1. :func:`split_text`: recursive cascade split with greedy
           re-packing, falling back to character blocks.
        2. :func:`stitch_overlap`: seed every chunk after the first with the
           tail words of its predecessor.
    """
    pieces = split_text(text, max_tokens, separators, estimate)
    return stitch_overlap(pieces, overlap_tokens)
