"""Adaptive ingestion of chunks into a store.

``ingest_chunks`` submits chunks one at a time, in document order.  When the
store rejects a chunk as too large for its embedder, the chunk is split near
its middle and both halves are resubmitted, up to ``max_depth`` splits deep.
Pending work is kept on an explicit stack of ``(text, depth)`` pairs, so
termination is bounded by the depth cap and never by the call stack.

Any other store failure aborts ingestion immediately.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol, Sequence

from textrag.rag.errors import SizeLimitExceeded, SplitExhaustedError

logger = logging.getLogger(__name__)


class ChunkStore(Protocol):
    async def submit(self, batch: Sequence[str]) -> None: ...


def split_near_middle(text: str) -> tuple[str, str]:
    """Split *text* in two at the space closest to its midpoint.

    Ties go to the left space.  With no space at all, the split falls on the
    exact character midpoint.  Both halves are trimmed; the second one is
    empty when *text* has fewer than two characters.
    """
    cleaned = text.strip()
    if len(cleaned) < 2:
        return cleaned, ""

    mid = len(cleaned) // 2
    left = cleaned.rfind(" ", 0, mid + 1)
    right = cleaned.find(" ", mid)

    if left >= 0 and right >= 0:
        split_at = left if mid - left <= right - mid else right
    elif left >= 0:
        split_at = left
    elif right >= 0:
        split_at = right
    else:
        split_at = mid

    return cleaned[:split_at].strip(), cleaned[split_at:].strip()


async def ingest_chunks(
    store: ChunkStore,
    chunks: Sequence[str],
    max_depth: int = 10,
    on_submitted: Optional[Callable[[int], None]] = None,
) -> int:
    """Submit *chunks* to *store*, splitting any the store finds too large.

    Args:
        store: Anything with an async ``submit(batch)``.
        chunks: Chunks in document order.
        max_depth: Maximum number of times one original chunk may be halved.
        on_submitted: Called with the running count of acknowledged
            submissions after each one succeeds.

    Returns:
        The number of acknowledged submissions.  This can be larger than
        ``len(chunks)`` when chunks had to be split.

    Raises:
        SplitExhaustedError: If a piece is still rejected as too large at
            ``max_depth``, or is too short to split.
        StoreError: Any other store failure, propagated unchanged.
    """
    submitted = 0

    for index, chunk in enumerate(chunks):
        stack: list[tuple[str, int]] = [(chunk, 0)]

        while stack:
            text, depth = stack.pop()
            try:
                await store.submit([text])
            except SizeLimitExceeded as exc:
                if depth >= max_depth or len(text.strip()) < 2:
                    logger.error(
                        "Chunk %d still too large at depth %d (%d chars)",
                        index, depth, len(text),
                    )
                    raise SplitExhaustedError(len(text), depth) from exc

                left, right = split_near_middle(text)
                logger.info(
                    "Chunk %d rejected as too large at depth %d; splitting %d chars",
                    index, depth, len(text),
                )
                # Push right first so the left half is submitted first.
                for piece in (right, left):
                    if piece.strip():
                        stack.append((piece, depth + 1))
                continue

            submitted += 1
            if on_submitted is not None:
                on_submitted(submitted)

    return submitted
