"""Error kinds raised by the ingestion and generation pipeline.

``StoreError``
    The store (or the embedder behind it) rejected a submission for a
    reason splitting cannot fix.  Propagated immediately.

``SizeLimitExceeded``
    The submitted text is longer than the embedder accepts.  The ingestion
    retrier reacts by splitting the text and resubmitting the halves.

``SplitExhaustedError``
    A span was still rejected as too large after the maximum number of
    splits.  Always fatal.

``BackendNotReadyError``
    The generation backend kept answering with its "not initialized"
    placeholder after every attempt.

Backend error messages are inspected exactly once, in
:func:`classify_store_error`, at the store boundary.  Everything above the
store works with the exception type.
"""

from __future__ import annotations

from typing import Iterable

_DEFAULT_NOT_READY_MESSAGE = "LLM inference is not initialized yet!"


class RagError(Exception):
    """Base class for every pipeline error."""


class StoreError(RagError):
    """Unrecoverable store / embedder failure."""


class SizeLimitExceeded(StoreError):
    """The store rejected the input as longer than its maximum input size."""


class SplitExhaustedError(RagError):
    """A chunk was still too large after repeated splits."""

    def __init__(self, length: int, depth: int) -> None:
        self.length = length
        self.depth = depth
        super().__init__(
            f"Chunk still too large after repeated splits "
            f"(depth={depth}, length={length} chars)."
        )


class BackendNotReadyError(RagError):
    """The generation backend never got past its placeholder response."""

    def __init__(self, last_text: str | None = None, message: str | None = None) -> None:
        self.last_text = (last_text or "").strip()
        super().__init__(message or self.last_text or _DEFAULT_NOT_READY_MESSAGE)


def _matches_any(text: str, markers: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(marker.lower() in lowered for marker in markers)


def classify_store_error(message: str, markers: Iterable[str]) -> StoreError:
    """Turn a raw backend error message into a tagged store error.

    Returns a :class:`SizeLimitExceeded` when *message* contains any of the
    size-limit *markers* (case-insensitive), otherwise a plain
    :class:`StoreError`.  The caller raises the result.
    """
    if _matches_any(message, markers):
        return SizeLimitExceeded(message)
    return StoreError(message)


def is_placeholder(text: str | None, markers: Iterable[str]) -> bool:
    """Return ``True`` when *text* is the backend's "not ready" placeholder.

    Any answer containing one of *markers* counts, so markers should be as
    specific as the backend's sentinel text allows; a generic phrase would
    also match genuine answers that happen to quote it.  Blank text is never
    treated as a placeholder.
    """
    stripped = (text or "").strip()
    if not stripped:
        return False
    return _matches_any(stripped, markers)
