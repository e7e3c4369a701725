"""Data models shared by the RAG pipeline."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Passage:
    """A stored chunk returned by a similarity query."""

    id: int
    text: str
    distance: float
