"""RAG pipeline package: chunking, resilient ingestion, resilient generation."""

from textrag.rag.chunker import chunk_text, split_text, stitch_overlap
from textrag.rag.errors import (
    BackendNotReadyError,
    RagError,
    SizeLimitExceeded,
    SplitExhaustedError,
    StoreError,
)
from textrag.rag.ingestor import ingest_chunks
from textrag.rag.pipeline import RagPipeline
from textrag.rag.tokens import estimate_tokens

__all__ = [
    "chunk_text",
    "split_text",
    "stitch_overlap",
    "estimate_tokens",
    "ingest_chunks",
    "RagPipeline",
    "RagError",
    "StoreError",
    "SizeLimitExceeded",
    "SplitExhaustedError",
    "BackendNotReadyError",
]
