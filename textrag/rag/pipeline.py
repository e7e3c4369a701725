"""End-to-end pipeline: chunk → store, and question → streamed answer.

A :class:`RagPipeline` owns one in-memory vector store and one generation
backend.  It is the unit of a chat session: starting a new session means
building a new pipeline, which also resets the one-shot warm-up.

    index_text         raw text → chunks → adaptive ingestion → store
    generate_response  warm-up (once) → retrying generation → final text
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional

from textrag.config import Settings, settings as default_settings
from textrag.rag.chunker import chunk_text
from textrag.rag.errors import BackendNotReadyError, is_placeholder
from textrag.rag.generator import Generator
from textrag.rag.ingestor import ingest_chunks
from textrag.rag.responder import GenerationRetrier, SleepFn
from textrag.rag.store import VectorStore
from textrag.rag.tokens import get_estimator

logger = logging.getLogger(__name__)


class RagPipeline:
    """Chunking, resilient ingestion and resilient generation for one session.

    Args:
        config: Settings; defaults to the module-level singleton.
        store: Vector store; a fresh in-memory one is built when omitted.
        generator: Generation capability; built over *store* when omitted.
        llm: Chat model handed to the default generator.
        sleep: Awaitable sleep used for generation backoff.
    """

    def __init__(
        self,
        config: Optional[Settings] = None,
        store: Optional[VectorStore] = None,
        generator: Optional[Generator] = None,
        llm: Any = None,
        sleep: Optional[SleepFn] = None,
    ) -> None:
        self.config = config or default_settings
        self.instance_id = uuid.uuid4().hex
        self.estimate = get_estimator(self.config.token_estimator)
        self.store = store if store is not None else VectorStore(dim=self.config.embedding_dim)
        self.generator = generator or Generator(self.store, llm=llm, config=self.config)
        self.retrier = GenerationRetrier(
            self.generator.generate,
            self.config.placeholder_markers,
            attempts=self.config.generation_attempts,
            backoff_seconds=self.config.generation_backoff_seconds,
            sleep=sleep,
        )
        self.indexed_count = 0
        self._warmed_up = False
        self._warmup_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------
    def chunk(self, raw: str) -> list[str]:
        """Segment *raw* with this pipeline's budget, cascade and estimator."""
        return chunk_text(
            raw,
            max_tokens=self.config.max_tokens_per_chunk,
            overlap_tokens=self.config.overlap_tokens,
            separators=self.config.separators,
            estimate=self.estimate,
        )

    async def index_text(
        self,
        raw: str,
        on_chunk_count_known: Optional[Callable[[int], None]] = None,
    ) -> int:
        """Chunk *raw* and store every chunk.

        *on_chunk_count_known* receives the number of chunks produced by
        segmentation before anything is submitted; later splits made by the
        ingestion retrier do not change that number.

        Returns:
            The number of acknowledged store submissions.
        """
        chunks = self.chunk(raw)
        logger.info("Segmented %d chars into %d chunk(s)", len(raw), len(chunks))
        if on_chunk_count_known is not None:
            on_chunk_count_known(len(chunks))
        if not chunks:
            return 0

        def acknowledged(_: int) -> None:
            self.indexed_count += 1

        return await ingest_chunks(
            self.store,
            chunks,
            max_depth=self.config.max_split_depth,
            on_submitted=acknowledged,
        )

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------
    @property
    def is_warmed_up(self) -> bool:
        return self._warmed_up

    async def warm_up(self) -> None:
        """Run the one-time warm-up call; a no-op once it has succeeded.

        Raises:
            BackendNotReadyError: If the warm-up reply is the placeholder.
                The latch stays open so the next call tries again.
        """
        if self._warmed_up:
            return
        async with self._warmup_lock:
            if self._warmed_up:
                return
            text = await self.generator.warm_up()
            if is_placeholder(text, self.config.placeholder_markers):
                raise BackendNotReadyError(
                    text,
                    message=f"LLM warmup failed (engine not usable). Got placeholder: {text!r}",
                )
            self._warmed_up = True
            logger.info("Generation backend warmed up (pipeline %s)", self.instance_id)

    async def generate_response(
        self,
        prompt: str,
        on_partial: Optional[Callable[[str], None]] = None,
    ) -> str:
        """Answer *prompt*, streaming partial text to *on_partial*."""
        await self.warm_up()
        return await self.retrier.respond(prompt, on_partial)

    def close(self) -> None:
        """Release the store.  The pipeline must not be used afterwards."""
        self.store.close()
