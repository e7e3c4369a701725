"""Chat session state around one :class:`~textrag.rag.pipeline.RagPipeline`.

``ChatSession`` holds what a front end displays (status lines, readiness
flags, the message list) and runs loading, indexing and answering against
the current pipeline.

Starting a new chat replaces the pipeline.  Every operation remembers the
session *epoch* it started in; ``new_chat`` bumps the epoch and cancels
whatever is still running, so a completion that arrives late is recognised
as stale and dropped instead of overwriting the fresh session's state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

from textrag.rag.pipeline import RagPipeline

logger = logging.getLogger(__name__)

NO_FILE_STATUS = "No .txt loaded"
MODEL_INITIALIZING_STATUS = "initializing model..."


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


@dataclass
class ChatMessage:
    role: Role
    text: str
    is_error: bool = False


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ChatSession:
    """Status, history and operations for a single chat.

    Args:
        pipeline_factory: Builds a fresh pipeline; called once now and once
            per :meth:`new_chat`.
    """

    def __init__(self, pipeline_factory: Optional[Callable[[], RagPipeline]] = None) -> None:
        self._factory = pipeline_factory or RagPipeline
        self.pipeline = self._factory()
        self.epoch = 0
        self.messages: list[ChatMessage] = []
        self.model_status = MODEL_INITIALIZING_STATUS
        self.is_model_ready = False
        self.is_model_starting = True
        self.is_generating = False
        self._tasks: set[asyncio.Task] = set()
        self._reset_rag_state()

    def _reset_rag_state(self) -> None:
        self.rag_status = NO_FILE_STATUS
        self.is_indexing = False
        self.is_rag_ready = False
        self.loaded_name: Optional[str] = None
        self.chunk_count: Optional[int] = None

    # ------------------------------------------------------------------
    # Task bookkeeping
    # ------------------------------------------------------------------
    def _is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    async def _run(self, coro: Awaitable[Any]) -> asyncio.Task:
        """Run *coro* as a tracked task and return it once it has finished.

        The finished task is returned rather than its result so callers can
        tell a failure apart from a cancellation made by :meth:`new_chat`.
        """
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            self._tasks.discard(task)
        return task

    async def _cancel_tasks(self) -> None:
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Model
    # ------------------------------------------------------------------
    async def start(self) -> bool:
        """Warm the generation backend up and record whether it is ready.

        A failed warm-up does not block chatting: the pipeline keeps its
        warm-up latch open, so the next :meth:`send` tries again.
        """
        epoch = self.epoch
        task = await self._run(self.pipeline.warm_up())
        if not self._is_current(epoch) or task.cancelled():
            logger.info("Discarding stale warm-up result (epoch %d)", epoch)
            return False

        self.is_model_starting = False
        exc = task.exception()
        if exc is not None:
            logger.error("Model init failed: %s", _describe(exc))
            self.is_model_ready = False
            self.model_status = "Model init failed"
            self.rag_status = f"Error: {_describe(exc)}"
            return False

        self.is_model_ready = True
        self.model_status = "Model ready"
        return True

    # ------------------------------------------------------------------
    # Knowledge
    # ------------------------------------------------------------------
    def _begin_loading(self, name: str) -> None:
        self.is_indexing = True
        self.is_rag_ready = False
        self.loaded_name = name
        self.chunk_count = None

    async def load_file(self, path: str | Path, name: Optional[str] = None) -> Optional[int]:
        """Read a UTF-8 text file and index it.

        Returns:
            The number of chunks, or ``None`` if reading or indexing failed
            (see :attr:`rag_status`) or the session was reset meanwhile.
        """
        epoch = self.epoch
        path = Path(path)
        self._begin_loading(name or path.name)
        self.rag_status = "Reading file..."

        task = await self._run(asyncio.to_thread(path.read_text, encoding="utf-8"))
        if not self._is_current(epoch) or task.cancelled():
            return None

        exc = task.exception()
        if exc is not None:
            logger.error("Reading %s failed: %s", path, _describe(exc))
            self.is_indexing = False
            self.rag_status = f"Read failed: {_describe(exc)}"
            return None

        return await self._index(task.result(), epoch)

    async def load_text(self, raw: str, name: str = "pasted text") -> Optional[int]:
        """Index *raw* text directly.  Same return contract as :meth:`load_file`."""
        epoch = self.epoch
        self._begin_loading(name)
        return await self._index(raw, epoch)

    async def _index(self, raw: str, epoch: int) -> Optional[int]:
        self.rag_status = "Chunking + indexing..."

        def on_count(count: int) -> None:
            if self._is_current(epoch):
                self.chunk_count = count
                self.rag_status = f"Indexing... ({count} chunks)"

        task = await self._run(self.pipeline.index_text(raw, on_count))
        if not self._is_current(epoch) or task.cancelled():
            logger.info("Discarding stale indexing result (epoch %d)", epoch)
            return None

        self.is_indexing = False
        exc = task.exception()
        if exc is not None:
            logger.error("Indexing failed: %s", _describe(exc))
            self.is_rag_ready = False
            self.rag_status = f"Index failed: {_describe(exc)}"
            return None

        self.is_rag_ready = True
        self.rag_status = "Knowledge ready"
        return self.chunk_count

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------
    def can_send(self, text: str) -> bool:
        if not text.strip():
            return False
        return (
            not self.is_model_starting
            and not self.is_generating
            and self.is_rag_ready
            and not self.is_indexing
        )

    async def send(
        self,
        text: str,
        on_partial: Optional[Callable[[str], None]] = None,
    ) -> Optional[ChatMessage]:
        """Ask *text* and return the model's reply message.

        A placeholder model message is appended straight away and
        overwritten by every partial update.  On failure it is replaced by
        an ``"Error: ..."`` message flagged with ``is_error``.
        Only one reply is generated at a time; :meth:`can_send` is
        ``False`` while it runs.

        Returns:
            The final model message, or ``None`` when sending is not
            possible right now or the session was reset meanwhile.
        """
        if not self.can_send(text):
            return None

        epoch = self.epoch
        self.messages.append(ChatMessage(Role.USER, text))
        reply = ChatMessage(Role.MODEL, "")
        self.messages.append(reply)

        def partial(update: str) -> None:
            if not self._is_current(epoch):
                return
            reply.text = update
            if on_partial is not None:
                on_partial(update)

        self.is_generating = True
        try:
            task = await self._run(self.pipeline.generate_response(text, partial))
        finally:
            if self._is_current(epoch):
                self.is_generating = False

        if not self._is_current(epoch) or task.cancelled():
            logger.info("Discarding stale reply (epoch %d)", epoch)
            return None

        exc = task.exception()
        if exc is not None:
            logger.error("Generation failed: %s", _describe(exc))
            reply.text = f"Error: {_describe(exc)}"
            reply.is_error = True
        else:
            reply.text = task.result()
            if not self.is_model_ready:
                self.is_model_ready = True
                self.model_status = "Model ready"
        return reply

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def new_chat(self) -> bool:
        """Drop history and knowledge and start over on a fresh pipeline.

        In-flight operations are cancelled; their late completions are
        ignored.  Returns the result of :meth:`start` on the new pipeline.
        """
        self.epoch += 1
        old = self.pipeline
        logger.info("Starting new chat (epoch %d)", self.epoch)

        self.messages.clear()
        self._reset_rag_state()
        self.is_model_ready = False
        self.is_model_starting = True
        self.is_generating = False
        self.model_status = MODEL_INITIALIZING_STATUS
        self.pipeline = self._factory()

        await self._cancel_tasks()
        old.close()
        return await self.start()

    async def close(self) -> None:
        await self._cancel_tasks()
        self.pipeline.close()

    def status(self) -> dict[str, Any]:
        """Snapshot of the session state for display."""
        return {
            "model_status": self.model_status,
            "is_model_ready": self.is_model_ready,
            "is_generating": self.is_generating,
            "rag_status": self.rag_status,
            "is_indexing": self.is_indexing,
            "is_rag_ready": self.is_rag_ready,
            "loaded_name": self.loaded_name,
            "chunk_count": self.chunk_count,
            "pipeline_id": self.pipeline.instance_id,
            "messages": [
                {"role": m.role.value, "text": m.text, "is_error": m.is_error}
                for m in self.messages
            ],
        }
