"""In-memory vector store backed by SQLite + sqlite-vec.

The store lives for exactly as long as its pipeline: it is opened on
``:memory:`` and nothing is written to disk.  Starting a new chat builds a
new store.

Usage::

    store = VectorStore()
    await store.submit(["first chunk", "second chunk"])
    passages = await store.query("what does the first chunk say?", top_k=3)
    store.close()
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Awaitable, Callable, Optional, Sequence

import sqlite_vec

from textrag.config import settings
from textrag.rag.embedder import embed_text
from textrag.rag.errors import StoreError
from textrag.rag.models import Passage

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[list[float]]]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS chunks (
    id   INTEGER PRIMARY KEY,
    text TEXT NOT NULL
);
CREATE VIRTUAL TABLE IF NOT EXISTS chunks_vec USING vec0(
    embedding float[{dim}]
);
"""


def _open_connection() -> sqlite3.Connection:
    """Open an in-memory connection with sqlite-vec loaded.

    ``enable_load_extension`` is switched off again right after loading.
    """
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.enable_load_extension(True)
    sqlite_vec.load(conn)
    conn.enable_load_extension(False)
    return conn


class VectorStore:
    """Embeds and indexes text chunks; answers nearest-neighbour queries.

    Args:
        embed: Async embedding function.  Defaults to
            :func:`~textrag.rag.embedder.embed_text`.
        dim: Embedding dimension.  Defaults to ``settings.embedding_dim``.
    """

    def __init__(self, embed: Optional[EmbedFn] = None, dim: Optional[int] = None) -> None:
        self._embed = embed or embed_text
        self.dim = dim or settings.embedding_dim
        self._conn = _open_connection()
        self._conn.executescript(_SCHEMA.format(dim=self.dim))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _embed_checked(self, text: str) -> list[float]:
        vector = await self._embed(text)
        if len(vector) != self.dim:
            raise StoreError(
                f"Embedding dimension mismatch: expected {self.dim}, got {len(vector)}"
            )
        return vector

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def submit(self, batch: Sequence[str]) -> None:
        """Embed and store every text in *batch*.

        All embeddings are computed before anything is written, and the
        batch is inserted in a single transaction: if any embedding fails
        (or the call is cancelled) none of the batch is stored.

        Raises:
            SizeLimitExceeded: If the embedder rejected a text as too long.
            StoreError: For any other embedding or storage failure.
        """
        vectors = [await self._embed_checked(text) for text in batch]

        try:
            with self._conn:
                for text, vector in zip(batch, vectors):
                    cur = self._conn.execute("INSERT INTO chunks(text) VALUES (?)", (text,))
                    self._conn.execute(
                        "INSERT INTO chunks_vec(rowid, embedding) VALUES (?, ?)",
                        (cur.lastrowid, sqlite_vec.serialize_float32(vector)),
                    )
        except sqlite3.Error as exc:
            raise StoreError(f"Failed to store chunk: {exc}") from exc

        logger.debug("Stored %d chunk(s); store now holds %d", len(batch), self.count())

    async def query(self, text: str, top_k: int = 3) -> list[Passage]:
        """Return up to *top_k* stored passages closest to *text*."""
        if top_k < 1 or self.count() == 0:
            return []

        blob = sqlite_vec.serialize_float32(await self._embed_checked(text))
        rows = self._conn.execute(
            """
            SELECT c.id, c.text, v.distance
            FROM   chunks_vec v
            JOIN   chunks c ON c.id = v.rowid
            WHERE  v.embedding MATCH ?
              AND  k = ?
            ORDER  BY v.distance
            """,
            (blob, top_k),
        ).fetchall()
        return [Passage(id=r["id"], text=r["text"], distance=r["distance"]) for r in rows]

    def count(self) -> int:
        """Number of chunks currently stored."""
        return self._conn.execute("SELECT COUNT(*) FROM chunks").fetchone()[0]

    def close(self) -> None:
        """Close the underlying connection; the stored chunks are gone."""
        self._conn.close()
