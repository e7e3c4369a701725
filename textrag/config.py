"""Centralised settings for textrag.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

List-valued settings (separators, marker substrings) are read from the
environment as JSON arrays, e.g.::

    CHUNK_SEPARATORS='["\\n\\n", "\\n", " "]'
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


DEFAULT_SEPARATORS: tuple[str, ...] = ("\n\n", "\n", ". ", " ")

DEFAULT_SIZE_LIMIT_MARKERS: tuple[str, ...] = (
    "max_input_size",
    "max input size",
    "tokens.size()",
    "sequence length",
    "maximum context length",
    "input length exceeds",
)

DEFAULT_PLACEHOLDER_MARKERS: tuple[str, ...] = ("LLM inference is not initialized yet",)


def _env_list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """Read a JSON array of strings from *name*, falling back to *default*."""
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be a JSON array of strings: {exc}") from exc
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ValueError(f"{name} must be a JSON array of non-empty strings.")
    return tuple(value)


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Chunking
    # ------------------------------------------------------------------
    # Keep below the embedder's 256-token sequence limit, leaving room for
    # the overlap prepended to every chunk after the first.
    max_tokens_per_chunk: int = field(
        default_factory=lambda: int(os.environ.get("MAX_TOKENS_PER_CHUNK", "235"))
    )
    overlap_tokens: int = field(
        default_factory=lambda: int(os.environ.get("OVERLAP_TOKENS", "20"))
    )
    token_estimator: str = field(
        default_factory=lambda: os.environ.get("TOKEN_ESTIMATOR", "scaled")
    )
    separators: tuple[str, ...] = field(
        default_factory=lambda: _env_list("CHUNK_SEPARATORS", DEFAULT_SEPARATORS)
    )

    # ------------------------------------------------------------------
    # Ingestion retry
    # ------------------------------------------------------------------
    max_split_depth: int = field(
        default_factory=lambda: int(os.environ.get("MAX_SPLIT_DEPTH", "10"))
    )
    size_limit_markers: tuple[str, ...] = field(
        default_factory=lambda: _env_list("SIZE_LIMIT_MARKERS", DEFAULT_SIZE_LIMIT_MARKERS)
    )

    # ------------------------------------------------------------------
    # Generation retry
    # ------------------------------------------------------------------
    generation_attempts: int = field(
        default_factory=lambda: int(os.environ.get("GENERATION_ATTEMPTS", "3"))
    )
    generation_backoff_ms: int = field(
        default_factory=lambda: int(os.environ.get("GENERATION_BACKOFF_MS", "500"))
    )
    placeholder_markers: tuple[str, ...] = field(
        default_factory=lambda: _env_list("PLACEHOLDER_MARKERS", DEFAULT_PLACEHOLDER_MARKERS)
    )
    warmup_prompt: str = field(
        default_factory=lambda: os.environ.get("WARMUP_PROMPT", "Reply with a single word: OK.")
    )
    top_k: int = field(
        default_factory=lambda: int(os.environ.get("TOP_K", "3"))
    )

    # ------------------------------------------------------------------
    # Embedding model
    # ------------------------------------------------------------------
    embedding_provider: str = field(
        default_factory=lambda: os.environ.get("EMBEDDING_PROVIDER", "ollama")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_embed_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_EMBED_MODEL", "embeddinggemma:latest")
    )
    openai_embed_model: str = field(
        default_factory=lambda: os.environ.get(
            "OPENAI_EMBED_MODEL", "text-embedding-3-small"
        )
    )
    embedding_dim: int = field(
        default_factory=lambda: int(os.environ.get("EMBEDDING_DIM", "768"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "60.0"))
    )

    # ------------------------------------------------------------------
    # Chat model
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "ollama")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "gemma3n:e2b")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    llm_temperature: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7"))
    )

    # ------------------------------------------------------------------
    # Logging
    # ------------------------------------------------------------------
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "WARNING")
    )

    @property
    def generation_backoff_seconds(self) -> float:
        """Backoff between generation attempts, in seconds."""
        return self.generation_backoff_ms / 1000.0


# Module-level singleton, import this everywhere:
#   from textrag.config import settings
settings = Settings()
