"""Text embedder for the RAG ingestion pipeline.

Embedding providers
-------------------
``ollama`` (default)
    Calls the local Ollama REST API at ``/api/embeddings``.
    Configure via ``OLLAMA_BASE_URL`` and ``OLLAMA_EMBED_MODEL``.

``openai``
    Calls the OpenAI embeddings API.
    Requires ``OPENAI_API_KEY`` to be set.
    Configure via ``OPENAI_EMBED_MODEL``.

Set ``EMBEDDING_PROVIDER=openai`` in your ``.env`` to switch providers.

Failures are reported as tagged store errors: a rejection whose message
mentions an input-size limit becomes
:class:`~textrag.rag.errors.SizeLimitExceeded`, anything else a plain
:class:`~textrag.rag.errors.StoreError`.
"""

from __future__ import annotations

import logging
import os

import httpx

from textrag.config import settings
from textrag.rag.errors import classify_store_error

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the error text from a failed response."""
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error", payload)
        if isinstance(error, dict):
            return str(error.get("message", error))
        return str(error)
    return str(payload)


async def _post(url: str, payload: dict, headers: dict | None = None) -> dict:
    """POST *payload* and return the decoded JSON body, raising tagged errors."""
    try:
        async with httpx.AsyncClient(timeout=settings.request_timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
    except httpx.HTTPError as exc:
        raise classify_store_error(
            f"Embedding request failed: {exc}", settings.size_limit_markers
        ) from exc

    if response.is_error:
        message = _error_message(response)
        logger.debug("Embedding API returned %s: %s", response.status_code, message)
        raise classify_store_error(
            f"Embedding API error {response.status_code}: {message}",
            settings.size_limit_markers,
        )
    return response.json()


# ---------------------------------------------------------------------------
# Provider implementations
# ---------------------------------------------------------------------------

async def _embed_ollama(text: str) -> list[float]:
    """Call Ollama ``/api/embeddings`` and return the embedding vector."""
    data = await _post(
        f"{settings.ollama_base_url}/api/embeddings",
        {"model": settings.ollama_embed_model, "prompt": text},
    )
    return data["embedding"]


async def _embed_openai(text: str) -> list[float]:
    """Call the OpenAI embeddings API and return the embedding vector."""
    api_key = os.environ.get("OPENAI_API_KEY", "")
    if not api_key:
        raise EnvironmentError(
            "OPENAI_API_KEY environment variable is not set. "
            "Set it or switch to EMBEDDING_PROVIDER=ollama."
        )

    data = await _post(
        "https://api.openai.com/v1/embeddings",
        {"model": settings.openai_embed_model, "input": text},
        headers={"Authorization": f"Bearer {api_key}"},
    )
    return data["data"][0]["embedding"]


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def embed_text(text: str) -> list[float]:
    """Return an embedding vector for *text*.

    The active provider is determined by ``settings.embedding_provider``
    (``"ollama"`` or ``"openai"``).

    Args:
        text: The input string to embed.  Should be a single chunk (not a
            full document); the embedder rejects over-long inputs.

    Returns:
        A list of floats with length ``settings.embedding_dim``.

    Raises:
        SizeLimitExceeded: If the provider rejected the input as too long.
        StoreError: For any other provider or transport failure.
        EnvironmentError: If ``OPENAI_API_KEY`` is missing when using the
            OpenAI provider.
    """
    if settings.embedding_provider == "openai":
        return await _embed_openai(text)
    return await _embed_ollama(text)
