"""Retrieval-augmented answer generation with streaming partials.

``Generator.generate`` retrieves the passages closest to the question from
the vector store, folds them into a QA prompt, and streams the chat model's
reply.  After every streamed piece the caller's ``on_partial`` sink receives
the full text accumulated so far, so a UI can simply overwrite the answer
being displayed.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from langchain_core.messages import HumanMessage

from textrag.config import Settings, settings as default_settings
from textrag.rag.store import VectorStore

logger = logging.getLogger(__name__)

PartialSink = Callable[[str], None]

QA_PROMPT_TEMPLATE = (
    "You are a helpful assistant.\n"
    "If Context is empty or not relevant, answer normally.\n"
    "If Context contains relevant info, prefer using it.\n\n"
    "Context:\n{context}\n\n"
    "User:\n{question}\n\n"
    "Assistant:"
)


# ---------------------------------------------------------------------------
# LLM helper
# ---------------------------------------------------------------------------

def _get_llm(config: Settings) -> Any:
    """Return a streaming-capable LangChain chat model from *config*."""
    if config.llm_provider == "openai":
        from langchain_openai import ChatOpenAI

        return ChatOpenAI(
            model=config.openai_chat_model,
            temperature=config.llm_temperature,
            streaming=True,
        )

    from langchain_ollama import ChatOllama

    return ChatOllama(model=config.ollama_chat_model, temperature=config.llm_temperature)


def build_prompt(question: str, passages: list[str]) -> str:
    """Fill :data:`QA_PROMPT_TEMPLATE` with *question* and retrieved *passages*."""
    return QA_PROMPT_TEMPLATE.format(
        context="\n\n".join(passages),
        question=question,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class Generator:
    """Generation capability: retrieval + streaming chat model.

    Args:
        store: Vector store queried for context.
        llm: A LangChain chat model exposing ``astream``.  Built lazily
            from the settings when omitted.
        config: Settings to read ``top_k`` and model choice from.
    """

    def __init__(
        self,
        store: VectorStore,
        llm: Any = None,
        config: Optional[Settings] = None,
    ) -> None:
        self.store = store
        self.config = config or default_settings
        self._llm = llm

    @property
    def llm(self) -> Any:
        if self._llm is None:
            self._llm = _get_llm(self.config)
        return self._llm

    async def _stream(self, prompt: str, on_partial: Optional[PartialSink]) -> str:
        accumulated: list[str] = []
        async for chunk in self.llm.astream([HumanMessage(content=prompt)]):
            text = chunk.content if hasattr(chunk, "content") else str(chunk)
            if not text:
                continue
            accumulated.append(text)
            if on_partial is not None:
                on_partial("".join(accumulated))
        return "".join(accumulated).strip()

    async def generate(self, question: str, on_partial: Optional[PartialSink] = None) -> str:
        """Answer *question* using the closest stored passages as context.

        Returns:
            The final reply, stripped of surrounding whitespace.
        """
        passages = await self.store.query(question, top_k=self.config.top_k)
        logger.debug("Retrieved %d passage(s) for generation", len(passages))
        prompt = build_prompt(question, [p.text for p in passages])
        return await self._stream(prompt, on_partial)

    async def warm_up(self) -> str:
        """Send the warm-up prompt straight to the model (no retrieval)."""
        return await self._stream(self.config.warmup_prompt, None)
