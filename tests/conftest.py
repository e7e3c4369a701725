"""Shared fakes for the pipeline tests.

No test talks to a real embedder or chat model: the store and generation
capabilities are replaced by small in-process fakes whose behaviour each
test controls.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional, Sequence
from unittest.mock import AsyncMock

import pytest

from textrag.config import Settings
from textrag.rag.models import Passage
from textrag.rag.pipeline import RagPipeline

PLACEHOLDER = "LLM inference is not initialized yet!"


class FakeStore:
    """Records every submission; *reject* may return an exception to raise."""

    def __init__(self, reject: Optional[Callable[[str], Optional[Exception]]] = None) -> None:
        self.reject = reject
        self.calls: list[str] = []
        self.stored: list[str] = []
        self.closed = False
        self.entered = asyncio.Event()
        self.release: Optional[asyncio.Event] = None

    async def submit(self, batch: Sequence[str]) -> None:
        text = batch[0]
        self.calls.append(text)
        self.entered.set()
        if self.release is not None:
            await self.release.wait()
        if self.reject is not None:
            exc = self.reject(text)
            if exc is not None:
                raise exc
        self.stored.extend(batch)

    async def query(self, text: str, top_k: int = 3) -> list[Passage]:
        return [Passage(id=i, text=t, distance=0.0) for i, t in enumerate(self.stored[:top_k])]

    def close(self) -> None:
        self.closed = True


class FakeGenerator:
    """Replies from a script; each entry is either a string or an exception.

    Each reply is delivered as one partial update before being returned.
    """

    def __init__(self, replies: Sequence[object] = ("The answer.",), warmup: str = "OK") -> None:
        self.replies = list(replies)
        self.warmup_text = warmup
        self.prompts: list[str] = []
        self.warmups = 0
        self.block: Optional[asyncio.Event] = None
        self.entered = asyncio.Event()

    async def generate(self, prompt: str, on_partial=None) -> str:
        self.prompts.append(prompt)
        self.entered.set()
        if self.block is not None:
            await self.block.wait()
        reply = self.replies[min(len(self.prompts), len(self.replies)) - 1]
        if isinstance(reply, BaseException):
            raise reply
        text = str(reply)
        if on_partial is not None:
            on_partial(text)
        return text

    async def warm_up(self) -> str:
        self.warmups += 1
        return self.warmup_text


def make_settings(**overrides) -> Settings:
    return Settings(**overrides)


@pytest.fixture()
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture()
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture()
def no_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture()
def pipeline_factory(no_sleep: AsyncMock):
    """Return ``build(store=None, generator=None, **settings)`` → RagPipeline."""

    def build(store=None, generator=None, **overrides) -> RagPipeline:
        return RagPipeline(
            config=make_settings(**overrides),
            store=store if store is not None else FakeStore(),
            generator=generator if generator is not None else FakeGenerator(),
            sleep=no_sleep,
        )

    return build
