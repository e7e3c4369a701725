"""Tests for ChatSession: statuses, chat flow and stale-result handling on reset."""

from __future__ import annotations

import asyncio

import pytest

from conftest import PLACEHOLDER, FakeGenerator, FakeStore
from textrag.rag.errors import StoreError
from textrag.session import MODEL_INITIALIZING_STATUS, NO_FILE_STATUS, ChatSession, Role


@pytest.fixture()
def make_session(pipeline_factory):
    """Return ``build(**kw)`` → (session, stores, generators).

    Every pipeline the session builds gets its own FakeStore and
    FakeGenerator; they are appended to the returned lists in build order.
    """

    def build(store_kwargs=None, generator_kwargs=None, **overrides):
        stores: list[FakeStore] = []
        generators: list[FakeGenerator] = []

        def factory():
            store = FakeStore(**(store_kwargs or {}))
            generator = FakeGenerator(**(generator_kwargs or {}))
            stores.append(store)
            generators.append(generator)
            return pipeline_factory(store=store, generator=generator, **overrides)

        return ChatSession(factory), stores, generators

    return build


async def _ready_session(make_session, **kw) -> tuple[ChatSession, list, list]:
    session, stores, generators = make_session(**kw)
    assert await session.start()
    assert await session.load_text("Paris is the capital of France.") == 1
    return session, stores, generators


# ---------------------------------------------------------------------------
# Model start-up
# ---------------------------------------------------------------------------

class TestStart:
    def test_initial_state(self, make_session) -> None:
        session, _, _ = make_session()
        assert session.model_status == MODEL_INITIALIZING_STATUS
        assert session.rag_status == NO_FILE_STATUS
        assert not session.is_model_ready
        assert not session.is_rag_ready

    async def test_successful_warm_up(self, make_session) -> None:
        session, _, generators = make_session()
        assert await session.start()
        assert session.is_model_ready
        assert session.model_status == "Model ready"
        assert generators[0].warmups == 1

    async def test_placeholder_warm_up_reported(self, make_session) -> None:
        session, _, _ = make_session(generator_kwargs={"warmup": PLACEHOLDER})
        assert not await session.start()
        assert not session.is_model_ready
        assert session.model_status == "Model init failed"
        assert session.rag_status.startswith("Error: LLM warmup failed")

    async def test_failed_warm_up_retried_on_first_send(self, make_session) -> None:
        session, _, generators = make_session(generator_kwargs={"warmup": PLACEHOLDER})
        assert not await session.start()
        generators[0].warmup_text = "OK"
        await session.load_text("Paris is the capital of France.")

        assert session.can_send("Capital?")
        reply = await session.send("Capital?")

        assert reply is not None and reply.text == "The answer."
        assert session.is_model_ready
        assert session.model_status == "Model ready"
        assert generators[0].warmups == 2

    async def test_warm_up_still_failing_becomes_error_reply(self, make_session) -> None:
        session, _, generators = make_session(generator_kwargs={"warmup": PLACEHOLDER})
        await session.start()
        await session.load_text("knowledge")

        reply = await session.send("question")

        assert reply is not None and reply.is_error
        assert reply.text.startswith("Error: LLM warmup failed")
        assert generators[0].prompts == []
        assert session.can_send("again")


# ---------------------------------------------------------------------------
# Knowledge loading
# ---------------------------------------------------------------------------

class TestLoading:
    async def test_load_text_reports_progress(self, make_session) -> None:
        session, stores, _ = make_session(max_tokens_per_chunk=3, overlap_tokens=0, separators=(". ",))
        seen: list[str] = []
        stores[0].reject = lambda _: seen.append(session.rag_status)

        count = await session.load_text("Sentence one. Sentence two. Sentence three.", name="notes")

        assert count == 3
        assert seen == ["Indexing... (3 chunks)"] * 3
        assert session.rag_status == "Knowledge ready"
        assert session.is_rag_ready
        assert not session.is_indexing
        assert session.loaded_name == "notes"
        assert session.chunk_count == 3

    async def test_load_file(self, make_session, tmp_path) -> None:
        path = tmp_path / "facts.txt"
        path.write_text("Water boils at 100 degrees.", encoding="utf-8")
        session, stores, _ = make_session()

        assert await session.load_file(path) == 1
        assert session.loaded_name == "facts.txt"
        assert stores[0].stored == ["Water boils at 100 degrees."]

    async def test_missing_file_is_read_failure(self, make_session, tmp_path) -> None:
        session, stores, _ = make_session()

        assert await session.load_file(tmp_path / "missing.txt") is None
        assert session.rag_status.startswith("Read failed: ")
        assert not session.is_indexing
        assert not session.is_rag_ready
        assert stores[0].calls == []

    async def test_store_failure_is_index_failure(self, make_session) -> None:
        session, _, _ = make_session(store_kwargs={"reject": lambda _: StoreError("embedder offline")})

        assert await session.load_text("some text") is None
        assert session.rag_status == "Index failed: embedder offline"
        assert not session.is_indexing
        assert not session.is_rag_ready


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class TestSend:
    async def test_cannot_send_until_ready(self, make_session) -> None:
        session, _, _ = make_session()
        assert not session.can_send("hello")
        await session.start()
        assert not session.can_send("hello")
        await session.load_text("knowledge")
        assert session.can_send("hello")
        assert not session.can_send("   ")

    async def test_send_when_not_ready_does_nothing(self, make_session) -> None:
        session, _, _ = make_session()
        assert await session.send("hello") is None
        assert session.messages == []

    async def test_successful_reply(self, make_session) -> None:
        session, _, generators = await _ready_session(
            make_session, generator_kwargs={"replies": ("  Paris.  ",)}
        )
        partials: list[str] = []

        reply = await session.send("Capital of France?", partials.append)

        assert reply is not None and reply.text == "Paris."
        assert not reply.is_error
        assert partials == ["  Paris.  "]
        assert [(m.role, m.text) for m in session.messages] == [
            (Role.USER, "Capital of France?"),
            (Role.MODEL, "Paris."),
        ]
        assert generators[0].prompts == ["Capital of France?"]

    async def test_failed_reply_becomes_error_message(self, make_session) -> None:
        session, _, _ = await _ready_session(
            make_session, generator_kwargs={"replies": (RuntimeError("model crashed"),)}
        )

        reply = await session.send("question")

        assert reply is not None
        assert reply.is_error
        assert reply.text == "Error: model crashed"
        assert session.messages[-1] is reply

    async def test_status_snapshot(self, make_session) -> None:
        session, _, _ = await _ready_session(make_session)
        await session.send("question")

        status = session.status()

        assert status["is_model_ready"] and status["is_rag_ready"]
        assert status["pipeline_id"] == session.pipeline.instance_id
        assert [m["role"] for m in status["messages"]] == ["user", "model"]

    async def test_one_reply_at_a_time(self, make_session) -> None:
        session, _, generators = await _ready_session(make_session)
        generators[0].block = asyncio.Event()

        first = asyncio.create_task(session.send("q1"))
        await generators[0].entered.wait()

        assert session.is_generating
        assert not session.can_send("q2")
        assert await session.send("q2") is None

        generators[0].block.set()
        reply = await first

        assert reply is not None and reply.text == "The answer."
        assert generators[0].prompts == ["q1"]
        assert [m.text for m in session.messages] == ["q1", "The answer."]
        assert not session.is_generating
        assert session.can_send("q2")


# ---------------------------------------------------------------------------
# New chat
# ---------------------------------------------------------------------------

class TestNewChat:
    async def test_resets_everything(self, make_session) -> None:
        session, stores, _ = await _ready_session(make_session)
        await session.send("question")
        old_id = session.pipeline.instance_id

        assert await session.new_chat()

        assert session.messages == []
        assert session.rag_status == NO_FILE_STATUS
        assert not session.is_rag_ready
        assert session.is_model_ready
        assert session.pipeline.instance_id != old_id
        assert stores[0].closed
        assert not stores[1].closed

    async def test_indexing_result_discarded_after_reset(self, make_session) -> None:
        session, stores, _ = make_session()
        await session.start()
        stores[0].release = asyncio.Event()

        loading = asyncio.create_task(session.load_text("old knowledge"))
        await stores[0].entered.wait()
        await session.new_chat()

        assert await loading is None
        assert session.rag_status == NO_FILE_STATUS
        assert not session.is_indexing
        assert session.chunk_count is None
        assert stores[0].stored == []

    async def test_reply_discarded_after_reset(self, make_session) -> None:
        session, _, generators = await _ready_session(make_session)
        generators[0].block = asyncio.Event()
        partials: list[str] = []

        sending = asyncio.create_task(session.send("question", partials.append))
        await generators[0].entered.wait()
        await session.new_chat()
        generators[0].block.set()

        assert await sending is None
        assert session.messages == []
        assert not session.is_generating
        assert partials == []
