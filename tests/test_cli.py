"""Tests for the textrag CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from cli.main import app
from conftest import PLACEHOLDER, FakeGenerator, FakeStore
from textrag.rag.errors import StoreError
from textrag.session import ChatSession

runner = CliRunner()


@pytest.fixture
def notes(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("a b c\nd e f", encoding="utf-8")
    return path


@pytest.fixture
def fake_sessions(monkeypatch, pipeline_factory):
    """Make the CLI build sessions over fake pipelines; returns the options dict."""
    options = {"store": {}, "generator": {}}

    def build_session():
        return ChatSession(
            lambda: pipeline_factory(
                store=FakeStore(**options["store"]),
                generator=FakeGenerator(**options["generator"]),
            )
        )

    monkeypatch.setattr("cli.main.ChatSession", build_session)
    return options


def test_chunk_json(notes):
    result = runner.invoke(
        app,
        ["chunk", str(notes), "--json", "--max-tokens", "3", "--overlap", "0", "--estimator", "words"],
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout) == ["a b c", "d e f"]


def test_chunk_with_overlap(notes):
    result = runner.invoke(
        app,
        ["chunk", str(notes), "--json", "--max-tokens", "3", "--overlap", "1", "--estimator", "words"],
    )
    assert result.exit_code == 0
    assert json.loads(result.stdout) == ["a b c", "c\nd e f"]


def test_chunk_plain_listing(notes):
    result = runner.invoke(app, ["chunk", str(notes), "--max-tokens", "3", "--estimator", "words"])
    assert result.exit_code == 0
    assert "2 chunk(s)" in result.stdout
    assert "--- chunk 2/2" in result.stdout


def test_chunk_unknown_estimator(notes):
    result = runner.invoke(app, ["chunk", str(notes), "--estimator", "bpe"])
    assert result.exit_code == 1


def test_chunk_missing_file(tmp_path):
    result = runner.invoke(app, ["chunk", str(tmp_path / "nope.txt")])
    assert result.exit_code != 0


def test_ask_streams_answer(notes, fake_sessions):
    fake_sessions["generator"] = {"replies": ("Forty-two.",)}
    result = runner.invoke(app, ["ask", str(notes), "What is the answer?"])
    assert result.exit_code == 0
    assert "Knowledge ready" in result.stdout
    assert "Forty-two." in result.stdout


def test_ask_fails_when_model_never_ready(notes, fake_sessions):
    fake_sessions["generator"] = {"warmup": PLACEHOLDER}
    result = runner.invoke(app, ["ask", str(notes), "question"])
    assert result.exit_code == 1
    assert "LLM warmup failed" in result.output


def test_ask_fails_when_indexing_fails(notes, fake_sessions):
    fake_sessions["store"] = {"reject": lambda _: StoreError("embedder offline")}
    result = runner.invoke(app, ["ask", str(notes), "question"])
    assert result.exit_code == 1


def test_ask_fails_on_generation_error(notes, fake_sessions):
    fake_sessions["generator"] = {"replies": (RuntimeError("model crashed"),)}
    result = runner.invoke(app, ["ask", str(notes), "question"])
    assert result.exit_code == 1


def test_chat_repl(notes, fake_sessions):
    result = runner.invoke(app, ["chat", str(notes)], input="hello\n/status\n/new\n/quit\n")
    assert result.exit_code == 0
    assert "The answer." in result.stdout
    assert "New chat." in result.stdout
