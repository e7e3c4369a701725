"""textrag CLI: chat with a single text file from the terminal.

Usage:
    python cli/main.py --help

Commands:
    chunk   show how a file is segmented (no model needed)
    ask     index a file and answer one question
    chat    index a file and chat interactively
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from textrag.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
import logging
from typing import Optional

import typer

from textrag.config import settings
from textrag.rag.chunker import chunk_text
from textrag.rag.tokens import get_estimator
from textrag.session import ChatSession

app = typer.Typer(
    name="textrag",
    help="Chat with a text file using a local RAG pipeline.",
    no_args_is_help=True,
)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    """Configure logging for every command."""
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level.upper(), logging.WARNING)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class _StreamPrinter:
    """Print cumulative partial updates as they grow."""

    def __init__(self) -> None:
        self.printed = ""

    def __call__(self, update: str) -> None:
        if update.startswith(self.printed):
            typer.echo(update[len(self.printed):], nl=False)
        else:
            typer.echo("\n" + update, nl=False)
        self.printed = update


async def _prepare(session: ChatSession, path: Path) -> None:
    """Warm the model up and index *path*, exiting with code 1 if indexing fails."""
    typer.echo(f"[model] {session.model_status}")
    if await session.start():
        typer.echo(f"[model] {session.model_status}")
    else:
        typer.echo(
            f"[model] {session.model_status}: {session.rag_status} (retrying on first question)",
            err=True,
        )

    typer.echo(f"[index] Loading {str(path)!r} …")
    chunk_count = await session.load_file(path)
    if chunk_count is None:
        typer.echo(f"[index] {session.rag_status}", err=True)
        raise typer.Exit(1)
    typer.echo(f"[index] {session.rag_status} ({chunk_count} chunks)")


async def _answer(session: ChatSession, question: str) -> bool:
    printer = _StreamPrinter()
    reply = await session.send(question, on_partial=printer)
    if reply is None:
        typer.echo("[chat] Not ready to answer.", err=True)
        return False
    if reply.is_error:
        typer.echo(("\n" if printer.printed else "") + reply.text, err=True)
        return False
    if reply.text != printer.printed:
        printer(reply.text)
    typer.echo("")
    return True


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.command("chunk")
def chunk_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to segment."),
    max_tokens: int = typer.Option(settings.max_tokens_per_chunk, "--max-tokens", min=1, help="Token budget per chunk."),
    overlap: int = typer.Option(settings.overlap_tokens, "--overlap", min=0, help="Overlap words carried into the next chunk."),
    estimator: str = typer.Option(settings.token_estimator, "--estimator", help="Token estimator: scaled | words."),
    as_json: bool = typer.Option(False, "--json", help="Print the chunks as a JSON array."),
) -> None:
    """Print the chunks a file would be indexed as."""
    try:
        estimate = get_estimator(estimator)
    except ValueError as exc:
        typer.echo(f"[chunk] {exc}", err=True)
        raise typer.Exit(1)

    text = path.read_text(encoding="utf-8")
    chunks = chunk_text(
        text,
        max_tokens=max_tokens,
        overlap_tokens=overlap,
        separators=settings.separators,
        estimate=estimate,
    )

    if as_json:
        typer.echo(json.dumps(chunks, indent=2, ensure_ascii=False))
        return

    typer.echo(f"[chunk] {len(chunks)} chunk(s) from {str(path)!r}")
    for i, chunk in enumerate(chunks, start=1):
        typer.echo(f"\n--- chunk {i}/{len(chunks)} (~{estimate(chunk)} tokens) ---")
        typer.echo(chunk)


@app.command("ask")
def ask_cmd(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Text file to use as knowledge."),
    question: str = typer.Argument(..., help="Question to ask."),
) -> None:
    """Index a file and stream the answer to a single question."""

    async def run() -> bool:
        session = ChatSession()
        try:
            await _prepare(session, path)
            return await _answer(session, question)
        finally:
            await session.close()

    if not asyncio.run(run()):
        raise typer.Exit(1)


@app.command("chat")
def chat_cmd(
    path: Optional[Path] = typer.Argument(None, exists=True, dir_okay=False, help="Text file to load first."),
) -> None:
    """Interactive chat.  Commands: /load PATH, /new, /status, /quit."""

    async def run() -> None:
        session = ChatSession()
        try:
            if path is not None:
                await _prepare(session, path)
            elif not await session.start():
                typer.echo(f"[model] {session.model_status}: {session.rag_status}", err=True)

            while True:
                line = typer.prompt("you", default="", show_default=False).strip()
                if not line:
                    continue
                if line == "/quit":
                    break
                if line == "/new":
                    await session.new_chat()
                    typer.echo(f"[chat] New chat. {session.model_status}; {session.rag_status}")
                    continue
                if line == "/status":
                    typer.echo(f"[chat] {session.model_status}; {session.rag_status}")
                    continue
                if line.startswith("/load "):
                    target = Path(line[len("/load "):].strip())
                    chunk_count = await session.load_file(target)
                    if chunk_count is None:
                        typer.echo(f"[index] {session.rag_status}", err=True)
                    else:
                        typer.echo(f"[index] {session.rag_status} ({chunk_count} chunks)")
                    continue
                if not session.can_send(line):
                    typer.echo(f"[chat] Not ready: {session.rag_status}", err=True)
                    continue
                await _answer(session, line)
        finally:
            await session.close()

    asyncio.run(run())


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
