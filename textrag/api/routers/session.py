"""Session endpoints: knowledge loading, chat with SSE streaming, reset.

Routes
------
GET    /session             Status snapshot (statuses, flags, messages)
POST   /session/text        Body: {"text": "...", "name": "..."} → index text
POST   /session/file        Multipart .txt upload                → index file
POST   /session/messages    Body: {"message": "..."}              → SSE stream
POST   /session/reset       Start a new chat on a fresh pipeline
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from fastapi import APIRouter, HTTPException, Request, UploadFile
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from textrag.session import ChatSession

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class TextIngestRequest(BaseModel):
    text: str
    name: str = "pasted text"


class IngestResponse(BaseModel):
    chunk_count: int
    rag_status: str
    loaded_name: Optional[str]


class ChatMessageRequest(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _session(request: Request) -> ChatSession:
    return request.app.state.session


def _sse(payload: dict) -> str:
    """Encode *payload* as a single SSE frame (``data: ...\\n\\n``)."""
    return f"data: {json.dumps(payload)}\n\n"


def _ingest_response(session: ChatSession, chunk_count: Optional[int]) -> dict[str, Any]:
    if chunk_count is None:
        raise HTTPException(status_code=502, detail=session.rag_status)
    return {
        "chunk_count": chunk_count,
        "rag_status": session.rag_status,
        "loaded_name": session.loaded_name,
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("")
def get_status(request: Request) -> dict[str, Any]:
    """Return the current session state."""
    return _session(request).status()


@router.post("/text", response_model=IngestResponse)
async def ingest_text_endpoint(body: TextIngestRequest, request: Request) -> dict[str, Any]:
    """Chunk *text* and index it as the session's knowledge."""
    session = _session(request)
    if session.is_indexing:
        raise HTTPException(status_code=409, detail="Indexing already in progress.")
    chunk_count = await session.load_text(body.text, name=body.name)
    return _ingest_response(session, chunk_count)


@router.post("/file", response_model=IngestResponse)
async def ingest_file_endpoint(file: UploadFile, request: Request) -> dict[str, Any]:
    """Upload a UTF-8 ``.txt`` file and index its contents."""
    if not file.filename or not file.filename.lower().endswith(".txt"):
        raise HTTPException(status_code=422, detail="Uploaded file must be a .txt file.")

    session = _session(request)
    if session.is_indexing:
        raise HTTPException(status_code=409, detail="Indexing already in progress.")

    content = await file.read()
    try:
        raw = content.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=422, detail=f"Read failed: {exc}") from exc

    chunk_count = await session.load_text(raw, name=file.filename)
    return _ingest_response(session, chunk_count)


@router.post("/messages")
async def send_message_endpoint(body: ChatMessageRequest, request: Request) -> StreamingResponse:
    """Send a user message and stream back the reply as SSE.

    SSE event shapes::

        data: {"event": "token", "text": "<answer so far>"}
        data: {"event": "done",  "text": "<final answer>"}
        data: {"event": "error", "detail": "..."}
    """
    session = _session(request)
    if session.is_generating:
        raise HTTPException(status_code=409, detail="A reply is already being generated.")
    if not session.can_send(body.message):
        raise HTTPException(
            status_code=409,
            detail=f"Not ready to chat: {session.model_status}; {session.rag_status}",
        )

    return StreamingResponse(
        _reply_sse_generator(session, body.message),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "X-Accel-Buffering": "no",
        },
    )


@router.post("/reset")
async def reset_endpoint(request: Request) -> dict[str, Any]:
    """Discard history and knowledge and start over."""
    session = _session(request)
    await session.new_chat()
    return session.status()


# ---------------------------------------------------------------------------
# SSE generator
# ---------------------------------------------------------------------------

async def _reply_sse_generator(session: ChatSession, message: str) -> AsyncIterator[str]:
    """Run ``session.send`` and forward its partial updates as SSE frames."""
    updates: asyncio.Queue[Optional[str]] = asyncio.Queue()

    async def run() -> Any:
        try:
            return await session.send(message, on_partial=updates.put_nowait)
        finally:
            updates.put_nowait(None)

    task = asyncio.create_task(run())
    try:
        while True:
            update = await updates.get()
            if update is None:
                break
            yield _sse({"event": "token", "text": update})

        reply = await task
    finally:
        if not task.done():
            task.cancel()

    if reply is None:
        yield _sse({"event": "error", "detail": "Chat was reset before the reply completed."})
    elif reply.is_error:
        yield _sse({"event": "error", "detail": reply.text})
    else:
        yield _sse({"event": "done", "text": reply.text})
