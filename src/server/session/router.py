from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from src.memory.service import MemoryService
from src.server.chat.dependencies import get_memory_service

from .dependencies import RequestContext, get_request_context, get_session_store
from .models import MessageRecord, NewMessage, SessionRecord
from .schemas import (
    DeleteResponse,
    MessageCreateRequest,
    SessionCreateRequest,
    SessionCreateResponse,
    SessionDetail,
    SessionListResponse,
    SessionMessage,
    SessionSummary,
    SessionUpdateRequest,
    ThreadUpdateRequest,
    TruncateResponse,
)
from .store import SQLiteSessionStore
from .title import ensure_session_title

router = APIRouter(prefix="/api/sessions", tags=["sessions"])


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionListResponse:
    records = await store.list_sessions(workspace_id=ctx.workspace_id, user_id=ctx.user_id)
    return SessionListResponse(sessions=[_to_summary(record) for record in records])


@router.post("", status_code=status.HTTP_201_CREATED, response_model=SessionCreateResponse)
async def create_session(
    payload: SessionCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
    memory: Optional[MemoryService] = Depends(get_memory_service),
) -> SessionCreateResponse:
    session = await store.create_session(
        workspace_id=ctx.workspace_id,
        user_id=ctx.user_id,
        page_id=payload.page_id,
    )
    memories = await memory.recall(ctx.user_id) if memory is not None else []
    return SessionCreateResponse(session=_to_summary(session), memories=memories)


@router.get("/{session_id}", response_model=SessionDetail)
async def get_session(
    session_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionDetail:
    session = await _get_owned_session(store, session_id, ctx)
    messages = await store.get_messages(session_id)
    return _to_detail(session, messages)


@router.patch("/{session_id}", response_model=SessionSummary)
async def update_session(
    session_id: str,
    payload: SessionUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionSummary:
    session = await _get_owned_session(store, session_id, ctx)
    if payload.title is not None:
        session = await store.rename_session(session_id, payload.title)
    return _to_summary(session)


@router.delete("/{session_id}", response_model=DeleteResponse)
async def delete_session(
    session_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> DeleteResponse:
    await _get_owned_session(store, session_id, ctx)
    await store.delete_session(session_id)
    return DeleteResponse(success=True)


@router.post("/{session_id}/messages", status_code=status.HTTP_201_CREATED, response_model=SessionMessage)
async def create_message(
    session_id: str,
    payload: MessageCreateRequest,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionMessage:
    await _get_owned_session(store, session_id, ctx)
    record = await store.append_message(session_id, NewMessage(**payload.model_dump()))
    return _to_message(record)


@router.delete("/{session_id}/messages/{message_id}/truncate", response_model=TruncateResponse)
async def truncate_messages(
    session_id: str,
    message_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> TruncateResponse:
    await _get_owned_session(store, session_id, ctx)
    deleted = await store.truncate_from(session_id, message_id)
    if deleted is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return TruncateResponse(deleted=deleted)


@router.post("/{session_id}/auto-title", response_model=SessionSummary)
async def auto_title(
    session_id: str,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionSummary:
    await _get_owned_session(store, session_id, ctx)
    await ensure_session_title(store, session_id)
    session = await store.get_session(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return _to_summary(session)


@router.put("/{session_id}/thread", response_model=SessionSummary)
async def update_thread(
    session_id: str,
    payload: ThreadUpdateRequest,
    ctx: RequestContext = Depends(get_request_context),
    store: SQLiteSessionStore = Depends(get_session_store),
) -> SessionSummary:
    session = await _get_owned_session(store, session_id, ctx)
    if session.thread_id and session.thread_id != payload.thread_id:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Session already bound to a thread")
    await store.update_thread_id(session_id, payload.thread_id)
    session = await store.get_session(session_id) or session
    return _to_summary(session)


async def _get_owned_session(
    store: SQLiteSessionStore, session_id: str, ctx: RequestContext
) -> SessionRecord:
    session = await store.get_session(session_id)
    if session is None or not session.is_owned_by(ctx.workspace_id, ctx.user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


def _to_summary(record: SessionRecord) -> SessionSummary:
    return SessionSummary(
        id=record.id,
        workspace_id=record.workspace_id,
        user_id=record.user_id,
        page_id=record.page_id,
        title=record.title,
        thread_id=record.thread_id,
        selected_page_ids=record.selected_page_ids,
        updated_at=record.updated_at,
        created_at=record.created_at,
    )


def _to_message(record: MessageRecord) -> SessionMessage:
    return SessionMessage(
        id=record.id,
        session_id=record.session_id,
        role=record.role,
        content=record.content,
        thinking=record.thinking,
        sources=record.sources,
        message_type=record.message_type,
        tool_calls=record.tool_calls,
        tool_call_id=record.tool_call_id,
        tool_name=record.tool_name,
        tool_status=record.tool_status,
        clarification=record.clarification,
        seq=record.seq,
        created_at=record.created_at,
    )


def _to_detail(session: SessionRecord, messages: list[MessageRecord]) -> SessionDetail:
    return SessionDetail(
        **_to_summary(session).model_dump(),
        messages=[_to_message(message) for message in messages],
    )
