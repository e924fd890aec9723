# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage

from src.config.loader import get_list_env
from src.config.models import DEFAULT_MODEL_ID, MODEL_ROUTES, get_route, validate_routes
from src.errors import ChatError, ValidationError
from src.llms.llm import get_configured_llm_models, get_llm_by_model, is_ai_configured
from src.prompts.design import OBJECTIVE_SYSTEM_PROMPT
from src.server.chat.dependencies import (
    get_chat_orchestrator,
    initialise_page_repository,
    set_chat_orchestrator,
)
from src.server.chat.orchestrator import ChatOrchestrator
from src.server.chat_request import (
    ChatRequest,
    ClarifyObjectiveRequest,
    ClarifyObjectiveResponse,
)
from src.server.session.dependencies import (
    RequestContext,
    get_request_context,
    get_session_store,
    initialise_session_store,
    set_session_store,
)
from src.server.pages import router as pages_router
from src.server.session.router import router as session_router
from src.server.session.store import SQLiteSessionStore

logger = logging.getLogger(__name__)

INTERNAL_SERVER_ERROR_DETAIL = "Internal Server Error"


@asynccontextmanager
async def lifespan(_: FastAPI):
    validate_routes(MODEL_ROUTES, DEFAULT_MODEL_ID)
    session_store = initialise_session_store()
    await session_store.init()
    set_session_store(session_store)
    await initialise_page_repository().init()
    try:
        yield
    finally:
        set_chat_orchestrator(None)
        await session_store.close()


app = FastAPI(
    title="Workspace AI Chat API",
    description="Streaming RAG chat and session history for workspace pages",
    version="0.1.0",
    lifespan=lifespan,
)

allowed_origins = get_list_env("ALLOWED_ORIGINS", ["http://localhost:3000"])

logger.info(f"Allowed origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(session_router)
app.include_router(pages_router)


def get_llm_factory() -> Callable[..., BaseChatModel]:
    return get_llm_by_model


@app.post("/api/chat/stream")
async def chat_stream(
    request: ChatRequest,
    http_request: Request,
    ctx: RequestContext = Depends(get_request_context),
    session_store: SQLiteSessionStore = Depends(get_session_store),
    orchestrator: ChatOrchestrator = Depends(get_chat_orchestrator),
):
    try:
        get_route(request.model)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    if request.last_user_message is None:
        raise HTTPException(status_code=400, detail="At least one user message is required")

    if request.session_id:
        session = await session_store.get_session(request.session_id)
        if session is None or not session.is_owned_by(ctx.workspace_id, ctx.user_id):
            raise HTTPException(status_code=404, detail="Session not found")

    if not is_ai_configured():
        raise HTTPException(status_code=503, detail="AI provider is not configured")

    return StreamingResponse(
        orchestrator.stream_chat(request, ctx, is_disconnected=http_request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.get("/api/status")
async def status() -> dict[str, Any]:
    return {"configured": is_ai_configured()}


@app.get("/api/models")
async def models() -> dict[str, Any]:
    return {"models": get_configured_llm_models()}


@app.post("/api/clarify-objective", response_model=ClarifyObjectiveResponse)
async def clarify_objective(
    request: ClarifyObjectiveRequest,
    llm_factory: Callable[..., BaseChatModel] = Depends(get_llm_factory),
) -> ClarifyObjectiveResponse:
    """Turn a rough design request into an actionable objective statement."""
    try:
        llm = llm_factory(request.model)
        response = await llm.ainvoke(
            [
                SystemMessage(content=OBJECTIVE_SYSTEM_PROMPT),
                HumanMessage(content=request.message),
            ]
        )
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except ChatError as exc:
        logger.warning("Objective clarification unavailable: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    except Exception as e:
        logger.exception(f"Error occurred during objective clarification: {str(e)}")
        raise HTTPException(status_code=500, detail=INTERNAL_SERVER_ERROR_DETAIL)

    content = response.content if isinstance(response.content, str) else ""
    return ClarifyObjectiveResponse(objective=_parse_objective(content, request.message))


def _parse_objective(content: str, fallback: str) -> str:
    text = content.strip()
    if text.startswith("```"):
        text = text.strip("`")
        if text.startswith("json"):
            text = text[len("json") :]
    try:
        data = json.loads(text)
    except ValueError:
        logger.warning("Objective response was not valid JSON, using raw text")
        return content.strip() or fallback
    objective = data.get("objective") if isinstance(data, dict) else None
    return str(objective).strip() if objective else fallback
