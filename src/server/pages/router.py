# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from src.errors import ValidationError
from src.rag.pages import PageRecord, SQLitePageRepository
from src.server.chat.dependencies import get_page_repository
from src.server.session.dependencies import RequestContext, get_request_context
from src.server.session.schemas import DeleteResponse

from .schemas import PageSearchRequest, PageSummary, PageSyncRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/pages", tags=["pages"])


@router.post("/search", response_model=list[PageSummary])
async def search_pages(
    payload: PageSearchRequest,
    ctx: RequestContext = Depends(get_request_context),
    pages: SQLitePageRepository = Depends(get_page_repository),
) -> list[PageSummary]:
    """Page picker lookup: explicit ids, or title search within a space."""
    records = await pages.search_pages(
        ctx.workspace_id,
        query=payload.query,
        space_slug=payload.space_slug,
        page_ids=payload.page_ids,
    )
    return [_to_summary(record) for record in records]


@router.put("/{page_id}", response_model=PageSummary)
async def sync_page(
    page_id: str,
    payload: PageSyncRequest,
    ctx: RequestContext = Depends(get_request_context),
    pages: SQLitePageRepository = Depends(get_page_repository),
) -> PageSummary:
    try:
        await pages.upsert_page(page_id=page_id, workspace_id=ctx.workspace_id, **payload.model_dump())
    except ValidationError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found") from exc
    logger.info("Synced page %s in workspace %s", page_id, ctx.workspace_id)
    return PageSummary(page_id=page_id, title=payload.title, slug_id=payload.slug_id, space_slug=payload.space_slug)


@router.delete("/{page_id}", response_model=DeleteResponse)
async def delete_page(
    page_id: str,
    ctx: RequestContext = Depends(get_request_context),
    pages: SQLitePageRepository = Depends(get_page_repository),
) -> DeleteResponse:
    if not await pages.delete_page(page_id, ctx.workspace_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Page not found")
    return DeleteResponse(success=True)


def _to_summary(record: PageRecord) -> PageSummary:
    return PageSummary(
        page_id=record.id,
        title=record.title,
        slug_id=record.slug_id,
        space_slug=record.space_slug,
    )
