# Copyright (c) 2025 Bytedance Ltd. and/or its affiliates
# SPDX-License-Identifier: MIT

from typing import Optional

from pydantic import Field

from src.server.session.schemas import CamelModel


class PageSearchRequest(CamelModel):
    query: str = Field(default="", description="Case-insensitive title fragment.")
    space_slug: Optional[str] = Field(default=None, description="Space to search titles in.")
    page_ids: Optional[list[str]] = Field(default=None, description="Exact pages to look up, in order.")


class PageSummary(CamelModel):
    page_id: str
    title: str
    slug_id: str
    space_slug: str


class PageSyncRequest(CamelModel):
    title: str = ""
    text_content: str = ""
    slug_id: str = ""
    space_slug: str = ""
