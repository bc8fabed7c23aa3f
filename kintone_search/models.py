"""Pydantic models for request/response payloads."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .config import DEFAULT_SEARCH_ORDER

MAX_LIMIT = 500


class SearchRequest(BaseModel):
    keyword: str = Field("", description="Substring matched against product code and name")
    limit: int = Field(50, ge=0, le=MAX_LIMIT)
    offset: int = Field(0, ge=0)
    order: str = Field(DEFAULT_SEARCH_ORDER, description="kintone order by clause")


class SearchResponse(BaseModel):
    ok: bool
    totalCount: Optional[Union[int, str]] = None
    records: List[Dict[str, Any]]
    nextOffset: int


class RecordResponse(BaseModel):
    ok: bool
    record: Optional[Dict[str, Any]]


class ErrorResponse(BaseModel):
    ok: bool = False
    error: Any
