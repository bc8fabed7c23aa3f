"""Query gateway: keyword search and record detail against kintone."""
from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Iterable, List, Optional

from .config import FieldMapping
from .kintone_client import KintoneClient
from .models import RecordResponse, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)


def quote_literal(value: str) -> str:
    """Render ``value`` as a kintone query string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def parse_number(keyword: str) -> Optional[str]:
    """Return the keyword as a query number literal, or None if it is not a finite number."""
    try:
        number = float(keyword)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    if number.is_integer():
        return str(int(number))
    return repr(number)


def build_filter(keyword: str, fields: FieldMapping) -> str:
    keyword = keyword.strip()
    if not keyword:
        return ""
    literal = quote_literal(keyword)
    clauses = [
        f"{fields.code} like {literal}",
        f"{fields.name} like {literal}",
    ]
    number = parse_number(keyword)
    if number is not None:
        clauses.append(f"{fields.price} = {number}")
    return " or ".join(clauses)


def build_search_query(request: SearchRequest, fields: FieldMapping) -> str:
    parts = [
        build_filter(request.keyword, fields),
        f"order by {request.order}" if request.order else "",
        f"limit {request.limit}",
        f"offset {request.offset}",
    ]
    query = " ".join(part for part in parts if part)
    logger.debug("kintone search query=%r", query)
    return query


def build_record_query(record_id: int) -> str:
    return f"$id = {record_id} limit 1"


def split_field_list(values: Optional[Iterable[str]]) -> Optional[List[str]]:
    """Flatten repeated and comma-joined ``fields`` parameters.

    Returns None when nothing usable was given so the caller requests every field.
    """
    if not values:
        return None
    codes = [code.strip() for value in values for code in str(value).split(",")]
    codes = [code for code in codes if code]
    return codes or None


async def search_records(client: KintoneClient, request: SearchRequest) -> SearchResponse:
    fields = client.settings.fields
    query = build_search_query(request, fields)

    t0 = perf_counter()
    payload = await client.get_records(query, fields=fields.card_fields(), total_count=True)
    elapsed_ms = (perf_counter() - t0) * 1000

    records = payload.get("records") or []
    logger.info(
        "search keyword=%r limit=%s offset=%s hits=%s total=%s took=%.1fms",
        request.keyword,
        request.limit,
        request.offset,
        len(records),
        payload.get("totalCount"),
        elapsed_ms,
    )

    envelope = {"ok": True, "records": records, "nextOffset": request.offset + request.limit}
    # totalCount is omitted from the JSON entirely when kintone does not send it
    if payload.get("totalCount") is not None:
        envelope["totalCount"] = payload["totalCount"]
    return SearchResponse(**envelope)


async def get_record(
    client: KintoneClient,
    record_id: int,
    fields: Optional[List[str]] = None,
) -> RecordResponse:
    t0 = perf_counter()
    payload = await client.get_records(build_record_query(record_id), fields=fields)
    elapsed_ms = (perf_counter() - t0) * 1000

    records = payload.get("records") or []
    record = records[0] if records else None
    logger.info(
        "record id=%s fields=%s found=%s took=%.1fms",
        record_id,
        len(fields) if fields else "all",
        record is not None,
        elapsed_ms,
    )
    return RecordResponse(ok=True, record=record)
