"""Terminal client that reuses the in-process gateway logic."""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import Iterable, Optional

from kintone_search.config import ConfigError, Settings
from kintone_search.image_proxy import normalize_for_fetch
from kintone_search.kintone_client import KintoneClient, KintoneError, build_http_client
from kintone_search.models import SearchRequest
from kintone_search.search import get_record, search_records
from kintone_search.utils import (
    DETAIL_FIELDS,
    IMAGE_FIELDS,
    cell_value,
    find_image_urls,
    format_field,
    format_number,
    format_price,
    record_id,
)

MAX_RESULTS = 100
GREEN = "\033[92m"
RED = "\033[91m"
RESET = "\033[0m"


async def perform_query(settings: Settings, query: str) -> dict:
    async with build_http_client() as http:
        client = KintoneClient(settings, http)
        request = SearchRequest(keyword=query, limit=MAX_RESULTS, order=settings.search_order)
        response = await search_records(client, request)
    return response.model_dump(exclude_unset=True)


async def perform_detail(settings: Settings, rid: int) -> Optional[dict]:
    async with build_http_client() as http:
        client = KintoneClient(settings, http)
        response = await get_record(client, rid, DETAIL_FIELDS + IMAGE_FIELDS)
    return response.record


def format_card(idx: int, record: dict, settings: Settings) -> str:
    f = settings.fields
    return (
        f"  {idx:02d}. #{record_id(record, f.record_number)} | {cell_value(record.get(f.code))} | "
        f"{cell_value(record.get(f.name))} | {format_price(cell_value(record.get(f.price)))} | "
        f"記号={cell_value(record.get(f.symbol))} 内箱入数={format_number(cell_value(record.get(f.inner_quantity)))} "
        f"ロケーション={cell_value(record.get(f.location))} 差引実={format_number(cell_value(record.get(f.balance)))}"
    )


def pretty_print_response(query: str, payload: dict, settings: Settings) -> None:
    records = payload.get("records", [])
    total = payload.get("totalCount")
    color = GREEN if records else RED
    print(f"Query: {query!r} | {color}{len(records)} shown{RESET} | total: {total if total is not None else '-'}")
    for idx, record in enumerate(records[:MAX_RESULTS], start=1):
        print(format_card(idx, record, settings))


def pretty_print_detail(rid: int, record: Optional[dict]) -> None:
    if record is None:
        print(f"{RED}Record {rid} not found{RESET}")
        return
    print(f"Record {rid}")
    for code in DETAIL_FIELDS:
        value = format_field(code, cell_value(record.get(code)))
        if value:
            print(f"  {code}: {value}")
    for url in find_image_urls(record):
        print(f"  image: {normalize_for_fetch(url) or url}")


def interactive_shell(settings: Settings) -> None:
    print("Interactive product search. Type 'exit' to quit.")
    while True:
        try:
            query = input("> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not query:
            continue
        if query.lower() in {"exit", "quit"}:
            return
        response = asyncio.run(perform_query(settings, query))
        pretty_print_response(query, response, settings)


def batch_mode(settings: Settings, file_path: Path) -> None:
    with file_path.open("r", encoding="utf-8") as fh:
        for line in fh:
            query = line.strip()
            if not query:
                continue
            response = asyncio.run(perform_query(settings, query))
            pretty_print_response(query, response, settings)


def main(argv: Iterable[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="CLI client for the kintone product search")
    parser.add_argument("query", nargs="?", help="Keyword. If omitted, starts REPL mode.")
    parser.add_argument("--batch", type=Path, help="File with keywords to search line by line")
    parser.add_argument("--detail", type=int, metavar="ID", help="Show one record's detail fields and images")
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        parser.error(str(exc))

    try:
        if args.detail is not None:
            pretty_print_detail(args.detail, asyncio.run(perform_detail(settings, args.detail)))
            return 0
        if args.batch:
            batch_mode(settings, args.batch)
            return 0
        if args.query:
            response = asyncio.run(perform_query(settings, args.query))
            pretty_print_response(args.query, response, settings)
            return 0
        interactive_shell(settings)
    except KintoneError as exc:
        print(f"{RED}kintone error {exc.status_code}: {exc.detail}{RESET}")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
