"""FastAPI application wiring the query gateway and the image relay."""
from __future__ import annotations

import logging
from dataclasses import asdict
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from fastapi.staticfiles import StaticFiles

from .config import ConfigError, Settings
from .image_proxy import ImageRelayError, build_image_client, fetch_image
from .kintone_client import KintoneClient, KintoneError, build_http_client
from .models import MAX_LIMIT, ErrorResponse, RecordResponse, SearchRequest, SearchResponse
from .search import get_record, search_records, split_field_list

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level_name: str) -> None:
    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        level = logging.INFO
    # force=True replaces uvicorn's default handlers so ours are the only ones.
    logging.basicConfig(level=level, format=LOG_FORMAT, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        logging.getLogger(name).setLevel(level)
    # httpx logs every request URL at INFO, which would include query strings
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def _error(status_code: int, error: object) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=ErrorResponse(error=error).model_dump())


def get_kintone(request: Request) -> KintoneClient:
    return KintoneClient(request.app.state.settings, request.app.state.kintone_http)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = FastAPI(title="kintone Product Search")
    app.state.settings = settings

    @app.on_event("startup")
    async def startup_event() -> None:
        app.state.kintone_http = build_http_client()
        app.state.image_http = build_image_client(settings.image_timeout_seconds)
        logger.info("Forwarding to %s (app=%s)", settings.records_url, settings.app_id)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        await app.state.kintone_http.aclose()
        await app.state.image_http.aclose()

    @app.exception_handler(KintoneError)
    async def kintone_error_handler(request: Request, exc: KintoneError) -> JSONResponse:
        return _error(exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()])

    @app.get("/api/ping")
    async def ping() -> dict:
        return {"ok": True}

    @app.get("/api/fields")
    async def field_mapping() -> dict:
        """Card field codes, so the frontend follows FIELD_CODE_* overrides."""
        return {"ok": True, "fields": asdict(settings.fields)}

    @app.get("/api/search", response_model=SearchResponse, response_model_exclude_unset=True)
    async def search(
        keyword: str = "",
        limit: int = Query(50, ge=0, le=MAX_LIMIT),
        offset: int = Query(0, ge=0),
        order: str = settings.search_order,
        client: KintoneClient = Depends(get_kintone),
    ) -> SearchResponse:
        request = SearchRequest(keyword=keyword, limit=limit, offset=offset, order=order)
        return await search_records(client, request)

    @app.get("/api/record", response_model=RecordResponse)
    async def record(
        id: Optional[str] = None,
        fields: Optional[List[str]] = Query(None),
        client: KintoneClient = Depends(get_kintone),
    ):
        if id is None or not id.strip():
            return _error(400, "id is required")
        # isdigit() alone accepts superscripts and other non-ASCII digits
        record_id = id.strip()
        if not (record_id.isascii() and record_id.isdigit()):
            return _error(400, "id must be numeric")
        return await get_record(client, int(record_id), split_field_list(fields))

    api_methods = ["GET", "POST", "PUT", "PATCH", "DELETE"]

    @app.api_route("/api", methods=api_methods, include_in_schema=False)
    @app.api_route("/api/{path:path}", methods=api_methods, include_in_schema=False)
    async def api_not_found(path: str = "") -> JSONResponse:
        return _error(404, "Not Found")

    @app.get("/img", include_in_schema=False)
    async def image(request: Request, url: Optional[str] = None) -> Response:
        try:
            relayed = await fetch_image(request.app.state.image_http, url, settings.image_timeout_seconds)
        except ImageRelayError as exc:
            return PlainTextResponse(exc.message, status_code=exc.status_code)
        return Response(content=relayed.content, media_type=relayed.content_type, headers=relayed.headers)

    app.mount("/", StaticFiles(directory=settings.static_dir, html=True), name="static")
    return app


def run() -> None:
    """Console entry point: load settings, exit early when they are incomplete, serve."""
    try:
        settings = Settings.from_env()
    except ConfigError as exc:
        configure_logging("INFO")
        logger.error("%s", exc)
        raise SystemExit(1) from exc

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    run()
