"""kintone REST client.

Only the records endpoint is used. The client is a thin wrapper around a shared
``httpx.AsyncClient`` created at application startup; every failure is turned
into :class:`KintoneError` so the web layer can render a single error envelope.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from .config import Settings

logger = logging.getLogger(__name__)

TOKEN_HEADER = "X-Cybozu-API-Token"


class KintoneError(Exception):
    """Upstream failure carrying the HTTP status to propagate."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(detail if isinstance(detail, str) else f"kintone error {status_code}")
        self.status_code = status_code
        self.detail = detail


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def build_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=30.0)


class KintoneClient:
    def __init__(self, settings: Settings, http: httpx.AsyncClient) -> None:
        self.settings = settings
        self.http = http

    @property
    def headers(self) -> Dict[str, str]:
        return {TOKEN_HEADER: self.settings.api_token}

    def build_params(
        self,
        query: str,
        fields: Optional[Iterable[str]] = None,
        total_count: bool = False,
    ) -> Dict[str, str]:
        params = {"app": self.settings.app_id, "query": query}
        if total_count:
            params["totalCount"] = "true"
        # kintone expects array parameters as fields[0], fields[1], ...
        for idx, code in enumerate(fields or ()):
            params[f"fields[{idx}]"] = code
        return params

    async def get_records(
        self,
        query: str,
        fields: Optional[Iterable[str]] = None,
        total_count: bool = False,
    ) -> Dict[str, Any]:
        """Run ``query`` against the records endpoint and return the decoded body."""

        params = self.build_params(query, fields, total_count)
        try:
            response = await self.http.get(self.settings.records_url, headers=self.headers, params=params)
        except httpx.HTTPError as exc:
            logger.warning("kintone request failed: %s", exc)
            raise KintoneError(500, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.warning("kintone returned %s for query=%r: %s", response.status_code, query, detail)
            raise KintoneError(response.status_code, detail)

        try:
            return response.json()
        except ValueError as exc:
            raise KintoneError(500, "Malformed response from kintone") from exc
