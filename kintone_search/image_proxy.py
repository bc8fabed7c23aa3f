"""Image relay for Dropbox-hosted product photos.

Only URLs on the trusted Dropbox domains are fetched. A shared link is rewritten
to its direct-content form (``dl.dropboxusercontent.com`` with ``raw=1``) so the
bytes render inline; the response gets an explicit image MIME type because
Dropbox often answers with ``application/octet-stream``, which iOS refuses to
display.
"""
from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass
from typing import Dict, Optional
from urllib.parse import parse_qsl, quote, unquote, urlencode, urlsplit, urlunsplit

import httpx

logger = logging.getLogger(__name__)

TRUSTED_DOMAINS = ("dropbox.com", "dropboxusercontent.com")
DIRECT_CONTENT_HOST = "dl.dropboxusercontent.com"
DEFAULT_MIME = "image/jpeg"
ACCEPT_HEADER = "image/avif,image/webp,image/apng,image/*,*/*;q=0.8"
USER_AGENT = "kintone-image-proxy/1.0"
CACHE_CONTROL = "public, max-age=86400"

EXTENSION_MIME = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "jfif": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "bmp": "image/bmp",
    "svg": "image/svg+xml",
    "avif": "image/avif",
    "heic": "image/heic",
}


class ImageRelayError(Exception):
    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


@dataclass(frozen=True)
class RelayedImage:
    content: bytes
    content_type: str
    filename: str

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Cache-Control": CACHE_CONTROL,
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(self.filename, safe='')}",
        }


def is_trusted_host(host: Optional[str]) -> bool:
    """Exact match or a subdomain of a trusted domain; never a bare suffix match."""
    if not host:
        return False
    host = host.lower().rstrip(".")
    return any(host == domain or host.endswith("." + domain) for domain in TRUSTED_DOMAINS)


def normalize_for_fetch(url: str) -> Optional[str]:
    """Rewrite a trusted Dropbox URL to its direct-content form, or None if not allowed."""
    try:
        parts = urlsplit(str(url).strip())
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme.lower() not in ("http", "https") or not is_trusted_host(host):
        return None

    # dl=1 forces a download; raw=1 serves the file inline
    params = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key not in ("dl", "raw")]
    params.append(("raw", "1"))
    return urlunsplit((parts.scheme.lower(), DIRECT_CONTENT_HOST, parts.path, urlencode(params), ""))


def guess_mime_from_extension(url: str) -> Optional[str]:
    try:
        path = urlsplit(str(url)).path.lower()
    except ValueError:
        return None
    _, ext = posixpath.splitext(path)
    return EXTENSION_MIME.get(ext.lstrip("."))


def filename_from_url(url: str) -> str:
    try:
        path = urlsplit(str(url)).path
    except ValueError:
        return "image"
    return unquote(path.rsplit("/", 1)[-1]) or "image"


def resolve_content_type(upstream_type: Optional[str], original_url: str) -> str:
    if upstream_type and "octet-stream" not in upstream_type.lower():
        return upstream_type
    return guess_mime_from_extension(original_url) or DEFAULT_MIME


async def _guard_redirect(request: httpx.Request) -> None:
    # Fires for the initial request and for every redirect hop.
    if not is_trusted_host(request.url.host):
        logger.warning("Refusing image request to untrusted host %s", request.url.host)
        raise ImageRelayError(400, "unsupported host")


def build_image_client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        timeout=timeout,
        follow_redirects=True,
        headers={"Accept": ACCEPT_HEADER, "User-Agent": USER_AGENT},
        event_hooks={"request": [_guard_redirect]},
    )


async def fetch_image(http: httpx.AsyncClient, url: Optional[str], timeout: Optional[float] = None) -> RelayedImage:
    """Fetch and reshape one image; ``timeout`` caps the whole request including redirects."""
    if not url or not url.strip():
        raise ImageRelayError(400, "url required")

    final_url = normalize_for_fetch(url)
    if final_url is None:
        logger.warning("Rejected image url with unsupported host: %.80s", url)
        raise ImageRelayError(400, "unsupported host")

    try:
        # httpx timeouts apply per phase, so a slow drip needs an overall cap
        response = await asyncio.wait_for(http.get(final_url), timeout)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        logger.warning("Image upstream returned %s for %.80s", exc.response.status_code, final_url)
        raise ImageRelayError(exc.response.status_code, "image fetch failed") from exc
    except asyncio.TimeoutError as exc:
        logger.warning("Image fetch timed out after %ss for %.80s", timeout, final_url)
        raise ImageRelayError(502, "image fetch failed") from exc
    except httpx.HTTPError as exc:
        logger.warning("Image fetch error for %.80s: %s", final_url, exc)
        raise ImageRelayError(502, "image fetch failed") from exc

    image = RelayedImage(
        content=response.content,
        content_type=resolve_content_type(response.headers.get("content-type"), url),
        filename=filename_from_url(url),
    )
    logger.info("Relayed image %.80s (%s bytes, %s)", final_url, len(image.content), image.content_type)
    return image
