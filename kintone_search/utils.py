"""Helpers for reading kintone cells and formatting them for display.

The browser frontend carries the same rules in JavaScript; these are used by the
terminal client.
"""
from __future__ import annotations

import re
from typing import Any, Iterable, List, Mapping, Optional

from .image_proxy import normalize_for_fetch

# Field codes that hold image URLs (single-line text fields).
IMAGE_FIELDS = ["DropBox"]

# Detail view field codes, in display order.
DETAIL_FIELDS = [
    "商品CD", "商品名", "上代", "特別上代", "記号", "裸差引", "詰差引", "定番差引", "差引実",
    "頁CD", "行CD", "ロケーション", "荷姿", "CT入数", "内箱入数", "JAN", "主倉庫CD",
    "仕入先名", "原産地", "磁器陶器", "材質_Bshop", "材質備考_Bshop", "容量_Bshop",
    "商品重量_Bshop", "発注残", "受注残合計",
]

CURRENCY_FIELDS = {"上代", "特別上代"}
# JAN is left out on purpose: leading zeros must survive.
NUMBER_FIELDS = {
    "裸差引", "詰差引", "定番差引", "差引実", "CT入数", "内箱入数",
    "商品重量_Bshop", "発注残", "受注残合計",
}

IMAGE_URL_PATTERN = re.compile(r"^https?://", re.IGNORECASE)
IMAGE_EXT_PATTERN = re.compile(r"\.(png|jpe?g|gif|webp|bmp|svg)(\?|#|$)", re.IGNORECASE)


def cell_value(cell: Any) -> Any:
    """Return the scalar held by a kintone cell, or "" for anything else.

    A cell is a mapping with a ``value`` key; ``None`` values count as empty.
    """
    if isinstance(cell, Mapping) and "value" in cell:
        value = cell["value"]
        return "" if value is None else value
    return ""


def record_id(record: Mapping[str, Any], record_number_field: str = "レコード番号") -> str:
    return str(cell_value(record.get("$id")) or cell_value(record.get(record_number_field)) or "")


def _to_number(raw: Any) -> Optional[float]:
    try:
        return float(str(raw).replace(",", ""))
    except ValueError:
        return None


def format_number(raw: Any) -> str:
    if raw in ("", None):
        return ""
    number = _to_number(raw)
    if number is None:
        return str(raw)
    if number.is_integer():
        return f"{int(number):,}"
    return f"{number:,}"


def format_price(raw: Any) -> str:
    if raw in ("", None):
        return ""
    if _to_number(raw) is None:
        return str(raw)
    return f"¥{format_number(raw)}"


def format_field(code: str, raw: Any) -> str:
    if raw in ("", None):
        return ""
    if code in CURRENCY_FIELDS:
        return format_price(raw)
    if code in NUMBER_FIELDS:
        return format_number(raw)
    return str(raw)


def is_image_like_url(value: Any) -> bool:
    text = str(value or "").strip()
    if not IMAGE_URL_PATTERN.match(text):
        return False
    if IMAGE_EXT_PATTERN.search(text):
        return True
    return normalize_for_fetch(text) is not None


def _unique(values: Iterable[str]) -> List[str]:
    seen: dict[str, None] = {}
    for value in values:
        if value:
            seen.setdefault(value, None)
    return list(seen)


def find_image_urls(record: Mapping[str, Any], image_fields: Iterable[str] = IMAGE_FIELDS) -> List[str]:
    """Image URLs from the configured fields, falling back to every cell."""
    urls = [cell_value(record.get(code)) for code in image_fields]
    found = [url for url in urls if is_image_like_url(url)]
    if not found:
        found = [value for value in map(cell_value, record.values()) if is_image_like_url(value)]
    return _unique(str(url).strip() for url in found)
