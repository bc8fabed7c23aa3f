"""Application configuration read once at process start."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
DEFAULT_SEARCH_ORDER = "更新日時 desc"
REQUIRED_ENV = ("KINTONE_BASE_URL", "KINTONE_APP_ID", "KINTONE_API_TOKEN")


class ConfigError(RuntimeError):
    """Raised when required settings are missing or malformed."""


def _get_env(environ: Mapping[str, str], name: str, default: str) -> str:
    value = (environ.get(name) or "").strip()
    return value if value else default


@dataclass(frozen=True)
class FieldMapping:
    """kintone field codes used by the card view and the keyword filter."""

    record_number: str = "レコード番号"
    code: str = "商品コード"
    name: str = "商品名"
    price: str = "上代"
    symbol: str = "記号"
    inner_quantity: str = "内箱入数"
    location: str = "ロケーション"
    balance: str = "差引実"

    def card_fields(self) -> list[str]:
        return [
            "$id",
            self.record_number,
            self.code,
            self.name,
            self.price,
            self.symbol,
            self.inner_quantity,
            self.location,
            self.balance,
        ]

    @classmethod
    def from_env(cls, environ: Mapping[str, str]) -> "FieldMapping":
        defaults = cls()
        return cls(
            record_number=_get_env(environ, "FIELD_CODE_RECORD_NUMBER", defaults.record_number),
            code=_get_env(environ, "FIELD_CODE_CODE", defaults.code),
            name=_get_env(environ, "FIELD_CODE_NAME", defaults.name),
            price=_get_env(environ, "FIELD_CODE_PRICE", defaults.price),
            symbol=_get_env(environ, "FIELD_CODE_SYMBOL", defaults.symbol),
            inner_quantity=_get_env(environ, "FIELD_CODE_INNER_QTY", defaults.inner_quantity),
            location=_get_env(environ, "FIELD_CODE_LOCATION", defaults.location),
            balance=_get_env(environ, "FIELD_CODE_BALANCE", defaults.balance),
        )


@dataclass(frozen=True)
class Settings:
    """Immutable settings container built from environment variables."""

    base_url: str
    app_id: str
    api_token: str
    guest_space_id: Optional[str] = None
    fields: FieldMapping = field(default_factory=FieldMapping)
    search_order: str = DEFAULT_SEARCH_ORDER
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    image_timeout_seconds: float = 15.0
    static_dir: Path = DEFAULT_STATIC_DIR

    def __post_init__(self) -> None:
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))
        object.__setattr__(self, "static_dir", Path(self.static_dir))

    @property
    def records_url(self) -> str:
        if self.guest_space_id:
            return f"{self.base_url}/k/guest/{self.guest_space_id}/v1/records.json"
        return f"{self.base_url}/k/v1/records.json"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        missing = [name for name in REQUIRED_ENV if not _get_env(env, name, "")]
        if missing:
            raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")

        try:
            port = int(_get_env(env, "PORT", "3000"))
            image_timeout = float(_get_env(env, "IMAGE_TIMEOUT_SECONDS", "15"))
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric setting: {exc}") from exc

        return cls(
            base_url=_get_env(env, "KINTONE_BASE_URL", ""),
            app_id=_get_env(env, "KINTONE_APP_ID", ""),
            api_token=_get_env(env, "KINTONE_API_TOKEN", ""),
            guest_space_id=_get_env(env, "KINTONE_GUEST_SPACE_ID", "") or None,
            fields=FieldMapping.from_env(env),
            search_order=_get_env(env, "SEARCH_ORDER", DEFAULT_SEARCH_ORDER),
            host=_get_env(env, "HOST", "0.0.0.0"),
            port=port,
            log_level=_get_env(env, "LOG_LEVEL", "INFO"),
            image_timeout_seconds=image_timeout,
            static_dir=Path(_get_env(env, "STATIC_DIR", str(DEFAULT_STATIC_DIR))),
        )
