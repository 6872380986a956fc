from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_FILE_TYPE = "application/octet-stream"

_HOUR_MS = 60 * 60 * 1000
_DAY_MS = 24 * _HOUR_MS

# TTL choices offered to uploaders.
EXPIRE_OPTIONS: dict[str, int] = {
    "1h": _HOUR_MS,
    "1d": _DAY_MS,
    "7d": 7 * _DAY_MS,
    "30d": 30 * _DAY_MS,
}
DEFAULT_EXPIRE_OPTION = "1d"
MAX_EXPIRES_IN_MS = 30 * _DAY_MS

_SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def now_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)


class ShareMetadata(BaseModel):
    """Unit of truth for a share.

    Serialized with camelCase keys (``shareId``, ``fileName``, ...) because the same
    JSON is what gets encrypted into ``<shareId>_metadata.json.enc``.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    share_id: str = Field(min_length=1)
    file_name: str
    file_size: int = Field(ge=0)
    file_type: str = DEFAULT_FILE_TYPE
    created_at: int
    expires_at: int
    pass_code: str

    @model_validator(mode="after")
    def _check_expiry_after_creation(self) -> "ShareMetadata":
        if self.expires_at <= self.created_at:
            raise ValueError("expiresAt must be after createdAt")
        return self

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


def is_expired(metadata: ShareMetadata, now: int) -> bool:
    """A share expires strictly after ``expiresAt``; at that exact instant it is still live."""

    return now > metadata.expires_at


def resolve_ttl_ms(*, option: str | None = None, expires_in_ms: int | None = None) -> int:
    """Pick a TTL from a named option or an explicit millisecond value.

    An explicit value wins; with neither given the default option applies.
    """

    if expires_in_ms is not None:
        if expires_in_ms <= 0:
            raise ValueError("expires_in_ms must be positive")
        if expires_in_ms > MAX_EXPIRES_IN_MS:
            raise ValueError("expires_in_ms too large")
        return expires_in_ms

    key = (option or DEFAULT_EXPIRE_OPTION).strip().lower()
    if key not in EXPIRE_OPTIONS:
        raise ValueError(f"unknown expiry option: {option}")
    return EXPIRE_OPTIONS[key]


def format_file_size(num_bytes: int) -> str:
    if num_bytes < 0:
        raise ValueError("size must not be negative")
    if num_bytes == 0:
        return "0 B"

    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[unit]}"


def _plural(n: int, word: str) -> str:
    return f"{n} {word}{'s' if n > 1 else ''} remaining"


def format_time_remaining(expires_at: int, now: int) -> str:
    remaining = expires_at - now
    if remaining <= 0:
        return "Expired"

    minutes = remaining // 60_000
    hours = minutes // 60
    days = hours // 24
    if days > 0:
        return _plural(days, "day")
    if hours > 0:
        return _plural(hours, "hour")
    if minutes > 0:
        return _plural(minutes, "minute")
    return "Less than 1 minute remaining"
