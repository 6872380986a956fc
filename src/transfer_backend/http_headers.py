from __future__ import annotations

import re
from urllib.parse import quote

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_MAX_NAME_LENGTH = 150


def download_name(file_name: str | None, *, fallback: str = "download") -> str:
    """Reduce an uploader-supplied name to a bare, header-safe file name."""

    base = re.split(r"[\\/]", (file_name or "").strip())[-1]
    base = _CONTROL_CHARS.sub("", base)[:_MAX_NAME_LENGTH]
    return base or fallback


def content_disposition_attachment(file_name: str | None) -> str:
    """``Content-Disposition`` with an ASCII ``filename=`` and a UTF-8 ``filename*=``."""

    name = download_name(file_name)
    ascii_name = name.encode("ascii", errors="ignore").decode("ascii").replace('"', "'")
    return f"attachment; filename=\"{ascii_name or 'download'}\"; filename*=UTF-8''{quote(name, safe='')}"
