from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from transfer_backend.config import Settings

# Receives the completed fraction, 0.0 .. 1.0.
ProgressCallback = Callable[[float], None]


class BlobStore(Protocol):
    async def put(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None: ...

    async def get(self, path: str, *, on_progress: ProgressCallback | None = None) -> bytes: ...

    async def delete(self, path: str) -> None: ...

    async def exists(self, path: str) -> bool: ...


def build_metadata_path(share_id: str) -> str:
    # Flat layout shared with existing deployments; no sub-directories.
    return f"/{share_id}_metadata.json.enc"


def build_file_path(share_id: str) -> str:
    return f"/{share_id}_file.dat"


def get_blob_store(settings: Settings) -> BlobStore | None:
    """Build the configured blob store, or ``None`` when nothing usable is configured."""

    if settings.blob_store_backend.strip().lower() == "local":
        from .local_storage import LocalObjectStorage

        return LocalObjectStorage(root_dir=settings.blob_store_local_dir)

    config = settings.webdav_config()
    if config is None:
        return None

    from .webdav_storage import WebDAVObjectStorage

    return WebDAVObjectStorage(
        config=config,
        timeout_seconds=settings.webdav_request_timeout_seconds,
    )
