"""WebDAV blob store over httpx.

Only PUT / GET / DELETE / HEAD (plus best-effort MKCOL for nested paths) are used.
Status handling:

- PUT: 2xx ok, 409 -> ConflictError (missing parent collection), else NetworkError
- GET: 200 ok, 404 -> NotFoundError, else NetworkError
- DELETE: 2xx or 404 ok, else NetworkError

Nothing is retried here; retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from transfer_backend.config import WebDAVConfig
from transfer_backend.errors import ConflictError, NetworkError, NotConfiguredError, NotFoundError

from .object_storage import ProgressCallback

logger = logging.getLogger(__name__)

_DEFAULT_CHUNK_SIZE = 64 * 1024
_MKCOL_OK_STATUSES = {301, 302, 405}


class WebDAVObjectStorage:
    def __init__(
        self,
        *,
        config: WebDAVConfig | None,
        timeout_seconds: float = 60.0,
        chunk_size: int = _DEFAULT_CHUNK_SIZE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._config = config
        self._timeout = timeout_seconds
        self._chunk_size = max(1, chunk_size)
        self._client = client

    def _require_config(self) -> WebDAVConfig:
        cfg = self._config
        if cfg is None or not cfg.is_complete():
            raise NotConfiguredError(
                "WebDAV service is not configured. Please contact the administrator."
            )
        return cfg

    def _url(self, cfg: WebDAVConfig, path: str) -> str:
        base = cfg.endpoint.rstrip("/")
        clean = path if path.startswith("/") else f"/{path}"
        return f"{base}{clean}"

    def _auth(self, cfg: WebDAVConfig) -> httpx.BasicAuth:
        return httpx.BasicAuth(cfg.username, cfg.password)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._client is not None:
            yield self._client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _ensure_collections(
        self, client: httpx.AsyncClient, cfg: WebDAVConfig, dir_path: str
    ) -> None:
        # Some servers need parents to exist; failures here are not fatal, the PUT decides.
        current = ""
        for part in [p for p in dir_path.split("/") if p]:
            current += f"/{part}"
            url = self._url(cfg, current)
            try:
                resp = await client.request("MKCOL", url, auth=self._auth(cfg))
            except httpx.TransportError:
                logger.warning("MKCOL failed path=%s", current, exc_info=True)
                continue
            if resp.is_success or resp.status_code in _MKCOL_OK_STATUSES:
                logger.debug(
                    "collection %s path=%s",
                    "created" if resp.status_code == 201 else "exists",
                    current,
                )
            else:
                logger.warning(
                    "MKCOL failed path=%s status=%s", current, resp.status_code
                )

    async def put(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        cfg = self._require_config()
        url = self._url(cfg, path)
        total = len(data)
        chunk_size = self._chunk_size

        async def _body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, chunk_size):
                chunk = data[offset : offset + chunk_size]
                yield chunk
                sent += len(chunk)
                if on_progress is not None:
                    on_progress(sent / total)

        headers = {
            "Content-Type": content_type or "application/octet-stream",
            "Content-Length": str(total),
        }
        dir_path = path[: path.rfind("/")] if "/" in path else ""

        async with self._session() as client:
            if dir_path.strip("/"):
                await self._ensure_collections(client, cfg, dir_path)
            try:
                resp = await client.put(url, content=_body(), headers=headers, auth=self._auth(cfg))
            except httpx.TransportError as e:
                raise NetworkError(f"Network error during upload: {e}") from e

        if resp.is_success:
            if total == 0 and on_progress is not None:
                on_progress(1.0)
            return
        if resp.status_code == 409:
            raise ConflictError(
                "Parent directory does not exist on the WebDAV server "
                f"(409 {resp.reason_phrase})"
            )
        raise NetworkError(f"Upload failed: {resp.status_code} {resp.reason_phrase}")

    async def get(self, path: str, *, on_progress: ProgressCallback | None = None) -> bytes:
        cfg = self._require_config()
        url = self._url(cfg, path)

        async with self._session() as client:
            try:
                async with client.stream("GET", url, auth=self._auth(cfg)) as resp:
                    if resp.status_code == 404:
                        raise NotFoundError(f"File not found: {path}")
                    if resp.status_code != 200:
                        raise NetworkError(
                            f"Download failed: {resp.status_code} {resp.reason_phrase}"
                        )

                    # Content-Length counts wire bytes, which differ from decoded ones
                    # under Content-Encoding.
                    total = int(resp.headers.get("Content-Length") or 0)
                    buf = bytearray()
                    reported = 0.0
                    async for chunk in resp.aiter_bytes(self._chunk_size):
                        buf.extend(chunk)
                        if on_progress is not None and total > 0:
                            reported = min(resp.num_bytes_downloaded / total, 1.0)
                            on_progress(reported)
            except httpx.TransportError as e:
                raise NetworkError(f"Network error during download: {e}") from e

        if on_progress is not None and reported < 1.0:
            on_progress(1.0)
        return bytes(buf)

    async def delete(self, path: str) -> None:
        cfg = self._require_config()
        url = self._url(cfg, path)
        async with self._session() as client:
            try:
                resp = await client.delete(url, auth=self._auth(cfg))
            except httpx.TransportError as e:
                raise NetworkError(f"Network error during delete: {e}") from e

        # Already absent counts as deleted; deletes race with expiry sweeps.
        if resp.is_success or resp.status_code == 404:
            return
        raise NetworkError(f"Delete failed: {resp.status_code} {resp.reason_phrase}")

    async def exists(self, path: str) -> bool:
        cfg = self._require_config()
        url = self._url(cfg, path)
        async with self._session() as client:
            try:
                resp = await client.head(url, auth=self._auth(cfg))
            except httpx.TransportError:
                logger.warning("HEAD failed path=%s", path, exc_info=True)
                return False
        return resp.is_success
