from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import quote

import anyio
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from transfer_backend.crypto import (
    decrypt_data,
    derive_key,
    encrypt_data,
    generate_pass_code,
    generate_share_id,
)
from transfer_backend.domain.shares import (
    DEFAULT_FILE_TYPE,
    ShareMetadata,
    is_expired,
    now_ms,
)
from transfer_backend.errors import (
    INVALID_CREDENTIAL_MESSAGE,
    DecryptionError,
    InvalidCredentialError,
    NotConfiguredError,
    NotFoundError,
    ShareExpiredError,
    ShareNotFoundError,
    StoreError,
    TransferError,
)
from transfer_backend.integrations.storage.object_storage import (
    BlobStore,
    ProgressCallback,
    build_file_path,
    build_metadata_path,
)
from transfer_backend.local_index import LocalShareIndex

logger = logging.getLogger(__name__)

_SHARE_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


@dataclass(frozen=True)
class CreatedShare:
    share_id: str
    pass_code: str
    share_url: str
    metadata: ShareMetadata


@dataclass(frozen=True)
class DownloadedShare:
    data: bytes
    metadata: ShareMetadata


def build_share_url(*, public_base_url: str, share_id: str, pass_code: str) -> str:
    # The passcode rides in the link for one-click access; whoever holds the link can open it.
    base = public_base_url.rstrip("/")
    return f"{base}/share/{share_id}?code={quote(pass_code, safe='')}"


def _require_valid_share_id(share_id: str) -> None:
    # Ids are used verbatim in remote paths; anything else is simply not a share.
    if not _SHARE_ID_RE.match(share_id or ""):
        raise ShareNotFoundError("Share not found")


class ShareService:
    """Create / fetch / download / delete / sweep shares.

    Owns both remote objects of a share and its local index row. The blob store is
    handed in already built; ``None`` means the store is not configured, and every
    operation that needs it raises ``NotConfiguredError`` before doing any I/O.
    """

    def __init__(
        self,
        *,
        store: BlobStore | None,
        index: LocalShareIndex,
        public_base_url: str,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._store = store
        self._index = index
        self._public_base_url = public_base_url
        self._clock = clock

    def _require_store(self) -> BlobStore:
        if self._store is None:
            raise NotConfiguredError(
                "WebDAV service is not configured. Please contact the administrator."
            )
        return self._store

    @property
    def store_configured(self) -> bool:
        return self._store is not None

    def now(self) -> int:
        return self._clock()

    def share_url_for(self, metadata: ShareMetadata) -> str:
        return build_share_url(
            public_base_url=self._public_base_url,
            share_id=metadata.share_id,
            pass_code=metadata.pass_code,
        )

    async def create_share(
        self,
        *,
        data: bytes,
        file_name: str,
        expires_in_ms: int,
        file_type: str | None = None,
        pass_code: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> CreatedShare:
        if expires_in_ms <= 0:
            raise ValueError("expires_in_ms must be positive")
        store = self._require_store()

        share_id = generate_share_id()
        code = pass_code or generate_pass_code()
        created_at = self._clock()
        metadata = ShareMetadata(
            share_id=share_id,
            file_name=file_name,
            file_size=len(data),
            file_type=file_type or DEFAULT_FILE_TYPE,
            created_at=created_at,
            expires_at=created_at + expires_in_ms,
            pass_code=code,
        )

        key = await run_in_threadpool(derive_key, code)
        encrypted = encrypt_data(metadata.to_json(), key)

        try:
            # Metadata strictly before payload: a payload is never reachable without it.
            await store.put(
                build_metadata_path(share_id),
                encrypted.encode("ascii"),
                content_type="text/plain",
            )
            await store.put(
                build_file_path(share_id),
                data,
                content_type=metadata.file_type,
                on_progress=on_progress,
            )
            await self._index.put(metadata)
        except BaseException:
            # Includes cancellation; the rollback itself must not be cancelled.
            logger.warning("create share failed, removing remote objects share_id=%s", share_id)
            with anyio.CancelScope(shield=True):
                await self._delete_remote(store, share_id)
            raise

        logger.info(
            "share created share_id=%s size=%s expires_at=%s",
            share_id,
            metadata.file_size,
            metadata.expires_at,
        )
        return CreatedShare(
            share_id=share_id,
            pass_code=code,
            share_url=self.share_url_for(metadata),
            metadata=metadata,
        )

    async def get_share(self, *, share_id: str, pass_code: str) -> ShareMetadata:
        """Fetch and decrypt share metadata, enforcing expiry.

        A wrong passcode and a corrupted object are deliberately indistinguishable:
        both raise ``InvalidCredentialError`` with the same message.
        """

        store = self._require_store()
        _require_valid_share_id(share_id)
        if not pass_code:
            raise InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE)

        try:
            blob = await store.get(build_metadata_path(share_id))
        except NotFoundError as e:
            raise ShareNotFoundError("Share not found") from e

        key = await run_in_threadpool(derive_key, pass_code)
        try:
            metadata = ShareMetadata.model_validate_json(decrypt_data(blob, key))
        except (DecryptionError, ValidationError):
            raise InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE) from None

        if metadata.share_id != share_id:
            raise InvalidCredentialError(INVALID_CREDENTIAL_MESSAGE)

        if is_expired(metadata, self._clock()):
            await self._expire(share_id)
            raise ShareExpiredError("Share has expired")

        return metadata.model_copy(update={"pass_code": pass_code})

    async def download_share(
        self,
        *,
        share_id: str,
        pass_code: str,
        on_progress: ProgressCallback | None = None,
    ) -> DownloadedShare:
        metadata = await self.get_share(share_id=share_id, pass_code=pass_code)
        store = self._require_store()
        try:
            data = await store.get(build_file_path(share_id), on_progress=on_progress)
        except NotFoundError as e:
            # Another holder may have deleted the share mid-download.
            raise ShareNotFoundError("Share file not found") from e
        return DownloadedShare(data=data, metadata=metadata)

    async def delete_share(self, share_id: str) -> None:
        """Tear a share down. Idempotent; remote failures are logged, not raised."""

        store = self._require_store()
        _require_valid_share_id(share_id)
        remote_ok = await self._delete_remote(store, share_id)
        removed_locally = await self._index.delete(share_id)
        logger.info(
            "share deleted share_id=%s remote_ok=%s local_removed=%s",
            share_id,
            remote_ok,
            removed_locally,
        )

    async def list_local_shares(self) -> list[ShareMetadata]:
        return await self._index.list_all()

    async def get_local_share(self, share_id: str) -> ShareMetadata:
        _require_valid_share_id(share_id)
        metadata = await self._index.get(share_id)
        if metadata is None:
            raise ShareNotFoundError("Share not found")
        return metadata

    async def remote_objects_present(self, share_id: str) -> bool:
        """Whether both remote objects of a share are still on the store (HEAD only)."""

        store = self._require_store()
        _require_valid_share_id(share_id)
        for path in (build_metadata_path(share_id), build_file_path(share_id)):
            if not await store.exists(path):
                return False
        return True

    async def cleanup_expired_shares(self, *, now: int | None = None) -> int:
        """Delete every locally known expired share; returns how many were removed."""

        self._require_store()
        current = self._clock() if now is None else now

        removed = 0
        failed = 0
        for metadata in await self._index.list_expired(now_ms=current):
            try:
                await self.delete_share(metadata.share_id)
            except TransferError:
                failed += 1
                logger.warning(
                    "cleanup failed share_id=%s", metadata.share_id, exc_info=True
                )
                continue
            removed += 1

        logger.info("cleanup finished removed=%s failed=%s", removed, failed)
        return removed

    async def _expire(self, share_id: str) -> None:
        try:
            await self.delete_share(share_id)
        except TransferError:
            logger.warning("expired share cleanup failed share_id=%s", share_id, exc_info=True)

    async def _delete_remote(self, store: BlobStore, share_id: str) -> bool:
        ok = True
        for path in (build_metadata_path(share_id), build_file_path(share_id)):
            try:
                await store.delete(path)
            except StoreError:
                ok = False
                logger.warning("remote delete failed path=%s", path, exc_info=True)
        return ok
