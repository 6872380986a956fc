"""Owner-side share management: create, list, delete, sweep."""

from __future__ import annotations

import re
from typing import Annotated

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from transfer_backend.config import settings
from transfer_backend.deps import get_share_service
from transfer_backend.domain.shares import resolve_ttl_ms
from transfer_backend.schemas import (
    CleanupResult,
    LocalShare,
    LocalShareDetail,
    LocalShareList,
    ShareCreated,
)
from transfer_backend.services.shares_service import ShareService

router = APIRouter(tags=["shares"])

_PASS_CODE_RE = re.compile(r"^[a-z0-9]{6,12}$")


async def _read_upload_file_limited(*, file: UploadFile, max_bytes: int) -> bytes:
    # Read in chunks and stop as soon as the limit is crossed.
    buf = bytearray()
    chunk_size = 1024 * 1024
    while True:
        chunk = await file.read(chunk_size)
        if not chunk:
            break
        buf.extend(chunk)
        if len(buf) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                detail="file too large",
            )
    return bytes(buf)


def _normalize_pass_code(value: str | None) -> str | None:
    code = (value or "").strip().lower()
    if not code:
        return None
    if not _PASS_CODE_RE.match(code):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="pass_code must be 6-12 lowercase letters or digits",
        )
    return code


@router.post("/shares", response_model=ShareCreated, status_code=status.HTTP_201_CREATED)
async def create_share(
    file: Annotated[UploadFile | None, File()] = None,
    text: Annotated[str | None, Form()] = None,
    expires_in: Annotated[str | None, Form()] = None,
    expires_in_ms: Annotated[int | None, Form()] = None,
    pass_code: Annotated[str | None, Form()] = None,
    service: ShareService = Depends(get_share_service),
) -> ShareCreated:
    if (file is None) == (text is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="provide exactly one of 'file' or 'text'",
        )

    try:
        ttl_ms = resolve_ttl_ms(option=expires_in, expires_in_ms=expires_in_ms)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    code = _normalize_pass_code(pass_code)
    max_bytes = int(settings.max_upload_size_bytes)

    if file is not None:
        if max_bytes > 0:
            data = await _read_upload_file_limited(file=file, max_bytes=max_bytes)
        else:
            data = await file.read()
        file_name = file.filename or "file"
        file_type = file.content_type
    else:
        body = text or ""
        if not body.strip():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="text is empty")
        data = body.encode("utf-8")
        if max_bytes > 0 and len(data) > max_bytes:
            raise HTTPException(
                status_code=status.HTTP_413_CONTENT_TOO_LARGE,
                detail="text too large",
            )
        file_name = f"text-{service.now()}.txt"
        file_type = "text/plain"

    created = await service.create_share(
        data=data,
        file_name=file_name,
        file_type=file_type,
        expires_in_ms=ttl_ms,
        pass_code=code,
    )
    return ShareCreated(
        share_id=created.share_id,
        pass_code=created.pass_code,
        share_url=created.share_url,
        expires_at=created.metadata.expires_at,
    )


@router.get("/shares", response_model=LocalShareList)
async def list_shares(service: ShareService = Depends(get_share_service)) -> LocalShareList:
    now = service.now()
    shares = await service.list_local_shares()
    return LocalShareList(
        items=[
            LocalShare.from_metadata(m, share_url=service.share_url_for(m), now=now) for m in shares
        ]
    )


@router.post("/shares/cleanup", response_model=CleanupResult)
async def cleanup_shares(service: ShareService = Depends(get_share_service)) -> CleanupResult:
    removed = await service.cleanup_expired_shares()
    return CleanupResult(removed=removed)


@router.get("/shares/{share_id}", response_model=LocalShareDetail)
async def get_share_detail(
    share_id: str,
    service: ShareService = Depends(get_share_service),
) -> LocalShareDetail:
    metadata = await service.get_local_share(share_id)
    remote_present = await service.remote_objects_present(share_id)
    base = LocalShare.from_metadata(metadata, share_url=service.share_url_for(metadata), now=service.now())
    return LocalShareDetail(**base.model_dump(), remote_present=remote_present)


@router.delete("/shares/{share_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_share(
    share_id: str,
    service: ShareService = Depends(get_share_service),
) -> None:
    await service.delete_share(share_id)
    return None
