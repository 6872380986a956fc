"""Recipient endpoints behind the share link ``/share/{share_id}?code=...``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import Response

from transfer_backend.deps import get_share_service
from transfer_backend.http_headers import content_disposition_attachment
from transfer_backend.schemas import SharedFile, SharedText
from transfer_backend.services.shares_service import ShareService

router = APIRouter(tags=["public"])


def _normalize_code(code: str) -> str:
    # Passcodes are issued lowercase; accept whatever case the recipient typed.
    return code.strip().lower()


@router.get("/share/{share_id}", response_model=SharedFile)
async def get_shared_file(
    share_id: str,
    code: str = Query(default=""),
    service: ShareService = Depends(get_share_service),
) -> SharedFile:
    metadata = await service.get_share(share_id=share_id, pass_code=_normalize_code(code))
    return SharedFile.from_metadata(metadata, now=service.now())


@router.get("/share/{share_id}/text", response_model=SharedText)
async def get_shared_text(
    share_id: str,
    code: str = Query(default=""),
    service: ShareService = Depends(get_share_service),
) -> SharedText:
    downloaded = await service.download_share(share_id=share_id, pass_code=_normalize_code(code))
    metadata = downloaded.metadata
    if metadata.file_type != "text/plain":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="share is not text")
    return SharedText(
        share_id=metadata.share_id,
        file_name=metadata.file_name,
        text=downloaded.data.decode("utf-8", errors="replace"),
    )


@router.get("/share/{share_id}/download")
async def download_shared_file(
    share_id: str,
    code: str = Query(default=""),
    service: ShareService = Depends(get_share_service),
) -> Response:
    downloaded = await service.download_share(share_id=share_id, pass_code=_normalize_code(code))
    metadata = downloaded.metadata
    return Response(
        content=downloaded.data,
        media_type=metadata.file_type or "application/octet-stream",
        headers={
            "Content-Disposition": content_disposition_attachment(metadata.file_name),
            "Cache-Control": "no-store",
        },
    )
