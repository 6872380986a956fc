from __future__ import annotations

from pydantic import BaseModel, Field

from transfer_backend.domain.shares import ShareMetadata, format_file_size, format_time_remaining


class ErrorResponse(BaseModel):
    """Error body returned by every endpoint."""

    error: str
    message: str
    request_id: str | None = None
    details: object | None = None


class HealthResponse(BaseModel):
    ok: bool = True
    blob_store_configured: bool


class ShareCreated(BaseModel):
    share_id: str = Field(min_length=1, max_length=64)
    pass_code: str
    share_url: str
    expires_at: int


class LocalShare(BaseModel):
    share_id: str
    file_name: str
    file_size: int
    file_type: str
    created_at: int
    expires_at: int
    pass_code: str
    share_url: str
    size_text: str
    remaining_text: str
    expired: bool

    @classmethod
    def from_metadata(cls, metadata: ShareMetadata, *, share_url: str, now: int) -> "LocalShare":
        return cls(
            share_id=metadata.share_id,
            file_name=metadata.file_name,
            file_size=metadata.file_size,
            file_type=metadata.file_type,
            created_at=metadata.created_at,
            expires_at=metadata.expires_at,
            pass_code=metadata.pass_code,
            share_url=share_url,
            size_text=format_file_size(metadata.file_size),
            remaining_text=format_time_remaining(metadata.expires_at, now),
            expired=now > metadata.expires_at,
        )


class LocalShareDetail(LocalShare):
    """A single local share plus whether its remote objects are still present."""

    remote_present: bool


class LocalShareList(BaseModel):
    items: list[LocalShare] = Field(default_factory=list)


class CleanupResult(BaseModel):
    removed: int


class SharedFile(BaseModel):
    """What a recipient sees after unlocking a share. The passcode is not echoed."""

    share_id: str
    file_name: str
    file_size: int
    file_type: str
    created_at: int
    expires_at: int
    size_text: str
    remaining_text: str

    @classmethod
    def from_metadata(cls, metadata: ShareMetadata, *, now: int) -> "SharedFile":
        return cls(
            share_id=metadata.share_id,
            file_name=metadata.file_name,
            file_size=metadata.file_size,
            file_type=metadata.file_type,
            created_at=metadata.created_at,
            expires_at=metadata.expires_at,
            size_text=format_file_size(metadata.file_size),
            remaining_text=format_time_remaining(metadata.expires_at, now),
        )


class SharedText(BaseModel):
    share_id: str
    file_name: str
    text: str
