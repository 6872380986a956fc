# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from sqlalchemy import BigInteger, Column, Text
from sqlmodel import Field, SQLModel

from transfer_backend.domain.shares import DEFAULT_FILE_TYPE, ShareMetadata

SHARE_RECORD_VERSION = 1


class ShareRecord(SQLModel, table=True):
    """Local index row: one per share created by this instance."""

    __tablename__ = "shares"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    share_id: str = Field(primary_key=True, min_length=1, max_length=64)
    file_name: str = Field(sa_column=Column(Text, nullable=False))
    file_size: int = Field(sa_column=Column(BigInteger, nullable=False))
    file_type: str = Field(default=DEFAULT_FILE_TYPE, max_length=255)
    # Epoch milliseconds.
    created_at: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))
    expires_at: int = Field(sa_column=Column(BigInteger, nullable=False, index=True))
    pass_code: str = Field(max_length=255)
    record_version: int = Field(default=SHARE_RECORD_VERSION)

    @classmethod
    def from_metadata(cls, metadata: ShareMetadata) -> "ShareRecord":
        return cls(
            share_id=metadata.share_id,
            file_name=metadata.file_name,
            file_size=metadata.file_size,
            file_type=metadata.file_type,
            created_at=metadata.created_at,
            expires_at=metadata.expires_at,
            pass_code=metadata.pass_code,
            record_version=SHARE_RECORD_VERSION,
        )

    def to_metadata(self) -> ShareMetadata:
        return ShareMetadata(
            share_id=self.share_id,
            file_name=self.file_name,
            file_size=self.file_size,
            file_type=self.file_type,
            created_at=self.created_at,
            expires_at=self.expires_at,
            pass_code=self.pass_code,
        )
