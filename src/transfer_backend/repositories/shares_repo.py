from __future__ import annotations

from typing import cast

import sqlalchemy as sa
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from transfer_backend.models import ShareRecord


def _col(attr: object) -> ColumnElement[object]:
    return cast(ColumnElement[object], attr)


async def get_share(session: AsyncSession, *, share_id: str) -> ShareRecord | None:
    stmt = select(ShareRecord).where(ShareRecord.share_id == share_id)
    return (await session.exec(stmt)).first()


async def list_shares(session: AsyncSession) -> list[ShareRecord]:
    stmt = select(ShareRecord).order_by(_col(ShareRecord.created_at).desc())
    return list((await session.exec(stmt)).all())


async def list_expired_shares(session: AsyncSession, *, now_ms: int) -> list[ShareRecord]:
    stmt = (
        select(ShareRecord)
        .where(_col(ShareRecord.expires_at) < now_ms)
        .order_by(_col(ShareRecord.expires_at).asc())
    )
    return list((await session.exec(stmt)).all())


async def delete_share(session: AsyncSession, *, share_id: str) -> int:
    """Delete by id in one statement; returns the number of rows removed (0 or 1)."""

    stmt = sa.delete(ShareRecord).where(_col(ShareRecord.share_id) == share_id)
    result = await session.exec(stmt)  # pyright: ignore[reportCallIssue,reportArgumentType]
    return int(result.rowcount or 0)
