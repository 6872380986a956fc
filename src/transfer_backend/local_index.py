"""Durable record of the shares this instance created.

Rows are inserted once after a successful upload and never updated. Removing a row
that is already gone is a no-op, which is what makes a user delete racing the expiry
sweep on the same share harmless without any locking.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from transfer_backend.db import get_engine
from transfer_backend.domain.shares import ShareMetadata
from transfer_backend.errors import LocalIndexError
from transfer_backend.models import ShareRecord
from transfer_backend.repositories import shares_repo

logger = logging.getLogger(__name__)


class LocalShareIndex:
    def __init__(self, *, database_url: str) -> None:
        self._database_url = database_url

    @property
    def engine(self) -> AsyncEngine:
        return get_engine(self._database_url)

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        session_maker = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        try:
            async with session_maker() as session:
                yield session
        except SQLAlchemyError as e:
            raise LocalIndexError(f"local share index failure: {e}") from e

    async def init(self) -> None:
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(
                    SQLModel.metadata.create_all,
                    tables=[ShareRecord.__table__],  # pyright: ignore[reportAttributeAccessIssue]
                )
        except SQLAlchemyError as e:
            raise LocalIndexError(f"cannot initialize local share index: {e}") from e

    async def put(self, metadata: ShareMetadata) -> None:
        async with self._session() as session:
            session.add(ShareRecord.from_metadata(metadata))
            await session.commit()

    async def get(self, share_id: str) -> ShareMetadata | None:
        async with self._session() as session:
            row = await shares_repo.get_share(session, share_id=share_id)
            return row.to_metadata() if row is not None else None

    async def list_all(self) -> list[ShareMetadata]:
        """Most recently created first."""

        async with self._session() as session:
            rows = await shares_repo.list_shares(session)
            return [r.to_metadata() for r in rows]

    async def list_expired(self, *, now_ms: int) -> list[ShareMetadata]:
        async with self._session() as session:
            rows = await shares_repo.list_expired_shares(session, now_ms=now_ms)
            return [r.to_metadata() for r in rows]

    async def delete(self, share_id: str) -> bool:
        """Remove the row if present; ``False`` when another caller already removed it."""

        async with self._session() as session:
            removed = await shares_repo.delete_share(session, share_id=share_id)
            await session.commit()
        if removed:
            logger.debug("local index entry removed share_id=%s", share_id)
        return removed > 0
