from __future__ import annotations

from fastapi import Request

from transfer_backend.config import Settings, settings
from transfer_backend.integrations.storage.object_storage import get_blob_store
from transfer_backend.local_index import LocalShareIndex
from transfer_backend.services.shares_service import ShareService


async def build_share_service(cfg: Settings) -> ShareService:
    index = LocalShareIndex(database_url=cfg.database_url)
    # create_all is idempotent; the index has a single record shape.
    await index.init()
    return ShareService(
        store=get_blob_store(cfg),
        index=index,
        public_base_url=cfg.public_base_url,
    )


async def get_share_service(request: Request) -> ShareService:
    service = getattr(request.app.state, "share_service", None)
    if service is None:
        # Lifespan did not run (e.g. ASGI transport in tests without lifespan).
        service = await build_share_service(settings)
        request.app.state.share_service = service
    return service
