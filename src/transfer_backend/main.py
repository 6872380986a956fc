from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers, MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from transfer_backend.config import settings
from transfer_backend.db import dispose_engines
from transfer_backend.deps import build_share_service, get_share_service
from transfer_backend.error_handlers import register_error_handlers
from transfer_backend.routers import public, shares
from transfer_backend.schemas import HealthResponse
from transfer_backend.services.shares_service import ShareService


class RequestIdMiddleware:
    """Echo the caller's ``X-Request-ID`` (or a fresh uuid4) and expose it as ``request.state.request_id``."""

    def __init__(self, app: ASGIApp) -> None:
        self.app: ASGIApp = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request_id = Headers(scope=scope).get("x-request-id", "").strip() or str(uuid.uuid4())
        scope.setdefault("state", {})["request_id"] = request_id

        async def send_with_request_id(message: Message) -> None:
            if message["type"] == "http.response.start":
                MutableHeaders(scope=message)["X-Request-ID"] = request_id
            await send(message)

        await self.app(scope, receive, send_with_request_id)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    if getattr(app.state, "share_service", None) is None:
        app.state.share_service = await build_share_service(settings)
    yield
    # Ensure aiosqlite worker threads don't keep the process alive.
    await dispose_engines()


logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))

logger = logging.getLogger(__name__)
for msg in settings.security_warnings():
    logger.warning("SECURITY WARNING: %s", msg)


app = FastAPI(title=settings.app_name, lifespan=_lifespan)

app.add_middleware(RequestIdMiddleware)

origins = settings.cors_origins_list()
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Request-ID"],
    )

register_error_handlers(app)


@app.get("/health", response_model=HealthResponse)
async def health(service: ShareService = Depends(get_share_service)) -> HealthResponse:
    return HealthResponse(ok=True, blob_store_configured=service.store_configured)


app.include_router(shares.router, prefix=settings.api_prefix)
app.include_router(public.router)


@app.api_route(
    f"{settings.api_prefix.rstrip('/')}/{{path:path}}",
    methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    include_in_schema=False,
)
async def _api_fallback_not_found(path: str) -> None:  # noqa: ARG001
    raise HTTPException(status_code=404, detail="Not Found")
