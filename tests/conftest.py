from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import anyio
import pytest

from transfer_backend.db import dispose_engine_cache, dispose_engines
from transfer_backend.errors import NotFoundError, StoreError
from transfer_backend.integrations.storage.object_storage import ProgressCallback
from transfer_backend.local_index import LocalShareIndex
from transfer_backend.services.shares_service import ShareService

T0 = 1_767_225_600_000  # 2026-01-01T00:00:00Z


class FakeClock:
    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class InMemoryBlobStore:
    """Blob store double: records every call and can fail or block on chosen paths."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_put: dict[str, StoreError] = {}
        self.fail_get: dict[str, StoreError] = {}
        self.fail_delete: dict[str, StoreError] = {}
        self.block_put: set[str] = set()
        self._put_started: anyio.Event | None = None

    @property
    def put_started(self) -> anyio.Event:
        # Created lazily: an anyio Event needs a running event loop.
        if self._put_started is None:
            self._put_started = anyio.Event()
        return self._put_started

    async def put(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        _ = content_type
        self.calls.append(("put", path))
        if path in self.block_put:
            self.put_started.set()
            await anyio.sleep_forever()
        if path in self.fail_put:
            raise self.fail_put[path]
        self.objects[path] = bytes(data)
        if on_progress is not None:
            on_progress(0.5)
            on_progress(1.0)

    async def get(self, path: str, *, on_progress: ProgressCallback | None = None) -> bytes:
        self.calls.append(("get", path))
        if path in self.fail_get:
            raise self.fail_get[path]
        if path not in self.objects:
            raise NotFoundError(f"File not found: {path}")
        if on_progress is not None:
            on_progress(1.0)
        return self.objects[path]

    async def delete(self, path: str) -> None:
        self.calls.append(("delete", path))
        if path in self.fail_delete:
            raise self.fail_delete[path]
        self.objects.pop(path, None)

    async def exists(self, path: str) -> bool:
        return path in self.objects


@pytest.fixture(scope="session")
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
async def _dispose_engines_per_test(  # pyright: ignore[reportUnusedFunction]
    anyio_backend: object,  # noqa: ARG001
) -> AsyncGenerator[None, None]:
    _ = anyio_backend
    yield
    await dispose_engines()


def pytest_sessionfinish(session: object, exitstatus: int) -> None:  # noqa: ARG001
    _ = session, exitstatus
    dispose_engine_cache()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> InMemoryBlobStore:
    return InMemoryBlobStore()


@pytest.fixture
async def index(tmp_path: Path, anyio_backend: object) -> LocalShareIndex:  # noqa: ARG001
    _ = anyio_backend
    idx = LocalShareIndex(database_url=f"sqlite:///{tmp_path / 'shares.db'}")
    await idx.init()
    return idx


@pytest.fixture
def service(store: InMemoryBlobStore, index: LocalShareIndex, clock: FakeClock) -> ShareService:
    return ShareService(
        store=store,
        index=index,
        public_base_url="https://transfer.example.com",
        clock=clock,
    )
