from __future__ import annotations

from pathlib import Path, PurePosixPath

from starlette.concurrency import run_in_threadpool

from transfer_backend.errors import NotFoundError

from .object_storage import ProgressCallback


def _safe_join(root: Path, key: str) -> Path:
    parts = [p for p in PurePosixPath(key).parts if p not in {"/", ""}]
    if not parts or any(p in {"..", "."} for p in parts):
        raise ValueError("invalid storage key")
    return root.joinpath(*parts)


class LocalObjectStorage:
    """Blob store on the local filesystem, for development and tests."""

    def __init__(self, *, root_dir: str) -> None:
        self._root = Path(root_dir)

    def resolve_path(self, key: str) -> Path:
        return _safe_join(self._root, key)

    async def put(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        _ = content_type
        target = self.resolve_path(path)
        tmp_path = target.with_name(target.name + ".tmp")

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            _ = tmp_path.write_bytes(data)
            _ = tmp_path.replace(target)

        await run_in_threadpool(_write)
        if on_progress is not None:
            on_progress(1.0)

    async def get(self, path: str, *, on_progress: ProgressCallback | None = None) -> bytes:
        target = self.resolve_path(path)
        try:
            data = await run_in_threadpool(target.read_bytes)
        except FileNotFoundError as e:
            raise NotFoundError(f"File not found: {path}") from e
        if on_progress is not None:
            on_progress(1.0)
        return data

    async def delete(self, path: str) -> None:
        target = self.resolve_path(path)
        if not target.exists():
            return
        await run_in_threadpool(target.unlink, missing_ok=True)

    async def exists(self, path: str) -> bool:
        return self.resolve_path(path).is_file()
