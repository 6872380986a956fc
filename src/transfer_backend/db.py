from __future__ import annotations

from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

_ENGINES: dict[str, AsyncEngine] = {}

_ASYNC_DRIVERS = {
    "sqlite": "sqlite+aiosqlite",
    "postgres": "postgresql+psycopg",
    "postgresql": "postgresql+psycopg",
    "postgresql+psycopg2": "postgresql+psycopg",
}


def async_database_url(database_url: str) -> str:
    """Map DATABASE_URL onto an async driver (aiosqlite / psycopg3); other URLs pass through."""

    url = (database_url or "").strip()
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    return f"{_ASYNC_DRIVERS.get(scheme.lower(), scheme)}://{rest}"


def _ensure_sqlite_dir(url: str) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return
    database = parsed.database or ""
    if not database or database == ":memory:":
        return
    Path(database).parent.mkdir(parents=True, exist_ok=True)


def get_engine(database_url: str) -> AsyncEngine:
    # One engine per URL; tests point each index at its own sqlite file.
    url = async_database_url(database_url)
    engine = _ENGINES.get(url)
    if engine is None:
        _ensure_sqlite_dir(url)
        engine = create_async_engine(url, echo=False, pool_pre_ping=True)
        _ENGINES[url] = engine
    return engine


async def dispose_engines() -> None:
    # Async variant so aiosqlite worker threads shut down while the loop is alive.
    for engine in list(_ENGINES.values()):
        await engine.dispose()
    _ENGINES.clear()


def dispose_engine_cache() -> None:
    """Close pooled connections of every cached engine (sync, safe outside a loop)."""

    for engine in list(_ENGINES.values()):
        engine.sync_engine.dispose()
    _ENGINES.clear()
