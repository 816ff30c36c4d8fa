"""
stepstone/backends/sql.py — SqlPool over a SQLAlchemy async engine.

Metasrv store_addrs hold plain DSNs ("postgres://user:pw@host:5432/db",
"mysql://user:pw@host:3306/db"); they are rewritten to the async driver of
each family before the engine is created.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from stepstone.errors import SqlStoreError

_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "mysql": "mysql+aiomysql",
}


def to_async_url(dsn: str) -> URL:
    """Rewrite a DSN to its async driver.

    Raises:
        SqlStoreError: the DSN cannot be parsed or names an unsupported family.
    """
    try:
        url = make_url(dsn)
    except ArgumentError as exc:
        raise SqlStoreError(f"invalid database URL: {exc}") from exc
    family = url.drivername.split("+", 1)[0].lower()
    driver = _ASYNC_DRIVERS.get(family)
    if driver is None:
        raise SqlStoreError(f"unsupported database URL scheme '{url.drivername}'")
    return url.set(drivername=driver)


def redact_dsn(dsn: str) -> str:
    """DSN with the password masked, safe for messages and logs."""
    try:
        return make_url(dsn).render_as_string(hide_password=True)
    except ArgumentError:
        return "<unparseable DSN>"


class SqlAlchemyPool:
    def __init__(self, dsn: str) -> None:
        self.dsn = dsn
        self._engine: AsyncEngine | None = None

    async def connect(self) -> None:
        url = to_async_url(self.dsn)
        try:
            self._engine = create_async_engine(url, pool_size=2, max_overflow=8, pool_pre_ping=True)
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except SqlStoreError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SqlStoreError(f"connection failed: {exc}") from exc

    def _require_engine(self) -> AsyncEngine:
        if self._engine is None:
            raise SqlStoreError("pool is not connected")
        return self._engine

    async def scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any:
        engine = self._require_engine()
        try:
            async with engine.connect() as conn:
                result = await conn.execute(text(sql), dict(params or {}))
                return result.scalar()
        except Exception as exc:  # noqa: BLE001
            raise SqlStoreError(str(exc)) from exc

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None:
        engine = self._require_engine()
        try:
            async with engine.begin() as conn:
                await conn.execute(text(sql), dict(params or {}))
        except Exception as exc:  # noqa: BLE001
            raise SqlStoreError(str(exc)) from exc

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
