"""
stepstone/health/metadata.py — Metasrv metadata store checks.

One handler per backend family:
  etcd_store      connect, PUT probe key, GET with bounded retry, DELETE
  postgres_store  connect, table existence, read/write probes, create probe
  mysql_store     connect, table existence, read/write probes
  memory_store    always passes, no I/O

Unlike the other verifiers this one returns a CheckResult: the memory and
unknown-backend paths carry an explicit verdict instead of a derived one.
"""

from __future__ import annotations

import asyncio
import re
import time
import uuid
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from stepstone.backends import KvStore, SqlPool
from stepstone.backends.etcd import EtcdKvStore
from stepstone.backends.sql import SqlAlchemyPool, redact_dsn
from stepstone.config.roles import MetasrvConfig
from stepstone.config.settings import Settings
from stepstone.health import CheckDetail, CheckResult
from stepstone.log import get_logger

logger = get_logger(__name__)

# Etcd read-back absorbs replication lag with a short fixed retry.
KV_READ_ATTEMPTS = 3
KV_READ_RETRY_DELAY = 0.1

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

KvFactory = Callable[[Sequence[str]], KvStore]
SqlFactory = Callable[[str], SqlPool]


class StoreBackend(str, Enum):
    ETCD = "etcd_store"
    POSTGRES = "postgres_store"
    MYSQL = "mysql_store"
    MEMORY = "memory_store"

    @classmethod
    def lookup(cls, name: str) -> StoreBackend | None:
        wanted = name.strip().lower()
        return next((member for member in cls if member.value == wanted), None)


@dataclass(frozen=True)
class SqlDialect:
    name: str
    quote: str
    exists_sql: str
    upsert_template: str
    create_template: str | None = None

    def ident(self, name: str) -> str:
        return f"{self.quote}{name}{self.quote}"

    def count_sql(self, table: str) -> str:
        return f"SELECT COUNT(*) FROM {self.ident(table)}"

    def upsert_sql(self, table: str) -> str:
        return self.upsert_template.format(table=self.ident(table))

    def delete_sql(self, table: str) -> str:
        return f"DELETE FROM {self.ident(table)} WHERE {self.ident('key')} = :key"

    def create_sql(self, table: str) -> str | None:
        if self.create_template is None:
            return None
        return self.create_template.format(table=self.ident(table))


POSTGRES = SqlDialect(
    name="PostgreSQL",
    quote='"',
    exists_sql=(
        "SELECT EXISTS (SELECT FROM information_schema.tables WHERE table_name = :table_name)"
    ),
    upsert_template=(
        'INSERT INTO {table} ("key", "value") VALUES (:key, :value) '
        'ON CONFLICT ("key") DO UPDATE SET "value" = EXCLUDED."value"'
    ),
    create_template=(
        'CREATE TABLE IF NOT EXISTS {table} ('
        '"key" VARCHAR(255) PRIMARY KEY, '
        '"value" TEXT, '
        "created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP)"
    ),
)

MYSQL = SqlDialect(
    name="MySQL",
    quote="`",
    exists_sql=(
        "SELECT EXISTS (SELECT * FROM information_schema.tables "
        "WHERE table_schema = DATABASE() AND table_name = :table_name)"
    ),
    upsert_template=(
        "INSERT INTO {table} (`key`, `value`) VALUES (:key, :value) "
        "ON DUPLICATE KEY UPDATE `value` = VALUES(`value`)"
    ),
)


@dataclass(frozen=True)
class _Context:
    settings: Settings
    kv_factory: KvFactory
    sql_factory: SqlFactory


def _elapsed(start: float) -> float:
    return time.perf_counter() - start


def _describe(exc: BaseException) -> str:
    if isinstance(exc, TimeoutError):
        return "timed out"
    return str(exc) or type(exc).__name__


async def _close(resource: KvStore | SqlPool) -> None:
    try:
        await resource.close()
    except Exception as exc:  # noqa: BLE001
        logger.debug("error while closing %s: %s", type(resource).__name__, exc)


async def run_checks(
    config: MetasrvConfig,
    settings: Settings,
    *,
    kv_factory: KvFactory | None = None,
    sql_factory: SqlFactory | None = None,
) -> CheckResult:
    backend = StoreBackend.lookup(config.backend)
    if backend is None:
        return CheckResult.failure_result(
            f"Unknown store type: {config.backend}",
            [
                CheckDetail.failed(
                    "Store Type",
                    f"Unsupported store type: {config.backend}",
                    suggestion="Use one of: " + ", ".join(member.value for member in StoreBackend),
                )
            ],
        )

    ctx = _Context(
        settings=settings,
        kv_factory=kv_factory
        or (lambda addrs: EtcdKvStore(addrs, timeout=settings.OPERATION_TIMEOUT_SECONDS)),
        sql_factory=sql_factory or SqlAlchemyPool,
    )
    return await _HANDLERS[backend](config, ctx)


async def _check_memory(config: MetasrvConfig, ctx: _Context) -> CheckResult:  # noqa: ARG001
    return CheckResult.success_result(
        "Memory store requires no external dependencies",
        [CheckDetail.passed("Memory Store", "Memory store is always available")],
    )


# ---------------------------------------------------------------------------
# etcd
# ---------------------------------------------------------------------------


async def _check_etcd(config: MetasrvConfig, ctx: _Context) -> CheckResult:
    details: list[CheckDetail] = []
    if not config.store_addrs:
        details.append(
            CheckDetail.failed(
                "Etcd Configuration",
                "No etcd endpoints configured",
                suggestion="Add etcd endpoints to store_addrs",
            )
        )
        return CheckResult.from_details(details)

    timeout = ctx.settings.OPERATION_TIMEOUT_SECONDS
    endpoints = ", ".join(config.store_addrs)
    store = ctx.kv_factory(config.store_addrs)
    try:
        start = time.perf_counter()
        try:
            await asyncio.wait_for(store.connect(), ctx.settings.CONNECT_TIMEOUT_SECONDS)
        except Exception as exc:  # noqa: BLE001
            details.append(
                CheckDetail.failed(
                    "Etcd Connection",
                    f"Failed to connect to etcd ({endpoints}): {_describe(exc)}",
                    _elapsed(start),
                    suggestion="Check etcd service status and network connectivity",
                )
            )
            return CheckResult.from_details(details)
        details.append(
            CheckDetail.passed(
                "Etcd Connection", f"Successfully connected to etcd endpoints: {endpoints}", _elapsed(start)
            )
        )

        token = uuid.uuid4().hex
        key = f"{config.store_key_prefix}__stepstone_test_{token}".encode()
        value = f"stepstone_test_value_{token}".encode()

        start = time.perf_counter()
        try:
            await asyncio.wait_for(store.put(key, value), timeout)
        except Exception as exc:  # noqa: BLE001
            details.append(
                CheckDetail.failed(
                    "Etcd PUT Operation",
                    f"PUT operation failed: {_describe(exc)}",
                    _elapsed(start),
                    suggestion="Check etcd write permissions (RBAC) and cluster health",
                )
            )
            return CheckResult.from_details(details)
        details.append(CheckDetail.passed("Etcd PUT Operation", "PUT operation successful", _elapsed(start)))

        details.append(await read_with_retry(store, key, value, timeout=timeout))

        start = time.perf_counter()
        try:
            await asyncio.wait_for(store.delete(key), timeout)
        except Exception as exc:  # noqa: BLE001
            details.append(
                CheckDetail.warning(
                    "Etcd DELETE Operation",
                    f"DELETE operation failed: {_describe(exc)}",
                    _elapsed(start),
                    suggestion=f"Probe key '{key.decode()}' may remain; remove it with etcdctl del",
                )
            )
        else:
            details.append(
                CheckDetail.passed("Etcd DELETE Operation", "DELETE operation successful", _elapsed(start))
            )
    finally:
        await _close(store)

    return CheckResult.from_details(details)


async def read_with_retry(
    store: KvStore,
    key: bytes,
    expected: bytes,
    *,
    timeout: float,
    attempts: int = KV_READ_ATTEMPTS,
    delay: float = KV_READ_RETRY_DELAY,
) -> CheckDetail:
    """GET ``key`` until it returns ``expected`` or ``attempts`` run out."""
    item = "Etcd GET Operation"
    start = time.perf_counter()
    problem = ""
    for attempt in range(1, attempts + 1):
        try:
            got = await asyncio.wait_for(store.get(key), timeout)
        except Exception as exc:  # noqa: BLE001
            problem = f"GET operation failed: {_describe(exc)}"
        else:
            if got == expected:
                suffix = f" (after {attempt} attempts)" if attempt > 1 else ""
                return CheckDetail.passed(
                    item, f"GET operation successful and data matches{suffix}", _elapsed(start)
                )
            problem = "GET operation returned no data" if got is None else "GET operation returned incorrect data"
        logger.debug("etcd read attempt %d/%d: %s", attempt, attempts, problem)
        if attempt < attempts:
            await asyncio.sleep(delay)

    return CheckDetail.failed(
        item,
        f"Probe value not readable after {attempts} attempts: {problem}",
        _elapsed(start),
        suggestion="Check etcd cluster health and data consistency",
    )


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


def _sql_handler(dialect: SqlDialect) -> Callable[[MetasrvConfig, _Context], Awaitable[CheckResult]]:
    async def check(config: MetasrvConfig, ctx: _Context) -> CheckResult:
        return CheckResult.from_details(await check_sql_store(config, ctx, dialect))

    return check


async def check_sql_store(config: MetasrvConfig, ctx: _Context, dialect: SqlDialect) -> list[CheckDetail]:
    name = dialect.name
    details: list[CheckDetail] = []
    if not config.store_addrs:
        details.append(
            CheckDetail.failed(
                f"{name} Configuration",
                f"No {name} address configured",
                suggestion=f"Add {name} connection string to store_addrs",
            )
        )
        return details

    dsn = config.store_addrs[0]
    timeout = ctx.settings.OPERATION_TIMEOUT_SECONDS
    start = time.perf_counter()
    pool = ctx.sql_factory(dsn)
    try:
        try:
            await asyncio.wait_for(pool.connect(), ctx.settings.CONNECT_TIMEOUT_SECONDS)
        except Exception as exc:  # noqa: BLE001
            details.append(
                CheckDetail.failed(
                    f"{name} Connection",
                    f"Failed to connect to {name} ({redact_dsn(dsn)}): {_describe(exc)}",
                    _elapsed(start),
                    suggestion="Check connection string, network connectivity, and database availability",
                )
            )
            return details

        details.append(
            CheckDetail.passed(
                f"{name} Connection", f"Successfully connected to {name}: {redact_dsn(dsn)}", _elapsed(start)
            )
        )

        table = config.meta_table_name
        if not _IDENTIFIER_RE.match(table):
            details.append(
                CheckDetail.failed(
                    "Metadata Table Check",
                    f"Metadata table name '{table}' is not a valid SQL identifier",
                    suggestion="Use letters, digits and underscores only for meta_table_name",
                )
            )
            return details

        try:
            exists = await asyncio.wait_for(pool.scalar(dialect.exists_sql, {"table_name": table}), timeout)
        except Exception as exc:  # noqa: BLE001
            details.append(
                CheckDetail.failed(
                    "Metadata Table Check",
                    f"Failed to check table existence: {_describe(exc)}",
                    suggestion="Check database permissions and schema access",
                )
            )
            return details

        if exists:
            details.append(CheckDetail.passed("Metadata Table Existence", f"Table '{table}' exists"))
            details.extend(await probe_read_write(pool, dialect, table, timeout=timeout))
            return details

        details.append(
            CheckDetail.warning(
                "Metadata Table Existence",
                f"Table '{table}' does not exist, will be created automatically",
                suggestion="This is normal for first-time setup",
            )
        )
        create_sql = dialect.create_sql(table)
        if create_sql is not None:
            details.extend(await probe_create(pool, dialect, table, create_sql, timeout=timeout))
        return details
    finally:
        await _close(pool)


async def probe_read_write(
    pool: SqlPool,
    dialect: SqlDialect,
    table: str,
    *,
    timeout: float,
) -> list[CheckDetail]:
    name = dialect.name
    details: list[CheckDetail] = []

    try:
        await asyncio.wait_for(pool.scalar(dialect.count_sql(table)), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.failed(
                f"{name} Read Permission",
                f"Failed to read from table '{table}': {_describe(exc)}",
                suggestion="Grant SELECT permission on the metadata table",
            )
        )
        # Without read access a write probe tells us nothing more.
        return details
    details.append(CheckDetail.passed(f"{name} Read Permission", f"Successfully read from table '{table}'"))

    token = uuid.uuid4().hex
    row = {"key": f"stepstone_test_key_{token}", "value": f"stepstone_test_value_{token}"}
    try:
        await asyncio.wait_for(pool.execute(dialect.upsert_sql(table), row), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.failed(
                f"{name} Write Permission",
                f"Failed to write to table '{table}': {_describe(exc)}",
                suggestion="Grant INSERT/UPDATE permission on the metadata table",
            )
        )
        return details
    details.append(CheckDetail.passed(f"{name} Write Permission", f"Successfully wrote to table '{table}'"))

    try:
        await asyncio.wait_for(pool.execute(dialect.delete_sql(table), {"key": row["key"]}), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.warning(
                f"{name} Write Cleanup",
                f"Failed to remove probe row '{row['key']}': {_describe(exc)}",
                suggestion="Grant DELETE permission or remove the probe row manually",
            )
        )
    return details


async def probe_create(
    pool: SqlPool,
    dialect: SqlDialect,
    table: str,
    create_sql: str,
    *,
    timeout: float,
) -> list[CheckDetail]:
    name = dialect.name
    try:
        await asyncio.wait_for(pool.execute(create_sql), timeout)
    except Exception as exc:  # noqa: BLE001
        return [
            CheckDetail.failed(
                f"{name} Create Permission",
                f"Failed to create table '{table}': {_describe(exc)}",
                suggestion="Grant CREATE permission on the database/schema",
            )
        ]
    details = [CheckDetail.passed(f"{name} Create Permission", f"Successfully created/verified table '{table}'")]
    details.extend(await probe_read_write(pool, dialect, table, timeout=timeout))
    return details


_HANDLERS: dict[StoreBackend, Callable[[MetasrvConfig, _Context], Awaitable[CheckResult]]] = {
    StoreBackend.ETCD: _check_etcd,
    StoreBackend.POSTGRES: _sql_handler(POSTGRES),
    StoreBackend.MYSQL: _sql_handler(MYSQL),
    StoreBackend.MEMORY: _check_memory,
}
