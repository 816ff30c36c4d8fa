"""
stepstone/health/object_storage.py — Datanode object storage checks.

S3 (and S3-compatible gateways such as MinIO) get the full protocol:
client construction, permission discovery, a write/read/delete round trip and,
on request, the benchmark lane from stepstone.health.benchmark. OSS, Azure
Blob and GCS are recognised but only produce a warning. File storage checks
the data directory and its write permission.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from stepstone.backends import ObjectStore
from stepstone.backends.s3 import S3ObjectStore
from stepstone.config.roles import StorageConfig
from stepstone.config.settings import Settings
from stepstone.errors import ErrorKind, classify_storage_error
from stepstone.health import CheckDetail
from stepstone.health.benchmark import run_benchmarks
from stepstone.log import get_logger

logger = get_logger(__name__)

PROBE_PREFIX = "stepstone-test"

StoreFactory = Callable[[StorageConfig], ObjectStore]


class StorageType(str, Enum):
    S3 = "S3"
    OSS = "Oss"
    AZBLOB = "Azblob"
    GCS = "Gcs"
    FILE = "File"

    @classmethod
    def lookup(cls, name: str) -> StorageType | None:
        wanted = name.strip().lower()
        return next((member for member in cls if member.value.lower() == wanted), None)


@dataclass(frozen=True)
class _Context:
    settings: Settings
    include_performance: bool
    store_factory: StoreFactory


_UNSUPPORTED = {
    StorageType.OSS: ("OSS Storage", "OSS"),
    StorageType.AZBLOB: ("Azure Blob Storage", "Azure Blob"),
    StorageType.GCS: ("Google Cloud Storage", "GCS"),
}

# Suggestions for failures whose cause could be classified.
_KIND_SUGGESTIONS = {
    ErrorKind.ACCESS_DENIED: "Grant the storage credentials read/write/list access to the bucket",
    ErrorKind.BUCKET_NOT_FOUND: "Create the bucket or correct the bucket name",
    ErrorKind.INVALID_ACCESS_KEY: "Check access_key_id: the key is not recognised by the storage service",
    ErrorKind.INVALID_SECRET: "Check secret_access_key: the request signature was rejected",
    ErrorKind.TIMEOUT: "Check network connectivity to the storage endpoint",
}


def _elapsed(start: float) -> float:
    return time.perf_counter() - start


def _suggest(exc: BaseException, default: str) -> str:
    return _KIND_SUGGESTIONS.get(classify_storage_error(exc), default)


def _describe(exc: BaseException, timeout: float) -> str:
    if isinstance(exc, TimeoutError):
        return f"timed out after {timeout:g}s"
    return str(exc) or type(exc).__name__


async def run_checks(
    storage: StorageConfig,
    settings: Settings,
    *,
    include_performance: bool = False,
    store_factory: StoreFactory | None = None,
) -> list[CheckDetail]:
    storage_type = StorageType.lookup(storage.type)
    if storage_type is None:
        return [
            CheckDetail.failed(
                "Storage Type",
                f"Unsupported storage type: {storage.type}",
                suggestion="Use one of: " + ", ".join(member.value for member in StorageType),
            )
        ]

    ctx = _Context(
        settings=settings,
        include_performance=include_performance,
        store_factory=store_factory or _default_store_factory(settings),
    )
    return await _HANDLERS[storage_type](storage, ctx)


def _default_store_factory(settings: Settings) -> StoreFactory:
    def build(storage: StorageConfig) -> ObjectStore:
        return S3ObjectStore.from_config(storage, timeout=settings.OPERATION_TIMEOUT_SECONDS)

    return build


# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------


async def _check_s3(storage: StorageConfig, ctx: _Context) -> list[CheckDetail]:
    details: list[CheckDetail] = []
    start = time.perf_counter()
    try:
        store = ctx.store_factory(storage)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.failed(
                "S3 Client Creation",
                f"Failed to create S3 client: {exc}",
                _elapsed(start),
                suggestion="Check S3 configuration (bucket, endpoint, region) and credentials",
            )
        )
        return details
    details.append(
        CheckDetail.passed(
            "S3 Client Creation",
            f"S3 client created for bucket '{storage.bucket}'",
            _elapsed(start),
        )
    )

    timeout = ctx.settings.OPERATION_TIMEOUT_SECONDS
    if ctx.settings.PROBE_PERMISSIONS:
        details.extend(await probe_permissions(store, timeout=timeout))

    round_trip_details, write_ok = await round_trip(store, timeout=timeout)
    details.extend(round_trip_details)

    if ctx.include_performance and write_ok:
        details.extend(
            await run_benchmarks(
                store,
                label="S3",
                timeout=ctx.settings.PERF_TIMEOUT_SECONDS,
                concurrency=ctx.settings.PERF_CONCURRENCY,
            )
        )
    return details


async def probe_permissions(
    store: ObjectStore,
    *,
    timeout: float,
    label: str = "S3",
) -> list[CheckDetail]:
    """List the bucket root and read a key that cannot exist.

    A not-found answer on the second probe is the expected outcome: it proves
    the credentials may read, as opposed to an access-denied answer.
    """
    details: list[CheckDetail] = []

    start = time.perf_counter()
    try:
        await asyncio.wait_for(store.list(""), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(_list_failure(label, exc, _elapsed(start), timeout))
    else:
        details.append(
            CheckDetail.passed(f"{label} List Permission", "Listed bucket root", _elapsed(start))
        )

    missing_key = f"{PROBE_PREFIX}/nonexistent-{uuid.uuid4().hex}"
    item = f"{label} Read Permission"
    start = time.perf_counter()
    try:
        data = await asyncio.wait_for(store.read(missing_key), timeout)
    except Exception as exc:  # noqa: BLE001
        kind = classify_storage_error(exc)
        if kind is ErrorKind.NOT_FOUND:
            details.append(
                CheckDetail.passed(
                    item, "Missing object reported as not found (read access confirmed)", _elapsed(start)
                )
            )
        elif kind is ErrorKind.ACCESS_DENIED:
            details.append(
                CheckDetail.failed(
                    item,
                    f"Access denied when reading objects: {exc}",
                    _elapsed(start),
                    suggestion="Grant s3:GetObject permission on the bucket",
                )
            )
        else:
            details.append(
                CheckDetail.warning(
                    item,
                    f"Could not confirm read permission: {_describe(exc, timeout)}",
                    _elapsed(start),
                    suggestion=_suggest(exc, "Possibly a transient network error; re-run the check"),
                )
            )
    else:
        details.append(
            CheckDetail.warning(
                item,
                f"Reading a nonexistent object unexpectedly returned {len(data)} bytes",
                _elapsed(start),
                suggestion="Check whether the storage gateway serves default content for missing keys",
            )
        )
    return details


def _list_failure(label: str, exc: BaseException, duration: float, timeout: float) -> CheckDetail:
    item = f"{label} List Permission"
    kind = classify_storage_error(exc)
    logger.warning("%s list probe failed (%s): %s", label, kind.value, exc)
    if kind is ErrorKind.ACCESS_DENIED:
        return CheckDetail.failed(
            item,
            f"Access denied when listing bucket: {exc}",
            duration,
            suggestion="Grant s3:ListBucket permission on the bucket",
        )
    if kind is ErrorKind.BUCKET_NOT_FOUND:
        return CheckDetail.failed(
            item,
            f"Bucket does not exist: {exc}",
            duration,
            suggestion=_KIND_SUGGESTIONS[kind],
        )
    if kind is ErrorKind.INVALID_ACCESS_KEY:
        return CheckDetail.failed(
            item,
            f"Invalid access key ID: {exc}",
            duration,
            suggestion=_KIND_SUGGESTIONS[kind],
        )
    if kind is ErrorKind.INVALID_SECRET:
        return CheckDetail.failed(
            item,
            f"Invalid secret access key: {exc}",
            duration,
            suggestion=_KIND_SUGGESTIONS[kind],
        )
    return CheckDetail.warning(
        item,
        f"List operation failed: {_describe(exc, timeout)}",
        duration,
        suggestion="Possibly a transient network error; re-run the check",
    )


async def round_trip(
    store: ObjectStore,
    *,
    timeout: float,
    label: str = "S3",
) -> tuple[list[CheckDetail], bool]:
    """Write, read back, compare and delete one probe object.

    Returns the details and whether the write succeeded.
    """
    details: list[CheckDetail] = []
    token = uuid.uuid4().hex
    key = f"{PROBE_PREFIX}/{token}"
    payload = f"stepstone-test-data-{token}".encode()

    start = time.perf_counter()
    try:
        await asyncio.wait_for(store.write(key, payload), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.failed(
                f"{label} PUT Operation",
                f"PUT operation failed: {_describe(exc, timeout)}",
                _elapsed(start),
                suggestion=_suggest(
                    exc, "Check credentials, bucket permissions, and network connectivity"
                ),
            )
        )
        return details, False
    details.append(
        CheckDetail.passed(f"{label} PUT Operation", "PUT operation successful", _elapsed(start))
    )

    start = time.perf_counter()
    try:
        data = await asyncio.wait_for(store.read(key), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.failed(
                f"{label} GET Operation",
                f"GET operation failed: {_describe(exc, timeout)}",
                _elapsed(start),
                suggestion=_suggest(exc, "Check read permissions on the bucket"),
            )
        )
    else:
        if data == payload:
            details.append(
                CheckDetail.passed(
                    f"{label} GET Operation",
                    "GET operation successful and data matches",
                    _elapsed(start),
                )
            )
        else:
            details.append(
                CheckDetail.failed(
                    f"{label} GET Operation",
                    f"GET operation returned incorrect data "
                    f"(expected {len(payload)} bytes, got {len(data)})",
                    _elapsed(start),
                    suggestion="Check storage data consistency and any proxy/gateway in between",
                )
            )

    start = time.perf_counter()
    try:
        await asyncio.wait_for(store.delete(key), timeout)
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.warning(
                f"{label} DELETE Operation",
                f"DELETE operation failed: {_describe(exc, timeout)}",
                _elapsed(start),
                suggestion=f"Probe object '{key}' may remain in the bucket; "
                "this does not affect functionality",
            )
        )
    else:
        details.append(
            CheckDetail.passed(
                f"{label} DELETE Operation", "DELETE operation successful", _elapsed(start)
            )
        )
    return details, True


# ---------------------------------------------------------------------------
# Recognised backends without a deep check
# ---------------------------------------------------------------------------


def _unsupported(storage_type: StorageType):
    item, short = _UNSUPPORTED[storage_type]

    async def check(storage: StorageConfig, ctx: _Context) -> list[CheckDetail]:  # noqa: ARG001
        return [
            CheckDetail.warning(
                item,
                f"{short} storage check not fully implemented yet",
                suggestion=f"Verify {short} bucket access manually; "
                "deep checks exist for S3 and File storage only",
            )
        ]

    return check


# ---------------------------------------------------------------------------
# File
# ---------------------------------------------------------------------------


async def _check_file(storage: StorageConfig, ctx: _Context) -> list[CheckDetail]:  # noqa: ARG001
    root = Path(storage.file_root)
    item = "File Storage Directory"

    try:
        root.stat()
    except FileNotFoundError:
        return [
            CheckDetail.failed(
                item,
                f"Storage directory '{root}' does not exist",
                suggestion="Create the storage directory or fix data_home/root in the config",
            )
        ]
    except OSError as exc:
        return [
            CheckDetail.failed(
                item,
                f"Storage directory '{root}' is not accessible: {exc}",
                suggestion="Check permissions on the storage path",
            )
        ]

    if not root.is_dir():
        return [
            CheckDetail.failed(
                item,
                f"Storage path '{root}' exists but is not a directory",
                suggestion="Ensure the storage path points to a directory",
            )
        ]

    details = [CheckDetail.passed(item, f"Storage directory '{root}' exists")]

    probe = root / f"stepstone_test_{uuid.uuid4().hex}"
    start = time.perf_counter()
    try:
        probe.write_bytes(b"stepstone-test-data")
    except OSError as exc:
        details.append(
            CheckDetail.failed(
                "File Storage Write Permission",
                f"Write permission test failed: {exc}",
                _elapsed(start),
                suggestion=f"Grant the database user write access to '{root}'",
            )
        )
        return details
    details.append(
        CheckDetail.passed(
            "File Storage Write Permission", "Write permission verified", _elapsed(start)
        )
    )

    try:
        probe.unlink()
    except OSError as exc:
        details.append(
            CheckDetail.warning(
                "File Storage Cleanup",
                f"Could not remove probe file '{probe}': {exc}",
                suggestion="Remove the probe file manually",
            )
        )
    return details


_HANDLERS: dict[StorageType, Callable[[StorageConfig, _Context], Awaitable[list[CheckDetail]]]] = {
    StorageType.S3: _check_s3,
    StorageType.FILE: _check_file,
    **{storage_type: _unsupported(storage_type) for storage_type in _UNSUPPORTED},
}
