"""
stepstone/health/benchmark.py — Object storage latency/throughput lane.

Only runs on request (--include-performance). Everything here reports a
Warning rather than a Fail on timeouts and operation errors: a slow bucket is a
performance concern, not a broken deployment. A size mismatch on read-back is
still a Fail since that is a data integrity problem.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from collections.abc import Collection

from stepstone.backends import ObjectStore
from stepstone.health import CheckDetail
from stepstone.log import get_logger

logger = get_logger(__name__)

PERF_PREFIX = "stepstone-perf-test"
CONCURRENT_PREFIX = "stepstone-concurrent-test"

PERF_SIZES: tuple[tuple[int, str], ...] = (
    (1024, "1KB"),
    (1024 * 1024, "1MB"),
    (10 * 1024 * 1024, "10MB"),
)
CONCURRENT_WRITES = 10
CONCURRENT_OBJECT_SIZE = 1024

_MB = 1024.0 * 1024.0


def _throughput(nbytes: int, seconds: float) -> float:
    """MB/s, 0 when the clock did not move."""
    return nbytes / seconds / _MB if seconds > 0 else 0.0


async def _cleanup(store: ObjectStore, key: str, timeout: float) -> None:
    try:
        await asyncio.wait_for(store.delete(key), timeout)
    except Exception as exc:  # noqa: BLE001
        logger.warning("could not remove benchmark object %s: %s", key, exc)


async def _settle(tasks: Collection[asyncio.Future], timeout: float) -> None:
    """Wait up to ``timeout`` for writes that outlived their deadline.

    A write running in a worker thread keeps going after the coroutine awaiting
    it gives up, so its object can land after an immediate delete. Cleanup must
    only start once these writes have finished.
    """
    pending = [task for task in tasks if not task.done()]
    if pending:
        _, stuck = await asyncio.wait(pending, timeout=timeout)
        for task in stuck:
            task.cancel()
        if stuck:
            logger.warning(
                "%d benchmark writes still running after %gs; their objects may be left behind",
                len(stuck),
                timeout,
            )
    await asyncio.gather(*tasks, return_exceptions=True)


async def benchmark_size(
    store: ObjectStore,
    size: int,
    size_name: str,
    *,
    label: str = "S3",
    timeout: float = 60.0,
) -> list[CheckDetail]:
    key = f"{PERF_PREFIX}/{size_name}/{uuid.uuid4().hex}"
    payload = bytes(size)
    details: list[CheckDetail] = []

    start = time.perf_counter()
    write = asyncio.ensure_future(store.write(key, payload))
    try:
        await asyncio.wait_for(asyncio.shield(write), timeout)
    except TimeoutError:
        details.append(
            CheckDetail.warning(
                f"{label} Write Latency ({size_name})",
                f"Write of {size_name} timed out after {timeout:g}s",
                time.perf_counter() - start,
                suggestion="Check network bandwidth to the object store",
            )
        )
        await _settle([write], timeout)
        await _cleanup(store, key, timeout)
        return details
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.warning(
                f"{label} Write Test ({size_name})",
                f"Write failed: {exc}",
                suggestion="Check write permissions and connectivity",
            )
        )
        return details

    write_latency = time.perf_counter() - start
    details.append(
        CheckDetail.passed(
            f"{label} Write Latency ({size_name})",
            f"Write latency: {write_latency * 1000:.1f}ms "
            f"({_throughput(size, write_latency):.2f} MB/s)",
            write_latency,
        )
    )

    start = time.perf_counter()
    try:
        data = await asyncio.wait_for(store.read(key), timeout)
    except TimeoutError:
        details.append(
            CheckDetail.warning(
                f"{label} Read Latency ({size_name})",
                f"Read of {size_name} timed out after {timeout:g}s",
                time.perf_counter() - start,
                suggestion="Check network bandwidth to the object store",
            )
        )
    except Exception as exc:  # noqa: BLE001
        details.append(
            CheckDetail.warning(
                f"{label} Read Test ({size_name})",
                f"Read failed: {exc}",
                suggestion="Check read permissions and connectivity",
            )
        )
    else:
        read_latency = time.perf_counter() - start
        if len(data) == size:
            details.append(
                CheckDetail.passed(
                    f"{label} Read Latency ({size_name})",
                    f"Read latency: {read_latency * 1000:.1f}ms "
                    f"({_throughput(len(data), read_latency):.2f} MB/s)",
                    read_latency,
                )
            )
        else:
            details.append(
                CheckDetail.failed(
                    f"{label} Read Verification ({size_name})",
                    f"Data size mismatch: expected {size}, got {len(data)}",
                    read_latency,
                    suggestion="Check storage data integrity",
                )
            )

    await _cleanup(store, key, timeout)
    return details


async def benchmark_concurrent_writes(
    store: ObjectStore,
    *,
    label: str = "S3",
    timeout: float = 60.0,
    concurrency: int = 10,
    writes: int = CONCURRENT_WRITES,
) -> CheckDetail:
    """Fan out ``writes`` small PUTs, at most ``concurrency`` in flight."""
    item = f"{label} Concurrent Write"
    run_id = uuid.uuid4().hex
    payload = bytes(CONCURRENT_OBJECT_SIZE)
    semaphore = asyncio.Semaphore(concurrency)
    abandoned = asyncio.Event()
    written: list[str] = []

    async def write_one(key: str) -> None:
        async with semaphore:
            # Writes still queued when the deadline passes never start.
            if abandoned.is_set():
                return
            await store.write(key, payload)
        written.append(key)

    keys = [f"{CONCURRENT_PREFIX}/{run_id}/{i}" for i in range(writes)]
    start = time.perf_counter()
    tasks = [asyncio.ensure_future(write_one(key)) for key in keys]
    done, pending = await asyncio.wait(tasks, timeout=timeout)
    elapsed = time.perf_counter() - start
    completed = len(written)

    try:
        if pending:
            abandoned.set()
            return CheckDetail.warning(
                item,
                f"Concurrent writes timed out after {timeout:g}s "
                f"({completed}/{writes} completed)",
                elapsed,
                suggestion="Check object store rate limits and network bandwidth",
            )
        if completed == writes:
            return CheckDetail.passed(
                item,
                f"Successfully wrote {writes} objects concurrently in {elapsed * 1000:.1f}ms "
                f"({_throughput(writes * CONCURRENT_OBJECT_SIZE, elapsed):.2f} MB/s)",
                elapsed,
            )
        errors = [task.exception() for task in done if task.exception() is not None]
        if errors:
            logger.warning("%d concurrent writes failed, first error: %s", len(errors), errors[0])
        return CheckDetail.warning(
            item,
            f"Only {completed}/{writes} concurrent writes succeeded",
            elapsed,
            suggestion="Check object store rate limits and connection pool settings",
        )
    finally:
        await _settle(tasks, timeout)
        # After a timeout any key may have landed; deleting a missing key is harmless.
        await _cleanup_many(store, keys if pending else list(written), semaphore, timeout)


async def _cleanup_many(
    store: ObjectStore,
    keys: list[str],
    semaphore: asyncio.Semaphore,
    timeout: float,
) -> None:
    async def delete_one(key: str) -> None:
        async with semaphore:
            await _cleanup(store, key, timeout)

    await asyncio.gather(*(delete_one(key) for key in keys))


async def run_benchmarks(
    store: ObjectStore,
    *,
    label: str = "S3",
    timeout: float = 60.0,
    concurrency: int = 10,
) -> list[CheckDetail]:
    details: list[CheckDetail] = []
    for size, size_name in PERF_SIZES:
        details.extend(
            await benchmark_size(store, size, size_name, label=label, timeout=timeout)
        )
    details.append(
        await benchmark_concurrent_writes(
            store, label=label, timeout=timeout, concurrency=concurrency
        )
    )
    return details
