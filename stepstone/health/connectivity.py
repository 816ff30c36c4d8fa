"""
stepstone/health/connectivity.py — Bounded-time TCP reachability checks.

One CheckDetail per configured endpoint. Endpoints are independent: a bad
address or refused connection on one never stops the others from being
probed. Probes run concurrently; results keep configuration order.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Protocol

from stepstone.errors import AddressError
from stepstone.health import CheckDetail
from stepstone.health.address import parse_address
from stepstone.log import get_logger

logger = get_logger(__name__)

DEFAULT_CONNECT_TIMEOUT = 10.0


class TcpDialer(Protocol):
    async def connect(self, host: str, port: int, timeout: float) -> None:
        """Open and immediately close a TCP connection.

        Raises OSError on failure and TimeoutError when ``timeout`` elapses.
        """


class AsyncioDialer:
    async def connect(self, host: str, port: int, timeout: float) -> None:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass


async def _probe_one(
    index: int,
    address: str,
    target: str,
    dialer: TcpDialer,
    timeout: float,
) -> CheckDetail:
    try:
        host, port = parse_address(address)
    except AddressError as exc:
        return CheckDetail.failed(
            f"{target} Address {index} Parsing",
            f"Failed to parse address '{address}': {exc}",
            suggestion="Check address format (should be host:port)",
        )

    item = f"{target} Connectivity {index}"
    logger.debug("dialing %s at %s:%d", target, host, port)
    start = time.perf_counter()
    try:
        await dialer.connect(host, port, timeout)
    except TimeoutError:
        return CheckDetail.failed(
            item,
            f"Connection to {target.lower()} at {address} timed out after {timeout:g}s",
            time.perf_counter() - start,
            suggestion=f"Check network connectivity and {target.lower()} availability",
        )
    except OSError as exc:
        return CheckDetail.failed(
            item,
            f"Failed to connect to {target.lower()} at {address}: {exc}",
            time.perf_counter() - start,
            suggestion=f"Check if {target.lower()} is running and accessible",
        )
    except Exception as exc:  # noqa: BLE001
        # e.g. UnicodeError from IDNA encoding of an overlong or empty host label
        return CheckDetail.failed(
            item,
            f"Failed to connect to {target.lower()} at {address}: {type(exc).__name__}: {exc}",
            time.perf_counter() - start,
            suggestion=f"Check that the {target.lower()} host name is valid and resolvable",
        )
    return CheckDetail.passed(
        item,
        f"Successfully connected to {target.lower()} at {address}",
        time.perf_counter() - start,
    )


async def probe_endpoints(
    addresses: Sequence[str],
    *,
    target: str = "Metasrv",
    config_key: str = "metasrv_addrs",
    dialer: TcpDialer | None = None,
    timeout: float = DEFAULT_CONNECT_TIMEOUT,
) -> list[CheckDetail]:
    if not addresses:
        return [
            CheckDetail.failed(
                f"{target} Configuration",
                f"No {target.lower()} addresses configured",
                suggestion=f"Add {target.lower()} addresses to {config_key} configuration",
            )
        ]

    dialer = dialer or AsyncioDialer()
    return list(
        await asyncio.gather(
            *(
                _probe_one(index, address, target, dialer, timeout)
                for index, address in enumerate(addresses, start=1)
            )
        )
    )
