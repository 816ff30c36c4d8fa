"""
stepstone/health/server.py — Frontend listen address validation.

Only checks that each configured address is well formed (host:port). Nothing
is bound or dialled: the frontend itself may already hold these ports.
"""

from __future__ import annotations

from stepstone.config.roles import ServerConfig
from stepstone.errors import AddressError
from stepstone.health import CheckDetail
from stepstone.health.address import parse_address

_FIELDS = (
    ("addr", "Server Address"),
    ("http_addr", "HTTP Address"),
    ("grpc_addr", "gRPC Address"),
)


def run_checks(server: ServerConfig | None) -> list[CheckDetail]:
    if server is None:
        return [
            CheckDetail.warning(
                "Server Configuration",
                "No server configuration found, using defaults",
                suggestion="Set [http] addr / [grpc] bind_addr explicitly for production deployments",
            )
        ]

    details: list[CheckDetail] = []
    for field, item in _FIELDS:
        address = getattr(server, field)
        if address is None:
            continue
        try:
            host, port = parse_address(address)
        except AddressError as exc:
            details.append(
                CheckDetail.failed(
                    item,
                    f"Invalid {field} '{address}': {exc}",
                    suggestion="Use host:port format, e.g. 0.0.0.0:4000",
                )
            )
        else:
            details.append(CheckDetail.passed(item, f"{field} '{address}' is valid ({host}:{port})"))

    if not details:
        details.append(
            CheckDetail.warning(
                "Server Configuration",
                "Server section present but no addresses set, using defaults",
            )
        )
    return details
