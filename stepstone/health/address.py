"""
stepstone/health/address.py — host:port parsing for connectivity checks.

Addresses come straight from role config files, so they may carry an http(s)
scheme or a trailing path ("http://meta:3002/health"). Only the plain
host:port form is supported; the split happens on the last colon.
"""

from __future__ import annotations

from stepstone.errors import InvalidPortError, MissingPortError

_SCHEMES = ("http://", "https://")


def parse_address(address: str) -> tuple[str, int]:
    """Split ``address`` into ``(host, port)``.

    Raises:
        MissingPortError: no ``:`` separator present.
        InvalidPortError: the port part is not an integer in 0..65535.
    """
    rest = address
    for scheme in _SCHEMES:
        if rest.startswith(scheme):
            rest = rest[len(scheme):]
            break

    host, sep, port_str = rest.rpartition(":")
    if not sep:
        raise MissingPortError(address)

    port_str = port_str.split("/", 1)[0]
    if not (port_str.isascii() and port_str.isdigit()):
        raise InvalidPortError(address, port_str)
    port = int(port_str)
    if port > 65535:
        raise InvalidPortError(address, port_str)
    return host, port
