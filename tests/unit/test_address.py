"""Unit tests for stepstone.health.address.parse_address."""

from __future__ import annotations

import pytest

from stepstone.errors import AddressError, InvalidPortError, MissingPortError
from stepstone.health.address import parse_address


@pytest.mark.parametrize(
    "address, expected",
    [
        ("127.0.0.1:3002", ("127.0.0.1", 3002)),
        ("meta-0.meta.svc:3002", ("meta-0.meta.svc", 3002)),
        ("http://meta:3002", ("meta", 3002)),
        ("https://meta:443/health", ("meta", 443)),
        ("0.0.0.0:0", ("0.0.0.0", 0)),
        ("host:65535", ("host", 65535)),
    ],
)
def test_valid_addresses(address, expected):
    assert parse_address(address) == expected


def test_missing_port():
    with pytest.raises(MissingPortError) as info:
        parse_address("localhost")
    assert str(info.value) == "Address must contain port number (host:port): localhost"
    assert info.value.address == "localhost"


@pytest.mark.parametrize("address, port_str", [("host:abc", "abc"), ("host:70000", "70000"), ("host:-1", "-1")])
def test_invalid_port(address, port_str):
    with pytest.raises(InvalidPortError) as info:
        parse_address(address)
    assert info.value.port_str == port_str
    assert str(info.value) == f"Invalid port number in address {address}: {port_str}"


def test_address_errors_are_value_errors():
    with pytest.raises(ValueError):
        parse_address("nope")
    with pytest.raises(AddressError):
        parse_address("host:")


def test_split_on_last_colon():
    # Unbracketed IPv6 literals are not supported: everything before the last
    # colon is taken as the host.
    assert parse_address("::1:8080") == ("::1", 8080)
