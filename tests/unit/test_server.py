"""Unit tests for stepstone.health.server (frontend listen addresses)."""

from __future__ import annotations

from stepstone.config.roles import ServerConfig
from stepstone.health import CheckStatus
from stepstone.health import server as health_server


def test_no_server_section_warns():
    [detail] = health_server.run_checks(None)
    assert detail.item == "Server Configuration"
    assert detail.status is CheckStatus.WARNING


def test_each_present_address_is_checked_in_order():
    details = health_server.run_checks(
        ServerConfig(addr="127.0.0.1:4000", http_addr="0.0.0.0:4000", grpc_addr="0.0.0.0:4001")
    )
    assert [d.item for d in details] == ["Server Address", "HTTP Address", "gRPC Address"]
    assert all(d.status is CheckStatus.PASS for d in details)


def test_malformed_address_fails():
    [detail] = health_server.run_checks(ServerConfig(http_addr="0.0.0.0"))
    assert detail.status is CheckStatus.FAIL
    assert "host:port" in detail.suggestion


def test_empty_server_section_warns():
    [detail] = health_server.run_checks(ServerConfig())
    assert detail.status is CheckStatus.WARNING
