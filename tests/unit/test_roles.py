"""Unit tests for stepstone.config.roles: both config shapes, TOML loading."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from stepstone.config.roles import (
    DEFAULT_META_TABLE,
    DatanodeConfig,
    FrontendConfig,
    MetasrvConfig,
    Role,
    load_role_config,
    parse_role_config,
)
from stepstone.errors import ConfigError

# ---------------------------------------------------------------------------
# Frontend
# ---------------------------------------------------------------------------


def test_frontend_flat_shape():
    cfg = parse_role_config(
        "frontend",
        {"metasrv_addrs": ["meta-0:3002", "meta-1:3002"], "server": {"addr": "0.0.0.0:4000"}},
    )
    assert isinstance(cfg, FrontendConfig)
    assert cfg.metasrv_addrs == ("meta-0:3002", "meta-1:3002")
    assert cfg.server.addr == "0.0.0.0:4000"


def test_frontend_nested_shape_lifts_meta_client_and_listeners():
    cfg = parse_role_config(
        Role.FRONTEND,
        {
            "meta_client": {"metasrv_addrs": ["meta:3002"]},
            "http": {"addr": "127.0.0.1:4000"},
            "grpc": {"bind_addr": "127.0.0.1:4001"},
        },
    )
    assert cfg.metasrv_addrs == ("meta:3002",)
    assert cfg.server.http_addr == "127.0.0.1:4000"
    assert cfg.server.grpc_addr == "127.0.0.1:4001"
    assert cfg.server.addr is None


def test_frontend_without_server_sections():
    cfg = parse_role_config("frontend", {"metasrv_addrs": []})
    assert cfg.server is None
    assert cfg.metasrv_addrs == ()


# ---------------------------------------------------------------------------
# Datanode
# ---------------------------------------------------------------------------


def test_datanode_storage_type_alias():
    cfg = parse_role_config(
        "datanode",
        {"metasrv_addrs": ["meta:3002"], "storage": {"storage_type": "S3", "bucket": "b"}},
    )
    assert isinstance(cfg, DatanodeConfig)
    assert cfg.storage.type == "S3"
    assert cfg.storage.bucket == "b"


def test_datanode_top_level_data_home_reaches_storage():
    cfg = parse_role_config(
        "datanode", {"data_home": "/var/lib/greptime", "storage": {"type": "File"}}
    )
    assert cfg.storage.file_root == "/var/lib/greptime"


def test_storage_root_wins_over_data_home():
    cfg = parse_role_config(
        "datanode", {"storage": {"type": "File", "data_home": "/a", "root": "/b"}}
    )
    assert cfg.storage.file_root == "/b"


def test_storage_defaults_to_file_under_data():
    cfg = parse_role_config("datanode", {})
    assert cfg.storage.type == "File"
    assert cfg.storage.file_root == "./data"


def test_snapshots_are_frozen():
    cfg = parse_role_config("datanode", {})
    with pytest.raises(ValidationError):
        cfg.storage = None


# ---------------------------------------------------------------------------
# Metasrv
# ---------------------------------------------------------------------------


def test_metasrv_flat_store_section():
    cfg = parse_role_config(
        "metasrv",
        {
            "store": {
                "store_type": "postgres_store",
                "store_addrs": ["postgres://u:p@db:5432/meta"],
                "meta_table_name": None,
            }
        },
    )
    assert isinstance(cfg, MetasrvConfig)
    assert cfg.backend == "postgres_store"
    assert cfg.store_addrs == ("postgres://u:p@db:5432/meta",)
    assert cfg.meta_table_name == DEFAULT_META_TABLE


def test_metasrv_nested_shape():
    cfg = parse_role_config(
        "metasrv",
        {"backend": "mysql_store", "store_addrs": ["mysql://u:p@db:3306/meta"], "meta_table_name": "meta_kv"},
    )
    assert cfg.backend == "mysql_store"
    assert cfg.meta_table_name == "meta_kv"


def test_metasrv_use_memory_store_flag():
    cfg = parse_role_config("metasrv", {"use_memory_store": True, "store_addrs": ["etcd:2379"]})
    assert cfg.backend == "memory_store"


def test_metasrv_defaults_to_etcd():
    cfg = parse_role_config("metasrv", {})
    assert cfg.backend == "etcd_store"
    assert cfg.store_key_prefix == ""


def test_schema_violation_raises_config_error():
    with pytest.raises(ConfigError, match="Invalid metasrv configuration"):
        parse_role_config("metasrv", {"store_addrs": 42})


# ---------------------------------------------------------------------------
# load_role_config
# ---------------------------------------------------------------------------


def test_load_role_config_reads_toml(tmp_path):
    path = tmp_path / "datanode.toml"
    path.write_text(
        'metasrv_addrs = ["meta:3002"]\n'
        "\n"
        "[storage]\n"
        'type = "S3"\n'
        'bucket = "greptime"\n'
        'endpoint = "http://minio:9000"\n',
        encoding="utf-8",
    )
    cfg = load_role_config(path, "datanode")
    assert cfg.storage.endpoint == "http://minio:9000"
    assert cfg.metasrv_addrs == ("meta:3002",)


def test_load_role_config_missing_file(tmp_path):
    with pytest.raises(ConfigError, match="Failed to read config file"):
        load_role_config(tmp_path / "nope.toml", "frontend")


def test_load_role_config_invalid_toml(tmp_path):
    path = tmp_path / "broken.toml"
    path.write_text("metasrv_addrs = [", encoding="utf-8")
    with pytest.raises(ConfigError, match="as TOML"):
        load_role_config(path, "frontend")
