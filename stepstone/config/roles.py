"""
stepstone/config/roles.py — Role configuration snapshots (frontend / datanode / metasrv).

Role configs are the TOML files the database nodes themselves start from. Two
shapes are in circulation and both are accepted here, normalised to one model
per role so the checkers never see the difference:

  legacy flat                        nested
  ---------------------------------  ------------------------------------------
  metasrv_addrs = [...]              [meta_client] metasrv_addrs = [...]
  [server] addr/http_addr/grpc_addr  [http] addr, [grpc] bind_addr
  [storage] storage_type = "S3"      [storage] type = "S3"
  [store] store_type/store_addrs     backend = "..." / store_addrs (top level)

Models are frozen: a checker owns an immutable snapshot for one run.
"""

from __future__ import annotations

import tomllib
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from stepstone.errors import ConfigError

DEFAULT_META_TABLE = "greptime_metasrv"
DEFAULT_FILE_ROOT = "./data"


class Role(str, Enum):
    FRONTEND = "frontend"
    DATANODE = "datanode"
    METASRV = "metasrv"


class _Snapshot(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class ServerConfig(_Snapshot):
    addr: Optional[str] = None
    http_addr: Optional[str] = None
    grpc_addr: Optional[str] = None


class StorageConfig(_Snapshot):
    type: str = "File"
    data_home: Optional[str] = None
    root: Optional[str] = None
    bucket: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    endpoint: Optional[str] = None
    region: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_storage_type(cls, data: Any) -> Any:
        if isinstance(data, dict) and "storage_type" in data and "type" not in data:
            data = {**data, "type": data["storage_type"]}
        return data

    @property
    def file_root(self) -> str:
        return self.root or self.data_home or DEFAULT_FILE_ROOT


def _lift_meta_client(data: Any) -> Any:
    if not isinstance(data, dict) or "metasrv_addrs" in data:
        return data
    meta_client = data.get("meta_client")
    if isinstance(meta_client, dict) and "metasrv_addrs" in meta_client:
        return {**data, "metasrv_addrs": meta_client["metasrv_addrs"]}
    return data


def _lift_server(data: Any) -> Any:
    if not isinstance(data, dict) or "server" in data:
        return data
    http = data.get("http") if isinstance(data.get("http"), dict) else {}
    grpc = data.get("grpc") if isinstance(data.get("grpc"), dict) else {}
    if not http and not grpc:
        return data
    server = {
        "http_addr": http.get("addr"),
        "grpc_addr": grpc.get("bind_addr") or grpc.get("addr"),
    }
    return {**data, "server": server}


class FrontendConfig(_Snapshot):
    metasrv_addrs: tuple[str, ...] = ()
    server: Optional[ServerConfig] = None

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        return _lift_server(_lift_meta_client(data))


class DatanodeConfig(_Snapshot):
    metasrv_addrs: tuple[str, ...] = ()
    storage: StorageConfig = StorageConfig()
    server: Optional[ServerConfig] = None

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        data = _lift_server(_lift_meta_client(data))
        if isinstance(data, dict) and isinstance(data.get("storage"), dict):
            storage = data["storage"]
            if "data_home" not in storage and "data_home" in data:
                data = {**data, "storage": {**storage, "data_home": data["data_home"]}}
        return data


class MetasrvConfig(_Snapshot):
    backend: str = "etcd_store"
    store_addrs: tuple[str, ...] = ()
    store_key_prefix: str = ""
    meta_table_name: str = DEFAULT_META_TABLE

    @model_validator(mode="before")
    @classmethod
    def _normalise(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        store = data.get("store")
        if isinstance(store, dict):
            lifted = {k: v for k, v in store.items() if v is not None}
            if "store_type" in lifted:
                lifted["backend"] = lifted.pop("store_type")
            data = {**{k: v for k, v in data.items() if k != "store"}, **lifted}
        if data.get("use_memory_store") is True:
            data = {**data, "backend": "memory_store"}
        return {k: v for k, v in data.items() if v is not None}


RoleConfig = Union[FrontendConfig, DatanodeConfig, MetasrvConfig]

_MODELS: dict[Role, type[_Snapshot]] = {
    Role.FRONTEND: FrontendConfig,
    Role.DATANODE: DatanodeConfig,
    Role.METASRV: MetasrvConfig,
}


def parse_role_config(role: Role | str, data: dict[str, Any]) -> RoleConfig:
    model = _MODELS[Role(role)]
    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as exc:
        raise ConfigError(f"Invalid {Role(role).value} configuration: {exc}") from exc


def load_role_config(path: str | Path, role: Role | str) -> RoleConfig:
    """Read a role's TOML config file into its frozen model.

    Raises:
        ConfigError: unreadable file, invalid TOML, or schema violation.
    """
    config_path = Path(path)
    try:
        with open(config_path, "rb") as fh:
            data = tomllib.load(fh)
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {config_path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse {config_path} as TOML: {exc}") from exc
    return parse_role_config(role, data)
