"""
stepstone/backends — Capability interfaces consumed by the verifiers.

The verifiers in stepstone.health only talk to these protocols. Concrete
adapters live next to them (s3.py, etcd.py, sql.py); tests substitute fakes.

Every adapter reports failures by raising the matching BackendError subclass
from stepstone.errors, never a vendor exception.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Protocol


class ObjectStore(Protocol):
    async def write(self, key: str, data: bytes) -> None: ...

    async def read(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...

    async def list(self, prefix: str = "") -> list[str]: ...


class KvStore(Protocol):
    async def connect(self) -> None: ...

    async def put(self, key: bytes, value: bytes) -> None: ...

    async def get(self, key: bytes) -> bytes | None: ...

    async def delete(self, key: bytes) -> None: ...

    async def close(self) -> None: ...


class SqlPool(Protocol):
    async def connect(self) -> None: ...

    async def scalar(self, sql: str, params: Mapping[str, Any] | None = None) -> Any: ...

    async def execute(self, sql: str, params: Mapping[str, Any] | None = None) -> None: ...

    async def close(self) -> None: ...
