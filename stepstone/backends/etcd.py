"""
stepstone/backends/etcd.py — KvStore over the etcd v3 JSON gateway.

etcd serves a gRPC-gateway on its client port, so plain HTTP is enough for the
put/get/delete probe: keys and values travel base64-encoded in JSON bodies.
Endpoints are tried in configured order; the first that answers /version is
used for the rest of the run.
"""

from __future__ import annotations

import base64
from collections.abc import Callable, Sequence
from typing import Any

import httpx

from stepstone.errors import KvStoreError
from stepstone.log import get_logger

logger = get_logger(__name__)


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _endpoint_url(endpoint: str) -> str:
    if endpoint.startswith(("http://", "https://")):
        return endpoint.rstrip("/")
    return f"http://{endpoint.rstrip('/')}"


class EtcdKvStore:
    def __init__(
        self,
        endpoints: Sequence[str],
        *,
        timeout: float = 10.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
    ) -> None:
        self.endpoints = [_endpoint_url(e) for e in endpoints]
        self._timeout = timeout
        self._client_factory = client_factory or self._default_client_factory
        self._client: httpx.AsyncClient | None = None
        self._base_url: str | None = None

    def _default_client_factory(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout)

    async def connect(self) -> None:
        if not self.endpoints:
            raise KvStoreError("no etcd endpoints configured")
        if self._client is None:
            self._client = self._client_factory()

        errors: list[str] = []
        for base_url in self.endpoints:
            try:
                response = await self._client.get(f"{base_url}/version")
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.debug("etcd endpoint %s unavailable: %s", base_url, exc)
                errors.append(f"{base_url}: {exc}")
                continue
            self._base_url = base_url
            return
        raise KvStoreError("could not reach any etcd endpoint (" + "; ".join(errors) + ")")

    async def _post(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        if self._client is None or self._base_url is None:
            raise KvStoreError("etcd store is not connected")
        try:
            response = await self._client.post(f"{self._base_url}{path}", json=body)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise KvStoreError(f"{path} failed: {exc}") from exc
        except ValueError as exc:
            raise KvStoreError(f"{path} returned invalid JSON: {exc}") from exc
        if isinstance(payload, dict) and payload.get("error"):
            raise KvStoreError(f"{path} failed: {payload.get('message') or payload['error']}")
        return payload

    async def put(self, key: bytes, value: bytes) -> None:
        await self._post("/v3/kv/put", {"key": _b64(key), "value": _b64(value)})

    async def get(self, key: bytes) -> bytes | None:
        payload = await self._post("/v3/kv/range", {"key": _b64(key)})
        kvs = payload.get("kvs") or []
        if not kvs:
            return None
        return base64.b64decode(kvs[0].get("value", ""))

    async def delete(self, key: bytes) -> None:
        await self._post("/v3/kv/deleterange", {"key": _b64(key)})

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
