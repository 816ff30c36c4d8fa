"""Unit tests for the capability adapters in stepstone.backends.

No real services: the S3 adapter gets a stand-in boto3 client, the etcd
adapter talks to an httpx.MockTransport, and the SQL adapter is only
exercised up to URL handling.
"""

from __future__ import annotations

import asyncio
import base64
import io
import json

import httpx
import pytest
from botocore.exceptions import ClientError, ConnectTimeoutError, EndpointConnectionError

from stepstone.backends.etcd import EtcdKvStore
from stepstone.backends.s3 import S3ObjectStore
from stepstone.backends.sql import SqlAlchemyPool, redact_dsn, to_async_url
from stepstone.config.roles import StorageConfig
from stepstone.errors import ErrorKind, KvStoreError, ObjectStoreError, SqlStoreError, classify_storage_error

# ---------------------------------------------------------------------------
# S3
# ---------------------------------------------------------------------------


def _client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} message"}}, operation)


class StubS3Client:
    def __init__(self) -> None:
        self.objects: dict[tuple[str, str], bytes] = {}
        self.errors: dict[str, Exception] = {}
        self.list_calls: list[dict] = []

    def _maybe_fail(self, method: str) -> None:
        if method in self.errors:
            raise self.errors[method]

    def put_object(self, Bucket, Key, Body):  # noqa: N803
        self._maybe_fail("put_object")
        self.objects[(Bucket, Key)] = Body
        return {}

    def get_object(self, Bucket, Key):  # noqa: N803
        self._maybe_fail("get_object")
        if (Bucket, Key) not in self.objects:
            raise _client_error("NoSuchKey", "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def delete_object(self, Bucket, Key):  # noqa: N803
        self._maybe_fail("delete_object")
        self.objects.pop((Bucket, Key), None)
        return {}

    def list_objects_v2(self, **kwargs):
        self._maybe_fail("list_objects_v2")
        self.list_calls.append(kwargs)
        keys = sorted(k for b, k in self.objects if b == kwargs["Bucket"] and k.startswith(kwargs["Prefix"]))
        return {"Contents": [{"Key": k} for k in keys[: kwargs["MaxKeys"]]]}


def test_s3_round_trip_under_root_prefix():
    client = StubS3Client()
    store = S3ObjectStore(client, "greptime", root="/cluster-a/")

    async def scenario():
        await store.write("probe", b"payload")
        data = await store.read("probe")
        listed = await store.list()
        await store.delete("probe")
        return data, listed

    data, listed = asyncio.run(scenario())
    assert data == b"payload"
    assert listed == ["cluster-a/probe"]
    assert client.list_calls[0]["Prefix"] == "cluster-a/"
    assert client.objects == {}


@pytest.mark.parametrize(
    "code, kind",
    [
        ("AccessDenied", ErrorKind.ACCESS_DENIED),
        ("NoSuchBucket", ErrorKind.BUCKET_NOT_FOUND),
        ("InvalidAccessKeyId", ErrorKind.INVALID_ACCESS_KEY),
        ("SignatureDoesNotMatch", ErrorKind.INVALID_SECRET),
    ],
)
def test_s3_client_errors_carry_structured_kind(code, kind):
    client = StubS3Client()
    client.errors["put_object"] = _client_error(code, "PutObject")
    store = S3ObjectStore(client, "greptime")

    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(store.write("k", b"v"))
    assert info.value.kind is kind
    assert info.value.code == code


def test_s3_missing_key_is_not_found():
    store = S3ObjectStore(StubS3Client(), "greptime")
    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(store.read("missing"))
    assert classify_storage_error(info.value) is ErrorKind.NOT_FOUND


def test_s3_unknown_code_is_other():
    client = StubS3Client()
    client.errors["list_objects_v2"] = _client_error("SlowDown", "ListObjectsV2")
    store = S3ObjectStore(client, "greptime")
    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(store.list())
    assert info.value.kind is ErrorKind.OTHER
    assert info.value.code == "SlowDown"


def test_s3_unknown_code_uses_vendor_message():
    client = StubS3Client()
    client.errors["get_object"] = ClientError(
        {"Error": {"Code": "XMinioObjectMissing", "Message": "Object not found"}}, "GetObject"
    )
    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(S3ObjectStore(client, "greptime").read("k"))
    assert info.value.kind is ErrorKind.NOT_FOUND


def test_s3_transport_error_is_wrapped():
    client = StubS3Client()
    client.errors["put_object"] = EndpointConnectionError(endpoint_url="http://minio:9000")
    with pytest.raises(ObjectStoreError, match="PUT failed"):
        asyncio.run(S3ObjectStore(client, "greptime").write("k", b"v"))


@pytest.mark.parametrize(
    "url",
    [
        "http://minio:9000/greptime/stepstone-test/nonexistent-9f404c1e",
        "http://minio:14030/greptime/k",
        "http://minio:9000/logs-404/k",
        "http://minio:9000/forbidden-archive/k",
    ],
)
def test_s3_transport_error_is_never_classified_from_url(url):
    client = StubS3Client()
    client.errors["get_object"] = EndpointConnectionError(endpoint_url=url)
    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(S3ObjectStore(client, "greptime").read("k"))
    assert info.value.kind is ErrorKind.OTHER
    assert classify_storage_error(info.value) is ErrorKind.OTHER


def test_s3_connect_timeout_is_timeout():
    client = StubS3Client()
    client.errors["put_object"] = ConnectTimeoutError(endpoint_url="http://minio:9000/greptime/k")
    with pytest.raises(ObjectStoreError) as info:
        asyncio.run(S3ObjectStore(client, "greptime").write("k", b"v"))
    assert info.value.kind is ErrorKind.TIMEOUT


def test_s3_from_config_requires_bucket():
    with pytest.raises(ObjectStoreError, match="bucket"):
        S3ObjectStore.from_config(StorageConfig(type="S3"))


def test_s3_from_config_builds_client():
    store = S3ObjectStore.from_config(
        StorageConfig(
            type="S3",
            bucket="greptime",
            root="data",
            endpoint="http://127.0.0.1:9000",
            region="us-east-1",
            access_key_id="minio",
            secret_access_key="minio123",
        ),
        timeout=2.0,
    )
    assert store.bucket == "greptime"
    assert store.root == "data"


# ---------------------------------------------------------------------------
# etcd
# ---------------------------------------------------------------------------


def _etcd_transport(data: dict[bytes, bytes], *, down: set[str] = frozenset()):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host in down:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.path == "/version":
            return httpx.Response(200, json={"etcdserver": "3.5.9"})
        body = json.loads(request.content)
        key = base64.b64decode(body["key"])
        if request.url.path == "/v3/kv/put":
            data[key] = base64.b64decode(body["value"])
            return httpx.Response(200, json={"header": {}})
        if request.url.path == "/v3/kv/range":
            if key not in data:
                return httpx.Response(200, json={"header": {}})
            return httpx.Response(
                200, json={"kvs": [{"key": body["key"], "value": base64.b64encode(data[key]).decode()}]}
            )
        if request.url.path == "/v3/kv/deleterange":
            data.pop(key, None)
            return httpx.Response(200, json={"deleted": "1"})
        return httpx.Response(404, json={"error": "not found", "code": 5})

    return httpx.MockTransport(handler)


def test_etcd_put_get_delete():
    data: dict[bytes, bytes] = {}
    transport = _etcd_transport(data)
    store = EtcdKvStore(["etcd:2379"], client_factory=lambda: httpx.AsyncClient(transport=transport))

    async def scenario():
        await store.connect()
        await store.put(b"k", b"v")
        got = await store.get(b"k")
        await store.delete(b"k")
        missing = await store.get(b"k")
        await store.close()
        return got, missing

    got, missing = asyncio.run(scenario())
    assert got == b"v"
    assert missing is None
    assert data == {}


def test_etcd_falls_through_to_next_endpoint():
    transport = _etcd_transport({}, down={"etcd-0"})
    store = EtcdKvStore(
        ["etcd-0:2379", "http://etcd-1:2379"],
        client_factory=lambda: httpx.AsyncClient(transport=transport),
    )
    asyncio.run(store.connect())
    assert store._base_url == "http://etcd-1:2379"


def test_etcd_all_endpoints_down():
    transport = _etcd_transport({}, down={"etcd-0", "etcd-1"})
    store = EtcdKvStore(
        ["etcd-0:2379", "etcd-1:2379"], client_factory=lambda: httpx.AsyncClient(transport=transport)
    )
    with pytest.raises(KvStoreError, match="could not reach any etcd endpoint"):
        asyncio.run(store.connect())


def test_etcd_gateway_error_payload_raises():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/version":
            return httpx.Response(200, json={})
        return httpx.Response(200, json={"error": "etcdserver: permission denied", "code": 7})

    store = EtcdKvStore(
        ["etcd:2379"], client_factory=lambda: httpx.AsyncClient(transport=httpx.MockTransport(handler))
    )

    async def scenario():
        await store.connect()
        await store.put(b"k", b"v")

    with pytest.raises(KvStoreError, match="permission denied"):
        asyncio.run(scenario())


def test_etcd_requires_connect():
    with pytest.raises(KvStoreError, match="not connected"):
        asyncio.run(EtcdKvStore(["etcd:2379"]).get(b"k"))


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "dsn, driver",
    [
        ("postgres://u:p@db:5432/meta", "postgresql+asyncpg"),
        ("postgresql://u:p@db/meta", "postgresql+asyncpg"),
        ("mysql://u:p@db:3306/meta", "mysql+aiomysql"),
    ],
)
def test_to_async_url(dsn, driver):
    url = to_async_url(dsn)
    assert url.drivername == driver
    assert url.host == "db"


def test_to_async_url_rejects_other_families():
    with pytest.raises(SqlStoreError, match="unsupported"):
        to_async_url("sqlite:///meta.db")


def test_to_async_url_rejects_garbage():
    with pytest.raises(SqlStoreError, match="invalid database URL"):
        to_async_url("not a url")


def test_redact_dsn():
    assert "hunter2" not in redact_dsn("postgres://greptime:hunter2@db:5432/meta")
    assert redact_dsn("::::") == "<unparseable DSN>"


def test_pool_requires_connect():
    with pytest.raises(SqlStoreError, match="not connected"):
        asyncio.run(SqlAlchemyPool("postgres://u:p@db/meta").scalar("SELECT 1"))
