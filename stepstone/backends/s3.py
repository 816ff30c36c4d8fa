"""
stepstone/backends/s3.py — S3-compatible ObjectStore over boto3.

boto3 is synchronous; each call runs in a worker thread via asyncio.to_thread.
A boto3 client is thread-safe, so one client is shared by the sequential
round-trip steps and the concurrent benchmark writers alike.
"""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError, ConnectTimeoutError, ReadTimeoutError

from stepstone.config.roles import StorageConfig
from stepstone.errors import ErrorKind, ObjectStoreError, classify_error_text

# botocore error codes → ErrorKind. Anything unlisted is classified from the
# code and vendor message alone, never from the request URL.
_CODE_KINDS: dict[str, ErrorKind] = {
    "AccessDenied": ErrorKind.ACCESS_DENIED,
    "AllAccessDisabled": ErrorKind.ACCESS_DENIED,
    "403": ErrorKind.ACCESS_DENIED,
    "NoSuchBucket": ErrorKind.BUCKET_NOT_FOUND,
    "InvalidAccessKeyId": ErrorKind.INVALID_ACCESS_KEY,
    "SignatureDoesNotMatch": ErrorKind.INVALID_SECRET,
    "NoSuchKey": ErrorKind.NOT_FOUND,
    "404": ErrorKind.NOT_FOUND,
    "NotFound": ErrorKind.NOT_FOUND,
}


def _to_store_error(exc: Exception, action: str) -> ObjectStoreError:
    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        vendor_message = str(error.get("Message") or "")
        message = vendor_message or str(exc)
        return ObjectStoreError(
            f"{action} failed: {code}: {message}" if code else f"{action} failed: {message}",
            kind=_CODE_KINDS.get(code) or classify_error_text(f"{code} {vendor_message}"),
            code=code or None,
        )
    # Transport error text embeds the request URL; never classify it.
    kind = ErrorKind.TIMEOUT if isinstance(exc, (ConnectTimeoutError, ReadTimeoutError)) else ErrorKind.OTHER
    return ObjectStoreError(f"{action} failed: {exc}", kind=kind)


class S3ObjectStore:
    """ObjectStore bound to one bucket and root prefix."""

    def __init__(self, client: Any, bucket: str, root: str = "") -> None:
        self._client = client
        self.bucket = bucket
        self.root = root.strip("/")

    @classmethod
    def from_config(cls, storage: StorageConfig, *, timeout: float = 30.0) -> S3ObjectStore:
        """Build a client from the datanode storage section.

        Raises:
            ObjectStoreError: missing bucket or the client could not be created.
        """
        if not storage.bucket:
            raise ObjectStoreError("S3 storage requires a bucket name")
        try:
            client = boto3.client(
                "s3",
                aws_access_key_id=storage.access_key_id or None,
                aws_secret_access_key=storage.secret_access_key or None,
                endpoint_url=storage.endpoint or None,
                region_name=storage.region or None,
                config=Config(
                    connect_timeout=timeout,
                    read_timeout=timeout,
                    retries={"max_attempts": 1},
                    s3={"addressing_style": "path"} if storage.endpoint else None,
                ),
            )
        except (BotoCoreError, ValueError) as exc:
            raise ObjectStoreError(f"could not create S3 client: {exc}") from exc
        return cls(client, storage.bucket, storage.root or "")

    def _full_key(self, key: str) -> str:
        return f"{self.root}/{key}" if self.root else key

    async def _call(self, action: str, method: str, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except (ClientError, BotoCoreError) as exc:
            raise _to_store_error(exc, action) from exc

    async def write(self, key: str, data: bytes) -> None:
        await self._call("PUT", "put_object", Bucket=self.bucket, Key=self._full_key(key), Body=data)

    async def read(self, key: str) -> bytes:
        response = await self._call("GET", "get_object", Bucket=self.bucket, Key=self._full_key(key))
        try:
            return await asyncio.to_thread(response["Body"].read)
        except (BotoCoreError, OSError) as exc:
            raise ObjectStoreError(f"GET body read failed: {exc}", kind=ErrorKind.OTHER) from exc

    async def delete(self, key: str) -> None:
        await self._call("DELETE", "delete_object", Bucket=self.bucket, Key=self._full_key(key))

    async def list(self, prefix: str = "") -> list[str]:
        full_prefix = self._full_key(prefix) if prefix else (f"{self.root}/" if self.root else "")
        response = await self._call(
            "LIST", "list_objects_v2", Bucket=self.bucket, Prefix=full_prefix, MaxKeys=10
        )
        return [obj["Key"] for obj in response.get("Contents", [])]
