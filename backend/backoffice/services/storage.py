"""Blob storage for invoice PDFs and knowledge-base documents.

Two backends share one async interface: a local filesystem store (default,
also used by the tests) and an S3-compatible store. Blocking I/O runs in a
worker thread so no event-loop time is spent on disk or network.
"""

import asyncio
import re
from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta
from functools import lru_cache
from pathlib import Path
from typing import Any
from urllib.parse import quote

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError
from jose import JWTError, jwt

from backoffice.core.config import settings

logger = structlog.get_logger()

SIGNED_URL_PATH = "/api/v1/storage/signed"


class BlobStoreError(Exception):
    """Base class for blob store failures."""


class BlobNotFound(BlobStoreError):
    """No object at the requested path."""


class BlobExists(BlobStoreError):
    """Upload refused because an object is already there and upsert is off."""


def clean_filename(filename: str) -> str:
    """Make a user-supplied filename safe to use as a path segment."""
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", filename.strip())
    return cleaned.strip("._") or "file"


class BlobStore(ABC):
    """Async object store keyed by ``(bucket, path)``."""

    backend_name = "base"

    @abstractmethod
    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> str:
        ...

    @abstractmethod
    async def download(self, bucket: str, path: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, bucket: str, path: str) -> None:
        ...

    @abstractmethod
    async def list(self, bucket: str, prefix: str = "") -> list[str]:
        ...

    @abstractmethod
    async def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        ...


class LocalBlobStore(BlobStore):
    """Filesystem-backed store rooted at ``root/<bucket>/<path>``.

    Signed URLs are short-lived JWTs served by the storage download route.
    """

    backend_name = "local"

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    def _path_for(self, bucket: str, path: str) -> Path:
        base = (self._root / bucket).resolve()
        target = (base / path).resolve()
        if base not in target.parents:
            raise BlobNotFound(f"{bucket}/{path}")
        return target

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> str:
        target = self._path_for(bucket, path)

        def _write() -> None:
            if target.exists() and not upsert:
                raise BlobExists(f"{bucket}/{path}")
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        await asyncio.to_thread(_write)
        logger.debug("blob_uploaded", bucket=bucket, path=path, size=len(data))
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        target = self._path_for(bucket, path)

        def _read() -> bytes:
            if not target.is_file():
                raise BlobNotFound(f"{bucket}/{path}")
            return target.read_bytes()

        return await asyncio.to_thread(_read)

    async def delete(self, bucket: str, path: str) -> None:
        target = self._path_for(bucket, path)

        def _remove() -> None:
            if not target.is_file():
                raise BlobNotFound(f"{bucket}/{path}")
            target.unlink()

        await asyncio.to_thread(_remove)
        logger.debug("blob_deleted", bucket=bucket, path=path)

    async def list(self, bucket: str, prefix: str = "") -> list[str]:
        base = self._root / bucket

        def _walk() -> list[str]:
            if not base.exists():
                return []
            keys = (p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file())
            return sorted(k for k in keys if k.startswith(prefix))

        return await asyncio.to_thread(_walk)

    async def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        expire = datetime.now(UTC) + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"bucket": bucket, "path": path, "exp": expire},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM,
        )
        return f"{SIGNED_URL_PATH}?token={quote(token)}"


def read_signed_token(token: str) -> tuple[str, str]:
    """Decode a local signed-URL token into ``(bucket, path)``.

    Raises:
        BlobNotFound: Token is invalid or expired.
    """
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as exc:
        raise BlobNotFound("invalid or expired link") from exc
    bucket, path = payload.get("bucket"), payload.get("path")
    if not bucket or not path:
        raise BlobNotFound("invalid link")
    return str(bucket), str(path)


_MISSING_CODES = ("404", "NoSuchKey", "NotFound")


def _is_missing(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") in _MISSING_CODES


def _store_error(exc: ClientError | BotoCoreError, bucket: str, path: str) -> BlobStoreError:
    """Map an SDK failure onto the blob store error types."""
    if isinstance(exc, ClientError) and _is_missing(exc):
        return BlobNotFound(f"{bucket}/{path}")
    return BlobStoreError(str(exc))


class S3BlobStore(BlobStore):
    """S3-compatible store; each bucket name maps to a real bucket.

    SDK errors never leave this class: a missing key raises ``BlobNotFound``
    and anything else ``BlobStoreError``.
    """

    backend_name = "s3"

    def __init__(
        self,
        endpoint_url: str | None = None,
        region: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        client: Any = None,
    ) -> None:
        if client is None:
            session = boto3.session.Session(
                aws_access_key_id=access_key or None,
                aws_secret_access_key=secret_key or None,
                region_name=region or None,
            )
            client = session.client("s3", endpoint_url=endpoint_url or None)
        self._client = client

    def _exists(self, bucket: str, path: str) -> bool:
        try:
            self._client.head_object(Bucket=bucket, Key=path)
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise
        return True

    async def upload(
        self,
        bucket: str,
        path: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        upsert: bool = False,
    ) -> str:
        def _put() -> None:
            try:
                if not upsert and self._exists(bucket, path):
                    raise BlobExists(f"{bucket}/{path}")
                self._client.put_object(
                    Bucket=bucket, Key=path, Body=data, ContentType=content_type
                )
            except (ClientError, BotoCoreError) as exc:
                raise BlobStoreError(str(exc)) from exc

        await asyncio.to_thread(_put)
        logger.debug("blob_uploaded", bucket=bucket, path=path, size=len(data))
        return path

    async def download(self, bucket: str, path: str) -> bytes:
        def _get() -> bytes:
            try:
                response = self._client.get_object(Bucket=bucket, Key=path)
                return bytes(response["Body"].read())
            except (ClientError, BotoCoreError) as exc:
                raise _store_error(exc, bucket, path) from exc

        return await asyncio.to_thread(_get)

    async def delete(self, bucket: str, path: str) -> None:
        def _remove() -> None:
            try:
                self._client.delete_object(Bucket=bucket, Key=path)
            except (ClientError, BotoCoreError) as exc:
                raise _store_error(exc, bucket, path) from exc

        await asyncio.to_thread(_remove)
        logger.debug("blob_deleted", bucket=bucket, path=path)

    async def list(self, bucket: str, prefix: str = "") -> list[str]:
        def _list() -> list[str]:
            keys: list[str] = []
            try:
                paginator = self._client.get_paginator("list_objects_v2")
                for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                    keys.extend(obj["Key"] for obj in page.get("Contents", []))
            except (ClientError, BotoCoreError) as exc:
                raise BlobStoreError(str(exc)) from exc
            return sorted(keys)

        return await asyncio.to_thread(_list)

    async def signed_url(self, bucket: str, path: str, expires_in: int) -> str:
        def _sign() -> str:
            try:
                return str(
                    self._client.generate_presigned_url(
                        "get_object",
                        Params={"Bucket": bucket, "Key": path},
                        ExpiresIn=expires_in,
                    )
                )
            except (ClientError, BotoCoreError) as exc:
                raise BlobStoreError(str(exc)) from exc

        return await asyncio.to_thread(_sign)


@lru_cache
def get_blob_store() -> BlobStore:
    """Process-wide blob store selected by ``STORAGE_BACKEND``."""
    if settings.STORAGE_BACKEND == "s3":
        return S3BlobStore(
            endpoint_url=settings.S3_ENDPOINT_URL,
            region=settings.S3_REGION,
            access_key=settings.S3_ACCESS_KEY,
            secret_key=settings.S3_SECRET_KEY,
        )
    return LocalBlobStore(settings.STORAGE_ROOT)
