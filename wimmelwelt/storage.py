"""
Storage backends: local disk, S3-compatible object storage and in-memory testing.
"""

from __future__ import annotations

import mimetypes
import os
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

CHUNK_SIZE = 64 * 1024
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_LEADING_PARENT_RE = re.compile(r"^(\.\./)+")


@dataclass
class StoredObject:
    """An object read back from storage, ready to be streamed."""

    body: Iterator[bytes]
    content_type: str
    content_length: Optional[int]


class StorageClient(Protocol):
    """Defines the operations the file service needs from a backend."""

    def put_object(self, key: str, body: bytes, content_type: str) -> str:
        """Write ``body`` and return the key it was stored under."""
        ...

    def get_object(self, key: str) -> Optional[StoredObject]:
        ...

    def delete_object(self, key: str) -> None:
        """Delete ``key``. Raises FileNotFoundError when nothing is stored there."""
        ...


def sanitize_key(key: str) -> str:
    """Collapse ``.``/``..`` segments and strip anything that climbs above the root."""
    normalized = posixpath.normpath(key.replace("\\", "/"))
    normalized = _LEADING_PARENT_RE.sub("", normalized).lstrip("/")
    if normalized in ("", ".", ".."):
        return ""
    return normalized


def _iter_file(path: Path) -> Iterator[bytes]:
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(CHUNK_SIZE)
            if not chunk:
                break
            yield chunk


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def put_object(self, key: str, body: bytes, content_type: str) -> str:
        self.stored_objects[key] = (bytes(body), content_type)
        return key

    def get_object(self, key: str) -> Optional[StoredObject]:
        stored = self.stored_objects.get(key)
        if stored is None:
            return None
        body, content_type = stored
        return StoredObject(
            body=iter([body]), content_type=content_type, content_length=len(body)
        )

    def delete_object(self, key: str) -> None:
        if key not in self.stored_objects:
            raise FileNotFoundError(key)
        del self.stored_objects[key]


@dataclass
class LocalStorageClient:
    """Stores files below ``root_dir`` on the local filesystem."""

    root_dir: str

    @property
    def root(self) -> Path:
        return Path(self.root_dir).resolve()

    def resolve_path(self, key: str) -> tuple[str, Path]:
        sanitized = sanitize_key(key)
        if not sanitized:
            raise ValueError(f"Invalid storage key: {key!r}")
        root = self.root
        absolute = (root / sanitized).resolve()
        if os.path.commonpath([root, absolute]) != str(root):
            raise ValueError(f"Storage key escapes upload root: {key!r}")
        return sanitized, absolute

    def put_object(self, key: str, body: bytes, content_type: str) -> str:
        sanitized, absolute = self.resolve_path(key)
        absolute.parent.mkdir(parents=True, exist_ok=True)
        absolute.write_bytes(body)
        return sanitized

    def get_object(self, key: str) -> Optional[StoredObject]:
        try:
            _, absolute = self.resolve_path(key)
        except ValueError:
            return None
        try:
            size = absolute.stat().st_size
        except FileNotFoundError:
            return None
        if not absolute.is_file():
            return None
        content_type = mimetypes.guess_type(absolute.name)[0] or DEFAULT_CONTENT_TYPE
        return StoredObject(
            body=_iter_file(absolute), content_type=content_type, content_length=size
        )

    def delete_object(self, key: str) -> None:
        _, absolute = self.resolve_path(key)
        absolute.unlink()


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client.
    """

    bucket: str
    region: str
    endpoint: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    max_attempts: int = 3

    def __post_init__(self):
        config = Config(
            signature_version="s3v4",
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"max_attempts": self.max_attempts, "mode": "standard"},
        )
        credentials = {}
        if self.access_key_id:
            credentials = {
                "aws_access_key_id": self.access_key_id,
                "aws_secret_access_key": self.secret_access_key,
            }
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region,
            config=config,
            **credentials,
        )

    def put_object(self, key: str, body: bytes, content_type: str) -> str:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
            ContentLength=len(body),
        )
        return key

    def get_object(self, key: str) -> Optional[StoredObject]:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_not_found(exc):
                return None
            raise
        return StoredObject(
            body=response["Body"].iter_chunks(CHUNK_SIZE),
            content_type=response.get("ContentType") or DEFAULT_CONTENT_TYPE,
            content_length=response.get("ContentLength"),
        )

    def delete_object(self, key: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key)


def _is_not_found(exc: ClientError) -> bool:
    error_code = exc.response.get("Error", {}).get("Code")
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return error_code in ("NoSuchKey", "404", "NotFound") or status == 404
