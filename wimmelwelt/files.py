"""
Content-addressed file storage on top of a StorageClient.

Uploads arrive as base64 strings (optionally as data URLs). The service checks
them against a MIME allow-list and a size limit, stores them under a random key
inside a logical folder and hands back a FileReference that stays valid
regardless of which backend is active.
"""

from __future__ import annotations

import base64
import binascii
import logging
import mimetypes
import re
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional
from urllib.parse import quote, unquote

from wimmelwelt.errors import BadRequestError
from wimmelwelt.storage import StorageClient, StoredObject

logger = logging.getLogger(__name__)

LOCAL_MODE = "local"
S3_MODE = "s3"

LOCAL_URL_PREFIX = "/uploads/"
API_URL_PREFIX = "/api/files/"

DEFAULT_MAX_FILE_SIZE_BYTES = 25 * 1024 * 1024
DEFAULT_MIME_TYPE = "application/octet-stream"

ALLOWED_MIME_TYPES = frozenset(
    {
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "application/vnd.ms-powerpoint",
        "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    }
)
ALLOWED_MIME_PREFIXES = ("image/",)

_DATA_URL_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.IGNORECASE | re.DOTALL)


@dataclass(eq=False)
class FileReference:
    key: Optional[str]
    url: Optional[str]
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[int] = None
    uploaded_at: Optional[str] = None

    def __eq__(self, other):
        if not isinstance(other, FileReference):
            return NotImplemented
        return references_equal(self, other)

    def as_dict(self) -> dict:
        return {
            "key": self.key,
            "url": self.url,
            "fileName": self.file_name,
            "mimeType": self.mime_type,
            "size": self.size,
            "uploadedAt": self.uploaded_at,
        }


def references_equal(a: Optional[FileReference], b: Optional[FileReference]) -> bool:
    """Same file iff the keys match, or, when a key is missing, the urls match."""
    if not a or not b:
        return False
    if a.key and b.key:
        return a.key == b.key
    return bool(a.url and b.url and a.url == b.url)


def sanitize_folder(folder: Optional[str]) -> str:
    if not folder:
        return ""
    segments = [segment.strip() for segment in folder.split("/")]
    return "/".join(s for s in segments if s and s not in (".", ".."))


def split_base64_payload(data: Optional[str]) -> tuple[Optional[str], Optional[str]]:
    """Return ``(payload, declared_mime_type)`` for a raw or data-URL string."""
    if not data:
        return None, None
    match = _DATA_URL_RE.match(data)
    if match:
        return match.group(2), match.group(1)
    if "," in data:
        return data.split(",", 1)[1], None
    return data, None


def resolve_extension(original_name: Optional[str], fallback_extension: Optional[str]) -> str:
    name = original_name or ""
    if "." in name:
        extension = name.rsplit(".", 1)[1]
        if extension:
            return extension.lower()
    return (fallback_extension or "").lstrip(".").lower()


def resolve_mime_type(
    declared: Optional[str],
    original_name: Optional[str],
    fallback_extension: Optional[str],
) -> str:
    if declared:
        return declared.strip().lower()
    for extension in (
        resolve_extension(original_name, None),
        resolve_extension(None, fallback_extension),
    ):
        if extension:
            guessed = mimetypes.guess_type(f"file.{extension}")[0]
            if guessed:
                return guessed.lower()
    return DEFAULT_MIME_TYPE


def is_allowed_mime_type(mime_type: str) -> bool:
    return mime_type.startswith(ALLOWED_MIME_PREFIXES) or mime_type in ALLOWED_MIME_TYPES


class FileStorageService:
    """Stores, fetches and removes uploads through a single configured backend."""

    def __init__(
        self,
        backend: StorageClient,
        mode: str = S3_MODE,
        max_file_size_bytes: int = DEFAULT_MAX_FILE_SIZE_BYTES,
    ):
        if mode not in (LOCAL_MODE, S3_MODE):
            raise ValueError(f"Unknown storage mode: {mode!r}")
        self.backend = backend
        self.mode = mode
        self.max_file_size_bytes = max_file_size_bytes

    def build_url(self, key: Optional[str]) -> str:
        if not key:
            return ""
        prefix = LOCAL_URL_PREFIX if self.mode == LOCAL_MODE else API_URL_PREFIX
        return f"{prefix}{quote(key, safe='')}"

    def extract_key(self, value: Any) -> Optional[str]:
        if not value:
            return None
        if isinstance(value, str):
            return _key_from_url(value)
        if isinstance(value, FileReference):
            return value.key or _key_from_url(value.url)
        if isinstance(value, Mapping):
            return value.get("key") or _key_from_url(value.get("url"))
        return None

    def normalize(self, value: Any) -> Optional[FileReference]:
        if not value:
            return None
        if isinstance(value, str):
            key = _key_from_url(value)
            return FileReference(key=key, url=self.build_url(key) if key else value)
        if isinstance(value, FileReference):
            return FileReference(
                key=value.key,
                url=value.url or self.build_url(value.key) or None,
                file_name=value.file_name,
                mime_type=value.mime_type,
                size=value.size,
                uploaded_at=value.uploaded_at,
            )
        if isinstance(value, Mapping):
            key = value.get("key")
            return FileReference(
                key=key,
                url=value.get("url") or self.build_url(key) or None,
                file_name=value.get("fileName"),
                mime_type=value.get("mimeType"),
                size=value.get("size"),
                uploaded_at=value.get("uploadedAt"),
            )
        return None

    def store(
        self,
        data: Optional[str],
        original_name: Optional[str] = None,
        folder: Optional[str] = None,
        fallback_extension: Optional[str] = None,
    ) -> Optional[FileReference]:
        if not data or data == "null":
            return None
        payload, declared_mime = split_base64_payload(data)
        if not payload:
            return None

        mime_type = resolve_mime_type(declared_mime, original_name, fallback_extension)
        if not is_allowed_mime_type(mime_type):
            raise BadRequestError("Unsupported file format.")

        try:
            content = base64.b64decode(payload)
        except (binascii.Error, ValueError):
            raise BadRequestError("File payload is not valid base64.")
        if len(content) > self.max_file_size_bytes:
            raise BadRequestError("File exceeds the maximum size.")

        extension = resolve_extension(original_name, fallback_extension)
        generated_name = f"{uuid.uuid4()}{'.' + extension if extension else ''}"
        safe_folder = sanitize_folder(folder)
        key = f"{safe_folder}/{generated_name}" if safe_folder else generated_name

        stored_key = self.backend.put_object(key, content, mime_type)
        logger.debug("Stored %s (%d bytes, %s)", stored_key, len(content), mime_type)
        return FileReference(
            key=stored_key,
            url=self.build_url(stored_key),
            file_name=original_name or generated_name,
            mime_type=mime_type,
            size=len(content),
            uploaded_at=datetime.now(timezone.utc).isoformat(),
        )

    def remove(self, reference: Any) -> None:
        """Best-effort delete. Never raises."""
        key = self.extract_key(reference)
        if not key:
            if reference:
                logger.warning("Cannot resolve a storage key for %r, skipping removal", reference)
            return
        try:
            self.backend.delete_object(key)
        except FileNotFoundError:
            logger.debug("Stored file %s was already removed", key)
        except Exception:
            logger.warning("Failed to remove stored file: %s", key, exc_info=True)

    def fetch(self, key: Optional[str]) -> Optional[StoredObject]:
        if not key:
            return None
        return self.backend.get_object(key)


def _key_from_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return None
    for prefix in (API_URL_PREFIX, LOCAL_URL_PREFIX):
        if url.startswith(prefix):
            return unquote(url[len(prefix):]) or None
    return None
