"""
EchoLog Backend — Blob Store
==============================

What:  Object storage for uploaded audio behind one interface, with a Google
       Cloud Storage backend and a local-filesystem backend.
How:   Exactly one backend is configured per process (BLOB_BACKEND). There
       is no fallback from one backend to the other mid-request: a failing
       store raises, and the caller decides what that means.
Who:   Used by TranscriptionCoordinator, the audio routes and the speech
       service (inline audio for non-GCS references).

Blob naming:
    <prefix>/<uuid>-<sanitized original filename>
    e.g. audio/6f1c...-team_meeting.wav

Remote references:
    GCS:   gs://<bucket>/audio/6f1c...-team_meeting.wav
    Local: audio/6f1c...-team_meeting.wav  (relative to storage_root)

Missing blobs raise BlobNotFoundError; every other backend failure raises
ExternalServiceError (GCS) or FileStorageError (local). A GCS upload whose
signed URL cannot be generated is deleted again before put() raises.
"""

import asyncio
import logging
import re
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import aiofiles
import aiofiles.os
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from google.cloud import storage
from jose import JWTError, jwt

from echolog.config import settings
from echolog.exceptions import (
    BlobNotFoundError,
    ExternalServiceError,
    FileStorageError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredBlob:
    """Result of a successful put()."""

    name: str
    remote_ref: str
    signed_url: str
    size: int


def sanitize_filename(filename: str) -> str:
    """Reduces a client-supplied filename to characters safe in a URL path."""
    base = Path(filename or "").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "upload"


def new_blob_name(filename: str) -> str:
    return f"{uuid.uuid4()}-{sanitize_filename(filename)}"


class BlobStore(ABC):
    """Abstract blob store."""

    # True when signed URLs point at the store itself (clients can be redirected)
    supports_redirect: bool = False

    @abstractmethod
    async def put(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        ...

    @abstractmethod
    async def get(self, remote_ref: str) -> bytes:
        ...

    @abstractmethod
    async def delete(self, remote_ref: str) -> None:
        ...

    @abstractmethod
    async def signed_url(self, remote_ref: str, ttl_seconds: Optional[int] = None) -> str:
        ...

    @abstractmethod
    async def exists(self, remote_ref: str) -> bool:
        ...

    async def read_signed(self, name: str, token: str) -> bytes:
        """Serves a blob named in a signed link this store issued itself."""
        raise NotFoundError(resource="Audio file", resource_id=name)

    @staticmethod
    def name_from_ref(remote_ref: str) -> str:
        return remote_ref.rstrip("/").rsplit("/", 1)[-1]


# ── Google Cloud Storage ──────────────────────────────────────────────────
class GCSBlobStore(BlobStore):
    """
    Google Cloud Storage backend.

    The google-cloud-storage client is synchronous; every SDK call runs in
    the default executor so the event loop is never blocked.
    """

    supports_redirect = True

    def __init__(
        self,
        bucket_name: Optional[str] = None,
        prefix: Optional[str] = None,
        client: Optional[storage.Client] = None,
    ):
        self.bucket_name = bucket_name or settings.gcs_bucket_name
        self.prefix = (prefix if prefix is not None else settings.gcs_object_prefix).strip("/")
        self.client = client or storage.Client()
        self.bucket = self.client.bucket(self.bucket_name)
        logger.info("GCSBlobStore initialized for bucket gs://%s", self.bucket_name)

    def _object_path(self, remote_ref: str) -> str:
        expected = f"gs://{self.bucket_name}/"
        if not remote_ref.startswith(expected):
            raise ValidationError(
                message="Audio reference does not belong to this storage bucket.",
                context={"remote_ref": remote_ref, "bucket": self.bucket_name},
            )
        return remote_ref[len(expected):]

    async def _run(self, operation: str, remote_ref: str, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except google_exceptions.NotFound as e:
            raise BlobNotFoundError(
                self.name_from_ref(remote_ref), context={"remote_ref": remote_ref}
            ) from e
        except (google_exceptions.GoogleAPIError, google_auth_exceptions.GoogleAuthError) as e:
            logger.error("GCS %s failed for %s: %s", operation, remote_ref, str(e))
            raise ExternalServiceError(
                service="Cloud Storage",
                upstream_message=str(e),
                context={"operation": operation, "remote_ref": remote_ref},
            ) from e

    async def put(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        name = new_blob_name(filename)
        object_path = f"{self.prefix}/{name}" if self.prefix else name
        remote_ref = f"gs://{self.bucket_name}/{object_path}"
        blob = self.bucket.blob(object_path)

        await self._run(
            "upload",
            remote_ref,
            lambda: blob.upload_from_string(data, content_type=content_type),
        )
        logger.info("Uploaded to GCS: %s (%d bytes)", remote_ref, len(data))

        try:
            url = await self.signed_url(remote_ref)
        except ExternalServiceError:
            await self._discard(blob, remote_ref)
            raise
        return StoredBlob(name=name, remote_ref=remote_ref, signed_url=url, size=len(data))

    async def _discard(self, blob, remote_ref: str) -> None:
        try:
            await self._run("delete", remote_ref, blob.delete)
            logger.info("Deleted unsignable upload %s", remote_ref)
        except (BlobNotFoundError, ExternalServiceError) as e:
            logger.error("Could not delete unsignable upload %s: %s", remote_ref, e.message)

    async def get(self, remote_ref: str) -> bytes:
        blob = self.bucket.blob(self._object_path(remote_ref))
        return await self._run("download", remote_ref, blob.download_as_bytes)

    async def delete(self, remote_ref: str) -> None:
        blob = self.bucket.blob(self._object_path(remote_ref))
        await self._run("delete", remote_ref, blob.delete)
        logger.info("Deleted from GCS: %s", remote_ref)

    async def signed_url(self, remote_ref: str, ttl_seconds: Optional[int] = None) -> str:
        ttl = ttl_seconds or settings.signed_url_ttl_seconds
        blob = self.bucket.blob(self._object_path(remote_ref))
        try:
            return await self._run(
                "sign",
                remote_ref,
                lambda: blob.generate_signed_url(
                    version="v4", expiration=timedelta(seconds=ttl), method="GET"
                ),
            )
        except AttributeError as e:
            # Token-only credentials (GCE, Cloud Run) have no private key to sign with
            logger.error("GCS sign failed for %s: %s", remote_ref, str(e))
            raise ExternalServiceError(
                service="Cloud Storage",
                upstream_message=str(e),
                message="Could not create a signed URL for the audio file.",
                context={"operation": "sign", "remote_ref": remote_ref},
            ) from e

    async def exists(self, remote_ref: str) -> bool:
        blob = self.bucket.blob(self._object_path(remote_ref))
        return await self._run("exists", remote_ref, blob.exists)


# ── Local Filesystem ──────────────────────────────────────────────────────
class LocalBlobStore(BlobStore):
    """
    Filesystem backend for development and tests.

    Signed URLs point at /api/audio/signed/<name>?token=<jwt>. The token is
    an HS256 JWT naming the blob and expiring like a GCS signed URL, so a
    browser <audio> element can load it without a Bearer header.
    """

    def __init__(
        self,
        storage_root: Optional[str] = None,
        prefix: Optional[str] = None,
        url_base: str = "/api/audio/signed",
        signing_key: Optional[str] = None,
    ):
        self.signing_key = signing_key or settings.jwt_secret
        if not self.signing_key:
            raise ValueError("JWT_SECRET is required to sign local audio links")
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.prefix = (prefix if prefix is not None else settings.gcs_object_prefix).strip("/")
        self.url_base = url_base.rstrip("/")
        (self.storage_root / self.prefix).mkdir(parents=True, exist_ok=True)
        logger.info("LocalBlobStore initialized with storage_root=%s", self.storage_root)

    def _resolve(self, remote_ref: str) -> Path:
        resolved = (self.storage_root / remote_ref).resolve()
        # Path traversal check
        if not resolved.is_relative_to(self.storage_root):
            logger.warning("Path traversal attempt blocked: %s", remote_ref)
            raise ValidationError(message="Invalid audio reference.", context={"remote_ref": remote_ref})
        return resolved

    async def put(self, data: bytes, filename: str, content_type: str) -> StoredBlob:
        name = new_blob_name(filename)
        remote_ref = f"{self.prefix}/{name}" if self.prefix else name
        path = self._resolve(remote_ref)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            logger.error("Failed to store blob at %s: %s", path, str(e))
            raise FileStorageError(
                message="Failed to save audio file. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            ) from e

        logger.info("Blob stored: %s (%d bytes)", remote_ref, len(data))
        url = await self.signed_url(remote_ref)
        return StoredBlob(name=name, remote_ref=remote_ref, signed_url=url, size=len(data))

    async def get(self, remote_ref: str) -> bytes:
        path = self._resolve(remote_ref)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError as e:
            raise BlobNotFoundError(self.name_from_ref(remote_ref)) from e
        except OSError as e:
            raise FileStorageError(
                message="Failed to read audio file.",
                context={"path": str(path), "os_error": str(e)},
            ) from e

    async def delete(self, remote_ref: str) -> None:
        path = self._resolve(remote_ref)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError as e:
            raise BlobNotFoundError(self.name_from_ref(remote_ref)) from e
        except OSError as e:
            raise FileStorageError(
                message="Failed to delete audio file.",
                context={"path": str(path), "os_error": str(e)},
            ) from e
        logger.info("Blob deleted: %s", remote_ref)

    async def signed_url(self, remote_ref: str, ttl_seconds: Optional[int] = None) -> str:
        name = self.name_from_ref(remote_ref)
        expires = datetime.now(timezone.utc) + timedelta(
            seconds=ttl_seconds or settings.signed_url_ttl_seconds
        )
        token = jwt.encode(
            {"sub": name, "exp": int(expires.timestamp())}, self.signing_key, algorithm="HS256"
        )
        return f"{self.url_base}/{name}?token={token}"

    async def read_signed(self, name: str, token: str) -> bytes:
        try:
            claims = jwt.decode(token, self.signing_key, algorithms=["HS256"])
        except JWTError as e:
            raise UnauthenticatedError("The audio link is invalid or has expired.") from e
        if claims.get("sub") != name:
            raise UnauthenticatedError("The audio link is invalid or has expired.")
        remote_ref = f"{self.prefix}/{name}" if self.prefix else name
        return await self.get(remote_ref)

    async def exists(self, remote_ref: str) -> bool:
        return self._resolve(remote_ref).is_file()
