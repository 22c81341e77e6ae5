"""
EchoLog Backend — Blob Store Tests
====================================

What we test:
    ✅ Local backend: put/get/delete/exists, naming, path traversal
    ✅ Missing blobs raise BlobNotFoundError
    ✅ Local signed links: token names the blob and expires
    ✅ GCS backend: refs, signed URLs and error translation (mocked client)
    ✅ A GCS upload that cannot be signed is deleted again
"""

import time
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions
from google.auth import exceptions as google_auth_exceptions
from jose import jwt

from echolog.config import settings
from echolog.exceptions import (
    BlobNotFoundError,
    ExternalServiceError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from echolog.services.blob_store import (
    GCSBlobStore,
    LocalBlobStore,
    new_blob_name,
    sanitize_filename,
)


class TestNaming:
    @pytest.mark.parametrize(
        "filename, expected",
        [
            ("meeting.wav", "meeting.wav"),
            ("team meeting (1).mp3", "team_meeting_1_.mp3"),
            ("../../etc/passwd", "passwd"),
            ("", "upload"),
            ("...", "upload"),
        ],
    )
    def test_sanitize(self, filename, expected):
        assert sanitize_filename(filename) == expected

    def test_blob_names_are_unique(self):
        assert new_blob_name("a.wav") != new_blob_name("a.wav")
        assert new_blob_name("a.wav").endswith("-a.wav")


class TestLocalBlobStore:
    @pytest.fixture
    def store(self, tmp_path):
        return LocalBlobStore(storage_root=str(tmp_path / "blobs"), prefix="audio")

    @pytest.mark.asyncio
    async def test_put_get_delete(self, store):
        stored = await store.put(b"RIFF....", "memo.wav", "audio/wav")

        assert stored.remote_ref == f"audio/{stored.name}"
        assert stored.signed_url.startswith(f"/api/audio/signed/{stored.name}?token=")
        assert stored.size == 8
        assert await store.exists(stored.remote_ref)
        assert await store.get(stored.remote_ref) == b"RIFF...."

        await store.delete(stored.remote_ref)
        assert not await store.exists(stored.remote_ref)

    @pytest.mark.asyncio
    async def test_missing_blob(self, store):
        with pytest.raises(BlobNotFoundError):
            await store.get("audio/nothing-here.wav")
        with pytest.raises(BlobNotFoundError):
            await store.delete("audio/nothing-here.wav")

    @pytest.mark.asyncio
    async def test_path_traversal_is_blocked(self, store):
        with pytest.raises(ValidationError):
            await store.get("../../etc/passwd")

    def test_local_store_does_not_redirect(self, store):
        assert store.supports_redirect is False

    @pytest.mark.asyncio
    async def test_signed_link_reads_without_bearer(self, store):
        stored = await store.put(b"RIFF....", "memo.wav", "audio/wav")
        token = stored.signed_url.split("?token=", 1)[1]

        assert await store.read_signed(stored.name, token) == b"RIFF...."
        assert jwt.get_unverified_claims(token)["sub"] == stored.name

    @pytest.mark.asyncio
    async def test_signed_link_is_bound_to_one_blob(self, store):
        first = await store.put(b"one", "a.wav", "audio/wav")
        second = await store.put(b"two", "b.wav", "audio/wav")
        token = first.signed_url.split("?token=", 1)[1]

        with pytest.raises(UnauthenticatedError):
            await store.read_signed(second.name, token)

    @pytest.mark.asyncio
    async def test_expired_or_forged_link(self, store):
        stored = await store.put(b"data", "memo.wav", "audio/wav")
        expired = jwt.encode(
            {"sub": stored.name, "exp": int(time.time()) - 10}, store.signing_key, algorithm="HS256"
        )
        forged = jwt.encode({"sub": stored.name}, "someone-elses-key", algorithm="HS256")

        for token in (expired, forged, "garbage"):
            with pytest.raises(UnauthenticatedError):
                await store.read_signed(stored.name, token)

    def test_signing_key_is_required(self, tmp_path):
        with patch.object(settings, "jwt_secret", ""):
            with pytest.raises(ValueError):
                LocalBlobStore(storage_root=str(tmp_path), prefix="audio")


class TestGCSBlobStore:
    @pytest.fixture
    def gcs(self):
        client = MagicMock()
        bucket = MagicMock()
        blob = MagicMock()
        client.bucket.return_value = bucket
        bucket.blob.return_value = blob
        blob.generate_signed_url.return_value = "https://storage.googleapis.com/signed"
        store = GCSBlobStore(bucket_name="echolog-audio", prefix="audio", client=client)
        return store, bucket, blob

    @pytest.mark.asyncio
    async def test_put_returns_gs_ref_and_signed_url(self, gcs):
        store, bucket, blob = gcs

        stored = await store.put(b"data", "memo.mp3", "audio/mpeg")

        assert stored.remote_ref == f"gs://echolog-audio/audio/{stored.name}"
        assert stored.signed_url == "https://storage.googleapis.com/signed"
        blob.upload_from_string.assert_called_once_with(b"data", content_type="audio/mpeg")
        bucket.blob.assert_any_call(f"audio/{stored.name}")

    @pytest.mark.asyncio
    async def test_missing_object_is_blob_not_found(self, gcs):
        store, _, blob = gcs
        blob.delete.side_effect = google_exceptions.NotFound("gone")

        with pytest.raises(BlobNotFoundError):
            await store.delete("gs://echolog-audio/audio/x.wav")

    @pytest.mark.asyncio
    async def test_api_failure_is_external_service_error(self, gcs):
        store, _, blob = gcs
        blob.download_as_bytes.side_effect = google_exceptions.ServiceUnavailable("backend error")

        with pytest.raises(ExternalServiceError) as exc_info:
            await store.get("gs://echolog-audio/audio/x.wav")
        assert "backend error" in exc_info.value.details

    @pytest.mark.asyncio
    async def test_unsignable_upload_is_removed(self, gcs):
        store, _, blob = gcs
        blob.generate_signed_url.side_effect = AttributeError(
            "you need a private key to sign credentials"
        )

        with pytest.raises(ExternalServiceError) as exc_info:
            await store.put(b"data", "memo.wav", "audio/wav")

        assert "private key" in exc_info.value.details
        blob.upload_from_string.assert_called_once()
        blob.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_unsignable_upload_cleanup_failure_keeps_sign_error(self, gcs):
        store, _, blob = gcs
        blob.generate_signed_url.side_effect = AttributeError("no private key")
        blob.delete.side_effect = google_exceptions.Forbidden("no delete permission")

        with pytest.raises(ExternalServiceError) as exc_info:
            await store.put(b"data", "memo.wav", "audio/wav")
        assert exc_info.value.details == "no private key"

    @pytest.mark.asyncio
    async def test_credential_failure_is_external_service_error(self, gcs):
        store, _, blob = gcs
        blob.download_as_bytes.side_effect = google_auth_exceptions.RefreshError("token expired")

        with pytest.raises(ExternalServiceError):
            await store.get("gs://echolog-audio/audio/x.wav")

    @pytest.mark.asyncio
    async def test_ref_from_another_bucket_is_rejected(self, gcs):
        store, _, _ = gcs
        with pytest.raises(ValidationError):
            await store.get("gs://someone-else/audio/x.wav")

    def test_gcs_supports_redirect(self, gcs):
        assert gcs[0].supports_redirect is True

    @pytest.mark.asyncio
    async def test_gcs_does_not_serve_signed_links_itself(self, gcs):
        with pytest.raises(NotFoundError):
            await gcs[0].read_signed("x.wav", "token")
