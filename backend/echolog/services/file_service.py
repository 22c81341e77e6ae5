"""
EchoLog Backend — Upload Validation and Temporary Staging
===========================================================

What:  Validates uploaded audio and documents, and stages each upload in a
       single-owner temporary file for the duration of one request.
How:   Extension, declared content type and size are checked before anything
       is written. `staged()` is an async context manager: the temp file is
       written on entry and removed exactly once on exit, whichever way the
       block exits.
Who:   Called by TranscriptionCoordinator and the audio routes.

Accepted formats:
    Audio:     .wav → WAV, .mp3 → MP3
    Documents: .pdf, .docx, .doc, .txt
"""

import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

import aiofiles
import aiofiles.os

from echolog.config import settings
from echolog.exceptions import FileStorageError, UnsupportedFormatError, ValidationError

logger = logging.getLogger(__name__)

# ── Allowed File Types ────────────────────────────────────────────────────
AUDIO_FORMATS = {
    ".wav": "WAV",
    ".mp3": "MP3",
}

ALLOWED_AUDIO_MIME_TYPES = {
    "audio/wav",
    "audio/x-wav",
    "audio/wave",
    "audio/vnd.wave",
    "audio/mpeg",
    "audio/mp3",
}

# Browsers and curl send these when they cannot tell; the extension decides then
GENERIC_MIME_TYPES = {"", "application/octet-stream"}

DOCUMENT_EXTENSIONS = {".pdf", ".docx", ".doc", ".txt"}

AUDIO_CONTENT_TYPES = {
    "WAV": "audio/wav",
    "MP3": "audio/mpeg",
}


class FileService:
    """
    Upload validation plus temp-file lifecycle.

    Temp files live under `temp_dir` with UUID names; user input never
    reaches the path.
    """

    def __init__(self, temp_dir: Optional[str] = None):
        self.temp_dir = Path(temp_dir or settings.temp_dir).resolve()
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with temp_dir=%s", self.temp_dir)

    # ── Validation ────────────────────────────────────────────────────────
    def validate_size(self, actual_size: int, max_size: int) -> None:
        if actual_size <= 0:
            raise ValidationError(message="The uploaded file is empty.", field="file")

        if actual_size > max_size:
            max_mb = max_size / (1024 * 1024)
            raise ValidationError(
                message=(
                    f"File size ({actual_size / (1024 * 1024):.1f}MB) "
                    f"exceeds maximum of {max_mb:.0f}MB."
                ),
                field="file",
                context={"max_size_mb": max_mb, "actual_size": actual_size},
            )

    def validate_audio(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
    ) -> str:
        """
        Checks an audio upload and returns its format ("WAV" or "MP3").

        Raises:
            ValidationError:        missing file or size out of range
            UnsupportedFormatError: extension or declared type not accepted
        """
        if not filename:
            raise ValidationError(message="No audio file was provided.", field="audio")

        ext = Path(filename).suffix.lower()
        if ext not in AUDIO_FORMATS:
            raise UnsupportedFormatError(ext, allowed=sorted(AUDIO_FORMATS))

        declared = (content_type or "").split(";")[0].strip().lower()
        if declared not in ALLOWED_AUDIO_MIME_TYPES and declared not in GENERIC_MIME_TYPES:
            raise UnsupportedFormatError(
                declared,
                allowed=sorted(ALLOWED_AUDIO_MIME_TYPES),
                context={"filename": filename},
            )

        self.validate_size(size, settings.max_audio_size)
        return AUDIO_FORMATS[ext]

    def validate_document(self, filename: Optional[str], size: int) -> str:
        """Checks a document upload and returns its extension without the dot."""
        if not filename:
            raise ValidationError(message="No document was provided.", field="document")

        ext = Path(filename).suffix.lower()
        if ext not in DOCUMENT_EXTENSIONS:
            raise UnsupportedFormatError(ext, allowed=sorted(DOCUMENT_EXTENSIONS))

        self.validate_size(size, settings.max_document_size)
        return ext.lstrip(".")

    # ── Temporary Staging ─────────────────────────────────────────────────
    async def write_temp(self, content: bytes, extension: str) -> Path:
        path = self.temp_dir / f"{uuid.uuid4()}{extension}"
        try:
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to stage upload at %s: %s", path, str(e))
            raise FileStorageError(
                message="Failed to save the uploaded file. Please try again.",
                context={"path": str(path), "os_error": str(e)},
            ) from e

        logger.debug("Staged upload %s (%d bytes)", path.name, len(content))
        return path

    async def read_file(self, path: Path) -> bytes:
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def cleanup_file(self, path: Path) -> None:
        """
        Removes a staged file. Never raises: a missing file is logged at
        debug level, any other OS error as a warning.
        """
        try:
            await aiofiles.os.remove(path)
            logger.debug("Cleaned up temp file: %s", Path(path).name)
        except FileNotFoundError:
            logger.debug("Cleanup: temp file already gone: %s", Path(path).name)
        except OSError as e:
            logger.warning("Failed to clean up temp file %s: %s", path, str(e))

    @asynccontextmanager
    async def staged(self, content: bytes, filename: str) -> AsyncIterator[Path]:
        """
        Stage an upload for the lifetime of the `async with` block.

        Example:
            async with file_service.staged(data, "memo.wav") as path:
                ...  # path is removed when the block exits, even on error
        """
        path = await self.write_temp(content, Path(filename).suffix.lower())
        try:
            yield path
        finally:
            await self.cleanup_file(path)
