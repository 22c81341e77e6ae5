"""
EchoLog Backend — Document Text Extraction
============================================

What:  Reads plain text out of an uploaded document, chosen by extension.
How:   .pdf via pypdf (page by page), .docx via python-docx (paragraph by
       paragraph), legacy Word 97-2003 .doc via unstructured, .txt decoded
       as UTF-8. Parsing is blocking, so it runs in the default executor.
Who:   Called by TranscriptionCoordinator for document sources.

unstructured converts .doc to .docx with LibreOffice, so `soffice` must be
on PATH for .doc uploads; without it they fail as ExternalServiceError.
"""

import asyncio
import logging
import shutil
import zipfile
from pathlib import Path
from typing import Callable, Dict

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from echolog.exceptions import ExternalServiceError, UnsupportedFormatError, ValidationError

logger = logging.getLogger(__name__)


def _read_pdf(path: Path) -> str:
    reader = PdfReader(str(path))
    pages = []
    for page in reader.pages:
        text = page.extract_text() or ""
        if text.strip():
            pages.append(text)
    return "\n\n".join(pages)


def _read_docx(path: Path) -> str:
    doc = Document(str(path))
    return "\n".join(para.text for para in doc.paragraphs if para.text.strip())


def _read_doc(path: Path) -> str:
    if shutil.which("soffice") is None:
        raise ExternalServiceError(
            service="LibreOffice",
            upstream_message="soffice was not found on PATH",
            message="Legacy .doc documents cannot be converted on this server.",
        )
    from unstructured.partition.doc import partition_doc

    elements = partition_doc(filename=str(path))
    return "\n".join(el.text for el in elements if el.text and el.text.strip())


def _read_txt(path: Path) -> str:
    # utf-8-sig drops a leading BOM written by some editors
    return path.read_text(encoding="utf-8-sig")


class DocumentExtractor:
    """Extension-dispatched text extraction."""

    def __init__(self):
        self.readers: Dict[str, Callable[[Path], str]] = {
            "pdf": _read_pdf,
            "docx": _read_docx,
            "doc": _read_doc,
            "txt": _read_txt,
        }

    @property
    def supported_extensions(self):
        return sorted(self.readers)

    async def extract(self, path: Path, extension: str) -> str:
        """
        Returns the document's text (possibly empty or whitespace-only).

        Raises:
            UnsupportedFormatError: extension has no reader
            ValidationError:        the file is corrupt or not the declared type
            ExternalServiceError:   .doc conversion is unavailable (no LibreOffice)
        """
        ext = extension.lower().lstrip(".")
        reader = self.readers.get(ext)
        if reader is None:
            raise UnsupportedFormatError(f".{ext}", allowed=[f".{e}" for e in self.supported_extensions])

        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, reader, Path(path))
        except (
            PdfReadError,
            PackageNotFoundError,
            zipfile.BadZipFile,
            UnicodeDecodeError,
            FileNotFoundError,
            ValueError,
        ) as e:
            logger.warning("Could not read .%s document %s: %s", ext, Path(path).name, str(e))
            raise ValidationError(
                message=f"The .{ext} document could not be read.",
                field="document",
                context={"error": str(e)},
            ) from e

        logger.info("Extracted %d chars from .%s document", len(text), ext)
        return text
