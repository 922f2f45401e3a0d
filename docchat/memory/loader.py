# docchat/memory/loader.py

"""
Text extraction for uploaded files.

Architecture contract:
loader → chunker → embedder → vector_store

Supports:
- PDF files (pypdf, pages joined by blank lines)
- Plain text / markdown (UTF-8, undecodable bytes replaced)
"""

import io
import logging
import os

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from docchat.config import ALLOWED_FILE_EXTENSIONS, MAX_FILE_SIZE_MB
from docchat.errors import InputValidationError, IngestionError

logger = logging.getLogger(__name__)


def file_extension(filename: str) -> str:
    return os.path.splitext(filename or "")[1].lower()


def validate_upload(filename: str, content: bytes):

    extension = file_extension(filename)

    if extension not in ALLOWED_FILE_EXTENSIONS:
        raise InputValidationError(
            f"Unsupported file type '{extension or filename}'. "
            f"Allowed: {', '.join(ALLOWED_FILE_EXTENSIONS)}"
        )

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise InputValidationError(f"File too large: {size_mb:.2f}MB")

    if not content:
        raise InputValidationError("Uploaded file is empty.")


def load_pdf_bytes(content: bytes) -> str:

    try:
        reader = PdfReader(io.BytesIO(content))
    except (PdfReadError, ValueError) as e:
        raise IngestionError(f"Could not read PDF: {e}") from e

    pages = []

    for page_number, page in enumerate(reader.pages, 1):

        text = (page.extract_text() or "").strip()

        if text:
            pages.append(" ".join(text.split()))

    logger.info(
        "PDF text extracted",
        extra={"pages": len(reader.pages), "pages_with_text": len(pages)},
    )

    return "\n\n".join(pages)


def load_text(filename: str, content: bytes) -> str:

    if file_extension(filename) == ".pdf":
        return load_pdf_bytes(content)

    return content.decode("utf-8", errors="replace")
