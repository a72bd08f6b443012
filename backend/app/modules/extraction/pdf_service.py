"""Upload intake: validate a deck upload and read it in memory with PyMuPDF."""

from __future__ import annotations

import base64
from dataclasses import dataclass

import fitz  # PyMuPDF
import structlog
from fastapi import UploadFile

from app.core.config import settings
from app.core.errors import InvalidInputError, PayloadTooLargeError

logger = structlog.get_logger()

PDF_MIME_TYPE = "application/pdf"


@dataclass(frozen=True)
class UploadedFile:
    """A PDF held in memory for the lifetime of one request."""

    content: bytes
    content_type: str
    filename: str
    page_count: int = 0
    text: str = ""

    @property
    def size_mb(self) -> float:
        return len(self.content) / (1024 * 1024)

    def to_base64(self) -> str:
        return base64.b64encode(self.content).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.content_type};base64,{self.to_base64()}"


def load_pdf(content: bytes, filename: str, content_type: str = PDF_MIME_TYPE) -> UploadedFile:
    """Open *content* as a PDF and collect its text layer. Raises 400/413 on bad input."""
    if not content:
        raise InvalidInputError("Uploaded file is empty")
    if len(content) > settings.max_file_size_bytes:
        size_mb = len(content) / (1024 * 1024)
        raise PayloadTooLargeError(
            f"File too large: {size_mb:.1f} MB (max {settings.extraction_max_file_size_mb} MB)."
        )

    try:
        doc = fitz.open(stream=content, filetype="pdf")
    except Exception as exc:
        logger.info("PDF could not be opened", filename=filename, error=str(exc))
        raise InvalidInputError("File is not a readable PDF") from exc

    try:
        if doc.needs_pass:
            raise InvalidInputError("Password-protected PDFs are not supported")
        page_texts = [(page.get_text("text") or "").strip() for page in doc]
        page_count = len(doc)
    finally:
        doc.close()

    text = "\n\n".join(t for t in page_texts if t)
    logger.info(
        "PDF loaded",
        filename=filename,
        pages=page_count,
        size_mb=round(len(content) / (1024 * 1024), 2),
        text_chars=len(text),
    )
    return UploadedFile(
        content=content,
        content_type=content_type,
        filename=filename,
        page_count=page_count,
        text=text,
    )


async def read_upload(file: UploadFile | None) -> UploadedFile:
    """Validate the multipart ``file`` field and read it into memory."""
    if file is None:
        raise InvalidInputError("No file provided")
    if file.content_type != PDF_MIME_TYPE:
        raise InvalidInputError(
            "Only PDF files are supported",
            details={"content_type": file.content_type},
        )

    content = await file.read()
    return load_pdf(content, file.filename or "document.pdf", file.content_type)
