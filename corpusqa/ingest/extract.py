"""Plain-text extraction for ingestion: text/* decoded verbatim, PDF page text via pypdf."""

import io
import mimetypes
from pathlib import Path

from loguru import logger

from corpusqa.ingest.models import Document
from corpusqa.utils.exceptions import UnsupportedContent, ValidationError

PDF_MIME = "application/pdf"


def guess_mime_type(path: str | Path) -> str:
    """MIME type from the file extension; empty string when unknown."""
    path = Path(path)
    if path.suffix.lower() in (".md", ".markdown"):
        return "text/markdown"
    mime, _ = mimetypes.guess_type(path.name)
    return mime or ""


def is_pdf(mime_type: str, source_name: str = "") -> bool:
    return (mime_type or "").lower() == PDF_MIME or (source_name or "").lower().endswith(".pdf")


def is_text(mime_type: str) -> bool:
    return (mime_type or "").lower().startswith("text/")


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text of every page, one newline after each page."""
    from pypdf import PdfReader

    reader = PdfReader(io.BytesIO(data))
    parts: list[str] = []
    for page in reader.pages:
        parts.append((page.extract_text() or "") + "\n")
    logger.debug(f"Extracted {len(reader.pages)} PDF pages")
    return "".join(parts)


def read_document_bytes(document: Document) -> bytes:
    if document.content is not None:
        return document.content
    if document.path is None:
        raise ValidationError(f"Document {document.document_id} has neither content nor path", field="content")
    return Path(document.path).read_bytes()


def extract_text(document: Document) -> str:
    """Return the document's plain text or raise UnsupportedContent for other types."""
    if is_pdf(document.mime_type, document.source_name):
        data = read_document_bytes(document)
        try:
            return extract_pdf_text(data)
        except Exception as e:
            raise UnsupportedContent(
                document.mime_type or PDF_MIME, source=document.source_name, reason=f"{type(e).__name__}: {e}"
            ) from e
    if is_text(document.mime_type):
        return read_document_bytes(document).decode("utf-8", errors="replace")
    raise UnsupportedContent(document.mime_type, source=document.source_name)
