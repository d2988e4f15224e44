"""
File parser utilities for knowledge uploads and attachments.

Supports: .md / .txt, .csv, .json, .pdf, .docx
"""

import base64
import binascii
import csv
import io
import logging
import mimetypes
from pathlib import Path

from docx import Document
from pypdf import PdfReader

from models.message import Attachment

logger = logging.getLogger(__name__)

# Mime types whose extension mimetypes.guess_extension gets wrong or misses
_MIME_EXTENSIONS = {
    "text/plain": ".txt",
    "text/markdown": ".md",
    "text/csv": ".csv",
    "application/json": ".json",
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
}


def extract_text_from_file(data: bytes, filename: str) -> str:
    """
    Extract raw text from file content.

    Args:
        data: Raw file bytes.
        filename: Used to infer the file type from its extension.

    Returns:
        Extracted text content.
    """
    ext = Path(filename).suffix.lower()

    if ext == ".pdf":
        return _extract_pdf(data)

    if ext == ".docx":
        return _extract_docx(data)

    if ext == ".csv":
        return _extract_csv(data)

    return data.decode("utf-8", errors="replace")


def _extract_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = []
        for page in reader.pages:
            text = page.extract_text()
            if text:
                pages.append(text)
        return "\n\n".join(pages)
    except Exception as e:
        logger.warning("PDF extraction failed: %s", e)
        return f"[PDF extraction error: {e}]"


def _extract_docx(data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
        paragraphs = [p.text for p in doc.paragraphs if p.text.strip()]
        return "\n\n".join(paragraphs)
    except Exception as e:
        logger.warning("Word extraction failed: %s", e)
        return f"[Word extraction error: {e}]"


def _extract_csv(data: bytes) -> str:
    text = data.decode("utf-8", errors="replace")
    rows = list(csv.DictReader(io.StringIO(text)))
    if not rows:
        return ""
    # Format as readable text for the model
    lines = []
    for i, row in enumerate(rows, 1):
        parts = [f"{k}: {v}" for k, v in row.items() if v and v.strip()]
        lines.append(f"Row {i}: " + " | ".join(parts))
    return "\n".join(lines)


def attachment_extension(attachment: Attachment) -> str:
    """File extension from the attachment name, falling back to its mime type."""
    ext = Path(attachment.name).suffix.lower()
    if ext:
        return ext
    return _MIME_EXTENSIONS.get(attachment.mime_type) or mimetypes.guess_extension(attachment.mime_type) or ""


def extract_text_from_attachment(attachment: Attachment) -> str:
    """Decode a base64 attachment and extract its text.  Raises ValueError on bad base64."""
    try:
        data = base64.b64decode(attachment.data, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Attachment {attachment.name!r} is not valid base64") from exc
    return extract_text_from_file(data, f"upload{attachment_extension(attachment)}")


def is_image(attachment: Attachment) -> bool:
    return attachment.mime_type.startswith("image/")
