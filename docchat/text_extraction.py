import io
from typing import List

from pypdf import PdfReader

from . import config
from .errors import UnsupportedFileTypeError


def read_text_from_pdf(data: bytes) -> str:
    pdf = PdfReader(io.BytesIO(data))
    parts = []
    for page in pdf.pages:
        parts.append(page.extract_text() or "")
    return "\n".join(parts)


def read_text_from_txt(data: bytes, encoding="utf-8") -> str:
    return data.decode(encoding, errors="ignore")


def extract_text(data: bytes, mime_type: str) -> str:
    """
    Extract plain text from an uploaded file.

    PDFs go through pypdf, any ``text/*`` type is decoded as UTF-8.
    Anything else raises UnsupportedFileTypeError.
    """
    mime = (mime_type or "").lower()
    if mime == "application/pdf":
        return read_text_from_pdf(data)
    if mime.startswith("text/"):
        return read_text_from_txt(data)
    raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type or 'unknown'}")


def truncate_text(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + config.TRUNCATION_MARKER


def chunk_text(
    text: str,
    size: int = config.CHUNK_SIZE,
    overlap: int = config.CHUNK_OVERLAP,
) -> List[str]:
    """
    Split text into overlapping windows of at most ``size`` characters.

    A window that does not reach the end of the text is cut after its last
    period, or failing that at its last space, when that boundary lies in
    the final 20% of the window. The next window starts ``overlap``
    characters before the end of the cut. Chunks of 15 characters or
    fewer (after trimming) are dropped.
    """
    chunks = []
    n = len(text)
    start = 0

    while start < n:
        end = start + size
        chunk = text[start:end]

        if end < n:
            last_period = chunk.rfind(".")
            last_space = chunk.rfind(" ")
            if last_period > size * 0.8:
                chunk = chunk[: last_period + 1]
            elif last_space > size * 0.8:
                chunk = chunk[:last_space]

        chunks.append(chunk.strip())

        # The window reached the end of the text
        if end >= n:
            break

        # Always move forward, even when overlap >= chunk length
        start += max(len(chunk) - overlap, 1)

    return [c for c in chunks if len(c) > config.MIN_CHUNK_LENGTH]
