"""
PDF text extraction.
"""
import io
import logging

import pdfplumber

logging.getLogger("pdfminer").setLevel(logging.ERROR)

log = logging.getLogger(__name__)


class ExtractionError(Exception):
    pass


def extract_text(pdf_bytes: bytes) -> str:
    """Return the text of every page, joined by spaces.

    Raises ExtractionError when the bytes cannot be parsed as a PDF.
    """
    try:
        with pdfplumber.open(io.BytesIO(pdf_bytes)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise ExtractionError(f"Error reading PDF: {e}") from e

    text = " ".join(p.strip() for p in pages if p.strip())
    log.debug("Extracted %d characters from %d pages", len(text), len(pages))
    return text
