"""PDF text extraction for stored invoices using pdfplumber."""

from __future__ import annotations

import io

import pdfplumber
from pdfminer.pdfparser import PDFSyntaxError
from pdfplumber.utils.exceptions import PdfminerException

from chaco_facturas.config import setup_logging

logger = setup_logging(__name__)


def extract_text_from_bytes(content: bytes) -> str | None:
    """Extract the text of every page of an in-memory PDF.

    Parameters
    ----------
    content : bytes
        Raw PDF bytes.

    Returns
    -------
    str | None
        Page texts joined by blank lines, or ``None`` if the PDF cannot be
        parsed.
    """
    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            texts = [page.extract_text() or "" for page in pdf.pages]
    except (PdfminerException, PDFSyntaxError) as e:
        logger.warning("Could not extract text from PDF: %s", e)
        return None

    logger.debug("Extracted text from %d pages", len(texts))
    return "\n\n".join(texts).strip()
