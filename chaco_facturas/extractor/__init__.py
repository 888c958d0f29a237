"""Extractor module: text extraction from downloaded invoice PDFs."""

from chaco_facturas.extractor.pdf_text import extract_text_from_bytes

__all__ = ["extract_text_from_bytes"]
