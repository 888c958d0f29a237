"""Shared utility functions for chaco_facturas package."""

from chaco_facturas.utils.parsing import (
    InvoiceNumber,
    invoice_account_and_supply,
    parse_amount,
    parse_invoice_number,
    parse_portal_date,
    parse_spanish_number,
    sanitize_filename,
)

__all__ = [
    "InvoiceNumber",
    "invoice_account_and_supply",
    "parse_amount",
    "parse_invoice_number",
    "parse_portal_date",
    "parse_spanish_number",
    "sanitize_filename",
]
