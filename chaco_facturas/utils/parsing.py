"""Shared parsing utilities for Spanish-locale values rendered by the portals.

This module turns table cell text into typed values: amounts, dates, and the
composite invoice number that encodes supply point and account.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date

logger = logging.getLogger(__name__)

# Leading "<supply>-<account>-" of a composite invoice number
_INVOICE_PREFIX = re.compile(r"^(\d+)-(\d+)-")

# Dash-separated positions of a composite invoice number
_INVOICE_FIELDS = (
    "supply_number",
    "account_id",
    "group",
    "issue_date",
    "code",
    "letter",
    "point_of_sale",
    "sequence",
)


def parse_spanish_number(value_str: str) -> int | float | None:
    """Parse a number string using Spanish locale conventions.

    Spanish locale uses:
    - Comma (,) as decimal separator
    - Period (.) as thousands separator

    Examples
    --------
    - "37.741,29" -> 37741.29
    - "1.342" -> 1342
    - "$ 3,97" -> 3.97
    - "-62.982" -> -62982

    Parameters
    ----------
    value_str
        String representation of number in Spanish locale.

    Returns
    -------
    int | float | None
        Parsed numeric value, or None if parsing fails.
    """
    if not value_str or value_str.strip() == "":
        return None

    cleaned = value_str.strip()

    is_negative = cleaned.startswith("-")
    if is_negative:
        cleaned = cleaned[1:]

    # Remove currency symbols and blanks (but not digits, dots, commas)
    cleaned = re.sub(r"[^\d.,]", "", cleaned)

    if not cleaned:
        return None

    try:
        result: int | float
        if "," in cleaned:
            cleaned = cleaned.replace(".", "").replace(",", ".")
            result = float(cleaned)
        elif "." in cleaned:
            parts = cleaned.split(".")
            # Several dots, or exactly 3 digits after one dot, are thousands separators
            if len(parts) > 2 or len(parts[1]) == 3:
                result = int(cleaned.replace(".", ""))
            else:
                result = float(cleaned)
        else:
            result = int(cleaned)

        return -result if is_negative else result
    except ValueError:
        logger.warning("Could not parse number: %s", value_str)
        return None


def parse_amount(value_str: str | None) -> float:
    """Parse a monetary cell such as ``"37.741,29"``; blanks and garbage give ``0.0``."""
    parsed = parse_spanish_number(value_str or "")
    return float(parsed) if parsed is not None else 0.0


def parse_portal_date(value_str: str | None) -> date | None:
    """Parse a ``DD/MM/YYYY`` (or ``DD/MM/YY``) cell into a date.

    Parameters
    ----------
    value_str
        Cell text as rendered by the portal.

    Returns
    -------
    date | None
        Parsed date, or ``None`` for empty or malformed input.
    """
    if not value_str:
        return None

    parts = value_str.strip().split("/")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None

    day, month, year = (int(p) for p in parts)
    if len(parts[2]) == 2:
        year += 2000

    try:
        return date(year, month, day)
    except ValueError:
        logger.debug("Invalid calendar date: %s", value_str)
        return None


@dataclass(frozen=True)
class InvoiceNumber:
    """A composite invoice number split into its fixed positions.

    Example: ``"1-61141-1-23/06/25-3-B-1-84919364"`` is supply point ``1`` of
    account ``61141``, issued 23/06/25, letter ``B``, sequence ``84919364``.
    """

    supply_number: str
    account_id: str
    group: str
    issue_date: str
    code: str
    letter: str
    point_of_sale: str
    sequence: str


def parse_invoice_number(text: str) -> InvoiceNumber:
    """Split a composite invoice number by position.

    Parameters
    ----------
    text
        Full invoice number cell text.

    Returns
    -------
    InvoiceNumber
        Named segments.

    Raises
    ------
    ValueError
        If the text does not have exactly eight dash-separated segments or
        the leading supply/account segments are not numeric.
    """
    segments = text.strip().split("-")
    if len(segments) != len(_INVOICE_FIELDS):
        msg = f"Invoice number must have {len(_INVOICE_FIELDS)} segments: {text!r}"
        raise ValueError(msg)
    if not segments[0].isdigit() or not segments[1].isdigit():
        msg = f"Invoice number must start with numeric supply and account: {text!r}"
        raise ValueError(msg)
    return InvoiceNumber(**dict(zip(_INVOICE_FIELDS, segments, strict=True)))


def invoice_account_and_supply(text: str) -> tuple[str, str] | None:
    """Return ``(account_id, supply_number)`` from an invoice number prefix.

    Only the leading two segments are required, so truncated or unusual
    suffixes still yield the authoritative keys.
    """
    match = _INVOICE_PREFIX.match(text.strip())
    if match is None:
        return None
    supply_number, account_id = match.groups()
    return account_id, supply_number


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9._-]`` with ``_``."""
    return re.sub(r"[^a-zA-Z0-9\-_.]", "_", name)
