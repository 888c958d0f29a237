"""Authenticated document fetch and validation utilities.

Documents are generated per session: the URL exposed by the popup frame
only works with the cookies of the browser that opened it. This module
replays those cookies through an ``httpx.Client`` so the binary fetch
happens outside the page, then checks the payload really is a PDF.

Functions
---------
fetch_document : Blocking GET with the browser cookie jar
validate_pdf : Size and ``%PDF`` signature check

Notes
-----
The server commonly answers an expired or malformed request with an HTML
error page labelled ``application/pdf``, so the content type is never
trusted; only the leading bytes are.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from chaco_facturas.config import setup_logging
from chaco_facturas.errors import NavigationTimeout, ValidationFailed

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = setup_logging(__name__)

PDF_SIGNATURE = b"%PDF"


@dataclass
class FetchedDocument:
    """Raw result of a document fetch."""

    content: bytes
    content_type: str
    status_code: int


def build_cookie_jar(browser_cookies: Iterable[dict[str, Any]]) -> httpx.Cookies:
    """Convert Playwright ``context.cookies()`` entries into an httpx jar."""
    jar = httpx.Cookies()
    for cookie in browser_cookies:
        jar.set(
            cookie["name"],
            cookie["value"],
            domain=cookie.get("domain", ""),
            path=cookie.get("path", "/"),
        )
    return jar


def fetch_document(
    url: str,
    browser_cookies: Iterable[dict[str, Any]],
    timeout: float = 60.0,
    transport: httpx.BaseTransport | None = None,
) -> FetchedDocument:
    """Download a session-scoped document synchronously.

    Parameters
    ----------
    url : str
        Absolute document URL resolved from the popup frame.
    browser_cookies : Iterable[dict[str, Any]]
        Cookies of the browser context that produced ``url``.
    timeout : float, optional
        HTTP request timeout in seconds. Default 60.0.
    transport : httpx.BaseTransport | None, optional
        Transport override (tests use ``httpx.MockTransport``).

    Returns
    -------
    FetchedDocument
        Body, content type, and status code.

    Raises
    ------
    NavigationTimeout
        If the request times out, fails at the transport level, or the
        server answers 4xx/5xx.
    """
    logger.debug("Fetching document: %s", url[:80])

    try:
        with httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            cookies=build_cookie_jar(browser_cookies),
            transport=transport,
        ) as client:
            response = client.get(url)
            response.raise_for_status()  # Raise on 4xx/5xx
    except httpx.HTTPError as e:
        msg = f"Document fetch failed: {e}"
        raise NavigationTimeout(msg) from e

    logger.debug("Fetched %d bytes (%s)", len(response.content), response.headers.get("content-type", ""))
    return FetchedDocument(
        content=response.content,
        content_type=response.headers.get("content-type", ""),
        status_code=response.status_code,
    )


def validate_pdf(content: bytes, min_size: int = 1000) -> None:
    """Check that ``content`` looks like a real PDF.

    Raises
    ------
    ValidationFailed
        If the payload is smaller than ``min_size`` bytes or does not start
        with the ``%PDF`` signature.
    """
    if len(content) < min_size:
        msg = f"Document too small: {len(content)} bytes (minimum {min_size})"
        raise ValidationFailed(msg)
    if not content.startswith(PDF_SIGNATURE):
        msg = f"Document does not start with {PDF_SIGNATURE!r}: {content[:16]!r}"
        raise ValidationFailed(msg)
