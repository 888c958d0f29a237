"""Scraper module for the Chaco utility portals.

Components:
- PortalSession: browser lifecycle, SAMEEP login, authenticated fetch
- EntityDiscoverer: accounts, supply points, and statement rows from page markup
- Navigator: clicks between account list, account, and statements pages
- DocumentCapture: document popup reference capture
- SecheepCollector: SECHEEP virtual office invoice listing
"""

from chaco_facturas.scraper.browser import BrowserSession, PortalSession, create_browser, create_browser_context
from chaco_facturas.scraper.capture import DocumentCapture
from chaco_facturas.scraper.discovery import EntityDiscoverer, StatementRow
from chaco_facturas.scraper.download import fetch_document, validate_pdf
from chaco_facturas.scraper.navigator import Navigator, statement_link_ordinal
from chaco_facturas.scraper.secheep import SecheepCollector

__all__ = [
    "BrowserSession",
    "DocumentCapture",
    "EntityDiscoverer",
    "Navigator",
    "PortalSession",
    "SecheepCollector",
    "StatementRow",
    "create_browser",
    "create_browser_context",
    "fetch_document",
    "statement_link_ordinal",
    "validate_pdf",
]
