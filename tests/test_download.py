"""Tests for document fetch, PDF validation, text extraction, and login."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import Credentials, PortalSettings
from chaco_facturas.errors import LoginError, LoginFailureReason, NavigationTimeout, ValidationFailed
from chaco_facturas.extractor.pdf_text import extract_text_from_bytes
from chaco_facturas.scraper.browser import PortalSession
from chaco_facturas.scraper.download import build_cookie_jar, fetch_document, validate_pdf
from tests.conftest import PDF_BYTES

DOC_URL = "https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.apdfsaldo?A1B2C3"
BROWSER_COOKIES = [
    {"name": "JSESSIONID", "value": "abc123", "domain": "apps8.chaco.gob.ar", "path": "/"},
    {"name": "GX_SESSION_ID", "value": "xyz", "domain": "apps8.chaco.gob.ar", "path": "/sameepweb"},
]


class TestFetchDocument:
    """Tests for cookie-bearing fetch."""

    def test_session_cookies_forwarded(self) -> None:
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["cookie"] = request.headers.get("cookie", "")
            return httpx.Response(200, content=PDF_BYTES, headers={"content-type": "application/pdf"})

        fetched = fetch_document(DOC_URL, BROWSER_COOKIES, transport=httpx.MockTransport(handler))

        assert fetched.content == PDF_BYTES
        assert fetched.status_code == 200
        assert fetched.content_type == "application/pdf"
        assert "JSESSIONID=abc123" in seen["cookie"]
        assert "GX_SESSION_ID=xyz" in seen["cookie"]

    def test_server_error_raises(self) -> None:
        transport = httpx.MockTransport(lambda request: httpx.Response(500, text="boom"))
        with pytest.raises(NavigationTimeout, match="fetch failed"):
            fetch_document(DOC_URL, BROWSER_COOKIES, transport=transport)

    def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            msg = "timed out"
            raise httpx.ReadTimeout(msg, request=request)

        with pytest.raises(NavigationTimeout):
            fetch_document(DOC_URL, BROWSER_COOKIES, transport=httpx.MockTransport(handler))

    def test_cookie_jar(self) -> None:
        jar = build_cookie_jar(BROWSER_COOKIES)
        assert jar.get("JSESSIONID", domain="apps8.chaco.gob.ar") == "abc123"


class TestValidatePdf:
    """Tests for the size and signature check."""

    def test_valid_pdf(self) -> None:
        validate_pdf(PDF_BYTES)

    def test_html_error_page(self) -> None:
        """HTML served with a PDF content type is still rejected."""
        with pytest.raises(ValidationFailed, match="%PDF"):
            validate_pdf(b"<html>" + b" " * 2000)

    def test_too_small(self) -> None:
        with pytest.raises(ValidationFailed, match="too small"):
            validate_pdf(b"%PDF-1.4")

    def test_custom_minimum(self) -> None:
        validate_pdf(b"%PDF-1.4", min_size=4)


class TestExtractText:
    """Tests for PDF text extraction."""

    def test_unparseable_bytes_give_none(self) -> None:
        assert extract_text_from_bytes(b"not a pdf at all") is None


class TestPortalLogin:
    """Tests for login outcome classification on a mocked page."""

    def _session(self, url: str, wait_fails: bool) -> tuple[PortalSession, MagicMock]:
        session = PortalSession(PortalSettings())
        page = MagicMock()
        page.url = url
        if wait_fails:
            page.wait_for_url.side_effect = PlaywrightTimeout("no redirect")
        session._page = page
        return session, page

    def test_success(self) -> None:
        session, page = self._session(PortalSettings().home_url, wait_fails=False)
        session.login(Credentials("user", "secret"))
        page.get_by_placeholder.assert_any_call("Nombre de usuario")
        page.get_by_role.assert_called_once_with("button", name="Iniciar Sesion")

    def test_empty_credentials(self) -> None:
        session, page = self._session("about:blank", wait_fails=False)
        with pytest.raises(LoginError) as exc_info:
            session.login(Credentials("user", ""))
        assert exc_info.value.reason is LoginFailureReason.CREDENTIALS_MISSING
        page.goto.assert_not_called()

    def test_still_on_login_page(self) -> None:
        session, _ = self._session(PortalSettings().login_url, wait_fails=True)
        with pytest.raises(LoginError) as exc_info:
            session.login(Credentials("user", "wrong"))
        assert exc_info.value.reason is LoginFailureReason.TIMEOUT

    def test_unexpected_redirect(self) -> None:
        session, _ = self._session("https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.error", wait_fails=True)
        with pytest.raises(LoginError) as exc_info:
            session.login(Credentials("user", "secret"))
        assert exc_info.value.reason is LoginFailureReason.UNEXPECTED_REDIRECT

    def test_return_home_timeout(self) -> None:
        session, page = self._session("about:blank", wait_fails=False)
        page.goto.side_effect = PlaywrightTimeout("slow")
        with pytest.raises(NavigationTimeout):
            session.return_home()
