"""Tests for navigation and document reference capture.

Tests cover:
1. Positional mapping from supply point rows to statements links
2. Supply point row lookup by number
3. Navigator clicks, settle waits, and timeout translation
4. Document capture: hidden controls, popup frame, URL resolution
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.errors import NavigationTimeout, StructuralElementMissing
from chaco_facturas.scraper.capture import DocumentCapture, suggested_filename
from chaco_facturas.scraper.navigator import Navigator, statement_link_ordinal, supply_point_index
from tests.conftest import account_html, make_row

INVOICE = "1-61141-1-23/06/25-3-B-1-84919364"
TWO_SUPPLY_POINTS = account_html("X", [("1", "AV. 25 DE MAYO", "370", "0"), ("2", "SARMIENTO", "1200", "0")])

# =============================================================================
# Tests for statement_link_ordinal / supply_point_index
# =============================================================================


class TestStatementLinkOrdinal:
    """Tests for the row-to-link positional correspondence."""

    def test_nth_row_maps_to_nth_link(self) -> None:
        assert statement_link_ordinal(TWO_SUPPLY_POINTS, 0) == 0
        assert statement_link_ordinal(TWO_SUPPLY_POINTS, 1) == 1

    def test_row_without_link_raises(self) -> None:
        with pytest.raises(StructuralElementMissing, match="row 2"):
            statement_link_ordinal(TWO_SUPPLY_POINTS, 2)

    def test_no_links_raises(self) -> None:
        with pytest.raises(StructuralElementMissing):
            statement_link_ordinal("<html><body></body></html>", 0)

    def test_other_links_not_counted(self) -> None:
        """Only links whose text is exactly the statements label count."""
        markup = '<a href="#">Consumos</a><a href="#">Saldo</a>'
        assert statement_link_ordinal(markup, 0) == 0
        with pytest.raises(StructuralElementMissing):
            statement_link_ordinal(markup, 1)


class TestSupplyPointIndex:
    """Tests for re-deriving a supply point row from live markup."""

    def test_found_by_number(self) -> None:
        assert supply_point_index(TWO_SUPPLY_POINTS, "2") == 1

    def test_missing_number(self) -> None:
        assert supply_point_index(TWO_SUPPLY_POINTS, "7") is None


# =============================================================================
# Tests for Navigator
# =============================================================================


class TestNavigator:
    """Tests for click-driven navigation on a mocked page."""

    def test_enter_account_clicks_enter_link(self, settings) -> None:
        page = MagicMock()
        Navigator(settings).enter_account(page, "0002")

        page.locator.assert_called_once_with('[id="span_vINGRESAR_0002"]')
        page.locator.return_value.get_by_role.assert_called_once_with("link", name="Ingresar")
        page.wait_for_load_state.assert_called_once()

    def test_enter_account_timeout(self, settings) -> None:
        page = MagicMock()
        page.locator.return_value.get_by_role.return_value.click.side_effect = PlaywrightTimeout("slow")

        with pytest.raises(NavigationTimeout, match="0002"):
            Navigator(settings).enter_account(page, "0002")

    def test_network_idle_timeout_is_ignored(self, settings) -> None:
        """The settle wait is best effort."""
        page = MagicMock()
        page.wait_for_load_state.side_effect = PlaywrightTimeout("polling")
        Navigator(settings).enter_account(page, "0001")

    def test_enter_supply_point_statements_uses_ordinal(self, settings) -> None:
        page = MagicMock()
        page.content.return_value = TWO_SUPPLY_POINTS

        Navigator(settings).enter_supply_point_statements(page, 1)

        page.get_by_role.assert_called_once_with("link", name="Saldo", exact=True)
        page.get_by_role.return_value.nth.assert_called_once_with(1)
        page.get_by_role.return_value.nth.return_value.click.assert_called_once()

    def test_enter_supply_point_without_link(self, settings) -> None:
        page = MagicMock()
        page.content.return_value = TWO_SUPPLY_POINTS

        with pytest.raises(StructuralElementMissing):
            Navigator(settings).enter_supply_point_statements(page, 5)
        page.get_by_role.assert_not_called()

    def test_go_back_failure(self, settings) -> None:
        page = MagicMock()
        page.go_back.side_effect = PlaywrightTimeout("history")
        with pytest.raises(NavigationTimeout):
            Navigator(settings).go_back_one_level(page)


# =============================================================================
# Tests for DocumentCapture
# =============================================================================


def _capture_page(src: str | None = "com.sameep.apdfsaldo?A1B2C3", frame_timeout: bool = False) -> tuple[MagicMock, dict]:
    locators = {"control": MagicMock(), "frame": MagicMock(), "close": MagicMock()}
    locators["frame"].get_attribute.return_value = src
    if frame_timeout:
        locators["frame"].wait_for.side_effect = PlaywrightTimeout("no popup")

    def locator(selector: str) -> MagicMock:
        if selector == "iframe#gxp0_ifrm":
            return locators["frame"]
        if selector == "#gxp0_cls":
            return locators["close"]
        return locators["control"]

    page = MagicMock()
    page.locator.side_effect = locator
    return page, locators


class TestDocumentCapture:
    """Tests for popup-based reference capture."""

    def test_hidden_control_not_clicked(self, settings) -> None:
        """A hidden control means no click and no popup wait."""
        page, locators = _capture_page()
        ref = DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE, style="display:none"))

        assert ref is None
        page.locator.assert_not_called()
        locators["frame"].wait_for.assert_not_called()

    def test_missing_control_not_clicked(self, settings) -> None:
        page, _ = _capture_page()
        assert DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE, style=None)) is None
        page.locator.assert_not_called()

    def test_reference_resolved_and_popup_closed(self, settings) -> None:
        page, locators = _capture_page()
        ref = DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE))

        assert ref is not None
        assert ref.url == "https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.apdfsaldo?A1B2C3"
        assert ref.suggested_filename == "1-61141-1-23_06_25-3-B-1-84919364.pdf"
        locators["control"].click.assert_called_once()
        locators["frame"].wait_for.assert_called_once_with(state="visible", timeout=15000)
        locators["close"].click.assert_called_once()

    def test_keep_open_leaves_popup(self, settings) -> None:
        page, locators = _capture_page()
        ref = DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE), keep_open=True)

        assert ref is not None
        locators["close"].click.assert_not_called()

    def test_frame_timeout_gives_none(self, settings) -> None:
        page, _ = _capture_page(frame_timeout=True)
        assert DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE)) is None

    def test_click_failure_raises(self, settings) -> None:
        page, locators = _capture_page()
        locators["control"].click.side_effect = PlaywrightTimeout("covered")
        with pytest.raises(NavigationTimeout):
            DocumentCapture(settings).trigger_and_capture_reference(page, make_row(INVOICE))

    def test_close_popup_is_best_effort(self, settings) -> None:
        page, locators = _capture_page()
        locators["close"].click.side_effect = PlaywrightTimeout("already closed")
        DocumentCapture(settings).close_popup(page)

    def test_suggested_filename(self) -> None:
        assert suggested_filename("1-2-3") == "1-2-3.pdf"
