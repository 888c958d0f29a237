"""Tests for the SECHEEP invoice listing."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import Credentials, SecheepSettings
from chaco_facturas.errors import LoginError, LoginFailureReason
from chaco_facturas.scraper.secheep import (
    SecheepCollector,
    SecheepSupplyPoint,
    build_invoice,
    parse_item_count,
    parse_supply_point_label,
)

LABEL = "123456/7  PEREZ JUAN - AV. SARMIENTO 1200"


class TestParsers:
    """Tests for dropdown label, pager, and grid row parsing."""

    def test_supply_point_label(self) -> None:
        supply_point = parse_supply_point_label(LABEL, 2)

        assert supply_point.index == 2
        assert supply_point.customer_id == "123456/7"
        assert supply_point.name == "PEREZ JUAN"
        assert supply_point.address == "AV. SARMIENTO 1200"

    def test_label_without_address(self) -> None:
        supply_point = parse_supply_point_label("123456/7  PEREZ JUAN", 0)
        assert supply_point.name == "PEREZ JUAN"
        assert supply_point.address == ""

    def test_label_without_customer_id(self) -> None:
        assert parse_supply_point_label("Seleccione un suministro", 0).customer_id == ""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [("(25 ítems)", 25), ("1 de 50 páginas (1.250 ítems)", 1250), (None, None), ("sin datos", None)],
    )
    def test_item_count(self, text: str | None, expected: int | None) -> None:
        assert parse_item_count(text) == expected

    def test_build_invoice(self) -> None:
        supply_point = parse_supply_point_label(LABEL, 0)
        invoice = build_invoice(
            ["0001-00012345", "Factura B", "Impaga", "06/2025", "10/07/2025", "$ 12.345,67", ""],
            supply_point,
        )

        assert invoice.company == "SECHEEP"
        assert invoice.customer_id == "123456/7"
        assert invoice.invoice_id == "0001-00012345"
        assert invoice.status == "Impaga"
        assert invoice.period == "06/2025"
        assert invoice.amount == pytest.approx(12345.67)
        assert invoice.filename is None

    def test_short_row(self) -> None:
        invoice = build_invoice(["0001"], parse_supply_point_label(LABEL, 0))
        assert invoice.invoice_name is None
        assert invoice.amount == 0.0

    def test_to_dict_is_json_ready(self) -> None:
        data = build_invoice(["1", "F", "Paga", "05/2025", "10/06/2025", "100,00"], parse_supply_point_label(LABEL, 0)).to_dict()
        assert isinstance(data["extracted_at"], str)
        assert data["amount"] == 100.0


class TestSecheepCollector:
    """Tests for the collector on a mocked page."""

    def _collector(self) -> tuple[SecheepCollector, MagicMock]:
        session = MagicMock()
        return SecheepCollector(session, SecheepSettings()), session.page

    def test_login_timeout(self) -> None:
        collector, page = self._collector()
        page.wait_for_selector.side_effect = PlaywrightTimeout("no menu")

        with pytest.raises(LoginError) as exc_info:
            collector.login(Credentials("user", "secret"))
        assert exc_info.value.reason is LoginFailureReason.TIMEOUT

    def test_login_opens_invoices(self) -> None:
        collector, page = self._collector()
        collector.login(Credentials("user", "secret"))
        page.fill.assert_any_call("#Input_UserName", "user")
        page.click.assert_called_with('a:has-text("Facturas")')

    def test_list_supply_points(self) -> None:
        collector, page = self._collector()
        page.locator.return_value.all_text_contents.return_value = [LABEL, "765432/1  GOMEZ ANA - CALLE 5"]

        supply_points = collector.list_supply_points()

        assert [sp.customer_id for sp in supply_points] == ["123456/7", "765432/1"]
        assert [sp.index for sp in supply_points] == [0, 1]

    def test_dropdown_failure_gives_empty(self) -> None:
        collector, page = self._collector()
        page.wait_for_selector.side_effect = PlaywrightTimeout("no popup")
        assert collector.list_supply_points() == []

    def test_read_invoices_stops_without_progress(self) -> None:
        """An empty page ends paging even if fewer rows than expected were read."""
        collector, _ = self._collector()
        supply_point = SecheepSupplyPoint(0, "123456/7", "PEREZ JUAN", "X", LABEL)
        first = build_invoice(["1", "F", "Paga", "05/2025", "10/06/2025", "100,00"], supply_point)
        collector._read_grid_page = MagicMock(side_effect=[[first], []])

        invoices = collector.read_invoices(supply_point, expected=5)

        assert invoices == [first]
        assert collector._read_grid_page.call_count == 2
