"""Pytest configuration for chaco_facturas tests.

This module provides:
- Fixture markup builders for the SAMEEP landing, account, and statements pages
- A scripted fake portal whose navigator/discoverer/capture doubles share state
- Fake browser sessions for the collectors (no real browser is started)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest
from dotenv import load_dotenv

from chaco_facturas.config import PortalSettings
from chaco_facturas.errors import NavigationTimeout
from chaco_facturas.models import DocumentRef
from chaco_facturas.scraper.discovery import AccountRef, DocumentControl, StatementRow, SupplyPointRef
from chaco_facturas.scraper.download import FetchedDocument

# Load environment variables from project .env so local credentials are visible
PROJECT_ROOT = Path(__file__).parent.parent
load_dotenv(PROJECT_ROOT / ".env")

PDF_BYTES = b"%PDF-1.4\n" + b"0" * 2048


# =============================================================================
# Markup builders
# =============================================================================


def landing_html(list_ids: list[str]) -> str:
    spans = "".join(
        f'<tr><td><span id="span_vINGRESAR_{list_id}"><a href="#">Ingresar</a></span></td></tr>'
        for list_id in list_ids
    )
    return f"<html><body><table>{spans}</table></body></html>"


def account_html(name: str, supply_points: list[tuple[str, str, str, str]]) -> str:
    """Account page: header table plus supply point table with one Saldo link per row."""
    header = (
        "<table><tr><td>Cliente:</td><td>Número de Socio61141</td><td>/</td>"
        "<td>NUMERO DE SUMINISTRO1</td><td>-</td>"
        f"<td>Apellido y Nombre{name}</td></tr></table>"
    )
    rows = "".join(
        f"<tr><td></td><td></td><td></td><td>{number}</td><td>RESISTENCIA</td>"
        f"<td>{street}</td><td>{house}</td><td>{floor}</td><td></td>"
        '<td><a href="#">Saldo</a></td><td><a href="#">Consumos</a></td><td><a href="#">Intimación</a></td></tr>'
        for number, street, house, floor in supply_points
    )
    supply_table = f"<table><tr><td>Suministro</td><td>Calle</td></tr>{rows}</table>"
    return f"<html><body>{header}{supply_table}</body></html>"


def statement_cells(invoice: str, total: str = "37.741,29") -> list[str]:
    return [
        "",
        invoice,
        "23/06/2025",
        "06/2025",
        "3",
        "FACTURA",
        "B",
        "0001",
        "84919364",
        "10/07/2025",
        "20/07/2025",
        "37.741,29",
        "0,00",
        total,
    ]


def statements_html(rows: list[tuple[str, str | None]]) -> str:
    """Statements page; each row is ``(invoice, control style or None for no control)``."""
    body = ""
    for i, (invoice, style) in enumerate(rows, start=1):
        cells = "".join(f"<td>{c}</td>" for c in statement_cells(invoice))
        control = "" if style is None else f'<img id="vIMPRIMIRSALDO_{i:04d}" style="{style}" src="pdf.gif">'
        body += f"<tr>{cells}<td>{control}</td></tr>"
    filler = "<table><tr><td>menu</td></tr></table>" * 3
    return f"<html><body>{filler}<table><tr><td>Header</td></tr>{body}</table></body></html>"


def make_row(invoice: str, position: int = 1, style: str | None = "") -> StatementRow:
    control = None if style is None else DocumentControl(element_id=f"vIMPRIMIRSALDO_{position:04d}", style=style)
    return StatementRow(position=position, cells=(*statement_cells(invoice), ""), document_control=control)


# =============================================================================
# Scripted portal doubles
# =============================================================================


@dataclass
class PortalAccount:
    name: str
    supply_points: list[SupplyPointRef]
    statements: dict[int, list[StatementRow]] = field(default_factory=dict)


@dataclass
class FakePortal:
    """Shared page state for the navigator, discoverer, and capture doubles."""

    accounts: dict[str, PortalAccount]
    broken_accounts: set[str] = field(default_factory=set)
    broken_supply_points: set[tuple[str, int]] = field(default_factory=set)
    current_account: str | None = None
    current_supply: int | None = None
    calls: list[tuple] = field(default_factory=list)


class FakePage:
    url = "https://apps8.chaco.gob.ar/sameepweb/servlet/com.sameep.wpseleccionarcliente"

    def content(self) -> str:
        return "<html></html>"


class FakeSession:
    """Page source with scripted fetch responses."""

    def __init__(self, portal: FakePortal, responses: dict[str, bytes] | None = None) -> None:
        self.portal = portal
        self.page = FakePage()
        self.responses = responses or {}
        self.fetched: list[str] = []

    def return_home(self) -> None:
        self.portal.calls.append(("return_home",))
        self.portal.current_account = None
        self.portal.current_supply = None

    def fetch_bytes(self, url: str) -> FetchedDocument:
        self.fetched.append(url)
        return FetchedDocument(content=self.responses.get(url, PDF_BYTES), content_type="application/pdf", status_code=200)


class FakeNavigator:
    def __init__(self, portal: FakePortal) -> None:
        self.portal = portal

    def enter_account(self, page: FakePage, list_id: str) -> None:
        self.portal.calls.append(("enter_account", list_id))
        if list_id in self.portal.broken_accounts:
            msg = f"account {list_id} never loads"
            raise NavigationTimeout(msg)
        self.portal.current_account = list_id

    def locate_supply_point(self, page: FakePage, supply_number: str) -> int | None:
        account = self.portal.accounts[self.portal.current_account]
        return next((sp.position for sp in account.supply_points if sp.supply_number == supply_number), None)

    def enter_supply_point_statements(self, page: FakePage, index: int) -> None:
        self.portal.calls.append(("enter_supply_point", self.portal.current_account, index))
        if (self.portal.current_account, index) in self.portal.broken_supply_points:
            msg = f"supply point {index} never loads"
            raise NavigationTimeout(msg)
        self.portal.current_supply = index

    def go_back_one_level(self, page: FakePage) -> None:
        self.portal.calls.append(("go_back",))
        self.portal.current_supply = None


class FakeDiscoverer:
    def __init__(self, portal: FakePortal) -> None:
        self.portal = portal

    def list_accounts(self, page: FakePage) -> list[AccountRef]:
        return [AccountRef(position=i, list_id=list_id) for i, list_id in enumerate(self.portal.accounts)]

    def read_account_name(self, page: FakePage) -> str | None:
        return self.portal.accounts[self.portal.current_account].name

    def list_supply_points(self, page: FakePage) -> list[SupplyPointRef]:
        return list(self.portal.accounts[self.portal.current_account].supply_points)

    def list_statement_rows(self, page: FakePage) -> list[StatementRow]:
        account = self.portal.accounts[self.portal.current_account]
        return list(account.statements.get(self.portal.current_supply, []))


class FakeCapture:
    def __init__(self, portal: FakePortal) -> None:
        self.portal = portal
        self.closed = 0

    def trigger_and_capture_reference(
        self,
        page: FakePage,
        row: StatementRow,
        keep_open: bool = False,
    ) -> DocumentRef | None:
        if not row.has_document:
            return None
        self.portal.calls.append(("capture", row.invoice_number, keep_open))
        return DocumentRef(url=f"https://portal.test/doc/{row.invoice_number}", suggested_filename=f"{row.invoice_number}.pdf")

    def close_popup(self, page: FakePage) -> None:
        self.closed += 1


def supply_ref(position: int, number: str) -> SupplyPointRef:
    return SupplyPointRef(position=position, supply_number=number, street="AV. 25 DE MAYO", house_number="370", floor="0")


@pytest.fixture
def settings() -> PortalSettings:
    """Portal settings with no settle pauses."""
    return PortalSettings(settle_ms=0, back_settle_ms=0, popup_close_settle_ms=0, backoff_seconds=0)


@pytest.fixture
def three_account_portal() -> FakePortal:
    """Three accounts with one or two supply points each."""
    return FakePortal(
        accounts={
            "0001": PortalAccount(
                name="DEL GROSSO AIDA",
                supply_points=[supply_ref(0, "1"), supply_ref(1, "2")],
                statements={
                    0: [make_row("1-61141-1-23/06/25-3-B-1-84919364", 1), make_row("1-61141-1-23/05/25-3-B-1-84000001", 2, style="display:none")],
                    1: [make_row("2-61141-1-23/06/25-3-B-1-84919365", 1)],
                },
            ),
            "0002": PortalAccount(
                name="PEREZ JUAN",
                supply_points=[supply_ref(0, "1")],
                statements={0: [make_row("1-70000-1-23/06/25-3-B-1-85000000", 1)]},
            ),
            "0003": PortalAccount(
                name="GOMEZ ANA",
                supply_points=[supply_ref(0, "1")],
                statements={0: [make_row("1-80000-1-23/06/25-3-B-1-86000000", 1, style=None)]},
            ),
        },
    )
