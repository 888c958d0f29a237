"""Entity discovery on the SAMEEP portal pages.

The portal renders everything as nested GeneXus tables, so discovery is a
matter of picking tables by document order and reading cells by fixed
position. The parsers in this module work on the page markup
(``page.content()``) with lxml so they can be exercised against fixture
HTML; :class:`EntityDiscoverer` binds them to a live Playwright page.

Table layout
------------
* Table 0 (account page): header row whose last cell reads
  ``"Apellido y Nombre<NAME>"``.
* Table 1 (account page): supply points, one header row, then rows with
  at least 8 cells; cells 3/5/6/7 are number, street, house number, floor.
* Table 3 (statements page): one header row, then rows with at least 15
  cells and a non-empty invoice number in cell 1. Cell 14 may hold the
  ``img[id^="vIMPRIMIRSALDO_"]`` control that opens the document popup.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

from lxml import html as lxml_html
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import PortalSettings, setup_logging
from chaco_facturas.models import Statement
from chaco_facturas.utils.parsing import parse_amount, parse_portal_date

if TYPE_CHECKING:
    from lxml.html import HtmlElement
    from playwright.sync_api import Page

logger = setup_logging(__name__)

ACCOUNT_NAME_LABEL = "Apellido y Nombre"

# Inline style fragments that hide the document control
_HIDDEN_STYLES = ("display:none", "visibility:hidden")


@dataclass(frozen=True)
class AccountRef:
    """An account as listed on the landing page."""

    position: int
    list_id: str


@dataclass(frozen=True)
class SupplyPointRef:
    """A supply point row of the account page."""

    position: int
    supply_number: str
    street: str
    house_number: str
    floor: str


@dataclass(frozen=True)
class DocumentControl:
    """The image control that opens a statement's document popup."""

    element_id: str
    style: str = ""

    @property
    def visible(self) -> bool:
        normalized = re.sub(r"\s+", "", self.style).lower()
        return not any(hidden in normalized for hidden in _HIDDEN_STYLES)


@dataclass(frozen=True)
class StatementRow:
    """One data row of the statements table."""

    position: int
    cells: tuple[str, ...]
    document_control: DocumentControl | None = None

    @property
    def invoice_number(self) -> str:
        return self.cells[1]

    @property
    def has_document(self) -> bool:
        return self.document_control is not None and self.document_control.visible


# =============================================================================
# Markup parsers
# =============================================================================


def _cell_text(element: HtmlElement) -> str:
    return " ".join(element.text_content().split())


def _tables(markup: str) -> list[HtmlElement]:
    if not markup.strip():
        return []
    document = lxml_html.fromstring(markup)
    return list(document.iter("table"))


def _table_rows(markup: str, table_index: int) -> list[HtmlElement]:
    tables = _tables(markup)
    if table_index >= len(tables):
        logger.warning("Table %d not found (page has %d tables)", table_index, len(tables))
        return []
    return tables[table_index].xpath(".//tr")


def parse_account_refs(markup: str, control_prefix: str = "span_vINGRESAR_") -> list[AccountRef]:
    """List account placeholders in page order.

    Parameters
    ----------
    markup : str
        Landing page HTML.
    control_prefix : str, optional
        Id prefix of the per-account "enter" control.

    Returns
    -------
    list[AccountRef]
        One reference per control; ``list_id`` is the id suffix.
    """
    if not markup.strip():
        return []
    document = lxml_html.fromstring(markup)
    controls = document.xpath("//*[starts-with(@id, $prefix)]", prefix=control_prefix)
    refs = []
    for element in controls:
        list_id = element.get("id")[len(control_prefix) :]
        if list_id:
            refs.append(AccountRef(position=len(refs), list_id=list_id))
    return refs


def parse_account_name(markup: str, table_index: int = 0) -> str | None:
    """Read the account holder name from the account page header table."""
    rows = _table_rows(markup, table_index)
    if not rows:
        return None
    cells = rows[0].xpath(".//td")
    if len(cells) < 4:
        return None
    name = _cell_text(cells[-1]).replace(ACCOUNT_NAME_LABEL, "").strip()
    return name or None


def parse_supply_point_rows(
    markup: str,
    table_index: int = 1,
    min_cells: int = 8,
) -> list[SupplyPointRef]:
    """Parse the supply point table, skipping the header row.

    Rows with fewer than ``min_cells`` cells or without a supply number are
    ignored. ``position`` counts accepted rows only, matching the order of
    the statement links on the page.
    """
    refs: list[SupplyPointRef] = []
    for row in _table_rows(markup, table_index)[1:]:
        cells = [_cell_text(td) for td in row.xpath(".//td")]
        if len(cells) < min_cells or not cells[3]:
            continue
        refs.append(
            SupplyPointRef(
                position=len(refs),
                supply_number=cells[3],
                street=cells[5],
                house_number=cells[6],
                floor=cells[7],
            ),
        )
    return refs


def _document_control(cell: HtmlElement, control_prefix: str) -> DocumentControl | None:
    images = cell.xpath(".//img[starts-with(@id, $prefix)]", prefix=control_prefix)
    if not images:
        return None
    return DocumentControl(element_id=images[0].get("id"), style=images[0].get("style", ""))


def parse_statement_rows(
    markup: str,
    table_index: int = 3,
    min_cells: int = 15,
    document_cell: int = 14,
    control_prefix: str = "vIMPRIMIRSALDO_",
) -> list[StatementRow]:
    """Parse the statements table into :class:`StatementRow` objects.

    Parameters
    ----------
    markup : str
        Statements page HTML.
    table_index : int, optional
        Document-order index of the statements table.
    min_cells : int, optional
        Minimum cell count of a data row.
    document_cell : int, optional
        Index of the cell holding the document control.
    control_prefix : str, optional
        Id prefix of the document control image.

    Returns
    -------
    list[StatementRow]
        Data rows in table order; ``position`` is the row index in the table.
    """
    rows: list[StatementRow] = []
    for position, row in enumerate(_table_rows(markup, table_index)):
        if position == 0:
            continue  # header
        cell_elements = row.xpath(".//td")
        cells = tuple(_cell_text(td) for td in cell_elements)
        if len(cells) < min_cells or not cells[1]:
            continue
        control = None
        if document_cell < len(cell_elements):
            control = _document_control(cell_elements[document_cell], control_prefix)
        rows.append(StatementRow(position=position, cells=cells, document_control=control))
    return rows


def find_statement_row(rows: list[StatementRow], invoice_number: str) -> StatementRow | None:
    """Locate a row by its full invoice number."""
    target = invoice_number.strip()
    return next((row for row in rows if row.invoice_number == target), None)


def build_statement(row: StatementRow, account_id: str, supply_point_id: str) -> Statement:
    """Map a statement row to a :class:`Statement` by fixed cell positions."""
    cells = row.cells
    document_number = " ".join(part for part in cells[6:9] if part)
    return Statement(
        id=row.invoice_number,
        account_id=account_id,
        supply_point_id=supply_point_id,
        full_invoice_number=row.invoice_number,
        issue_date=parse_portal_date(cells[2]),
        period=cells[3],
        internal_code=cells[4],
        document_type=cells[5],
        document_number=document_number,
        first_due_date=parse_portal_date(cells[9]),
        second_due_date=parse_portal_date(cells[10]),
        original_amount=parse_amount(cells[11]),
        surcharge=parse_amount(cells[12]),
        total_amount=parse_amount(cells[13]),
        has_document=row.has_document,
    )


# =============================================================================
# Live page wrapper
# =============================================================================


class EntityDiscoverer:
    """Enumerate accounts, supply points, and statement rows on a live page."""

    def __init__(self, settings: PortalSettings | None = None) -> None:
        self.settings = settings or PortalSettings()

    def list_accounts(self, page: Page) -> list[AccountRef]:
        """Wait for the account controls and list them in page order.

        Returns an empty list (and logs) when the marker never appears.
        """
        selector = f'[id^="{self.settings.account_control_prefix}"]'
        try:
            page.wait_for_selector(selector, timeout=self.settings.account_list_timeout_ms)
        except PlaywrightTimeout:
            logger.warning("No account controls appeared within %d ms", self.settings.account_list_timeout_ms)
            return []

        refs = parse_account_refs(page.content(), self.settings.account_control_prefix)
        logger.info("Found %d accounts", len(refs))
        return refs

    def read_account_name(self, page: Page) -> str | None:
        name = parse_account_name(page.content(), self.settings.account_header_table)
        if name is None:
            logger.warning("Account name not found in header table")
        return name

    def list_supply_points(self, page: Page) -> list[SupplyPointRef]:
        refs = parse_supply_point_rows(
            page.content(),
            table_index=self.settings.supply_points_table,
            min_cells=self.settings.min_supply_point_cells,
        )
        logger.debug("Found %d supply points", len(refs))
        return refs

    def list_statement_rows(self, page: Page) -> list[StatementRow]:
        rows = parse_statement_rows(
            page.content(),
            table_index=self.settings.statements_table,
            min_cells=self.settings.min_statement_cells,
            document_cell=self.settings.document_cell,
            control_prefix=self.settings.document_control_prefix,
        )
        logger.debug("Found %d statement rows", len(rows))
        return rows
