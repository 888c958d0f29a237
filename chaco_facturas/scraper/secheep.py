"""SECHEEP virtual office: invoice listing per supply point.

Unlike the SAMEEP portal this is a single-page app built on Syncfusion
widgets. Supply points are picked from a dropdown, invoices are shown in
a paged grid, and each invoice row has a button that triggers a browser
download. The download is only observed for its suggested filename and
URL; the grid rows carry the billing data.

Soft failures are per supply point: a supply point whose grid cannot be
read is logged and skipped.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import SecheepSettings, setup_logging
from chaco_facturas.errors import LoginError, LoginFailureReason
from chaco_facturas.utils.parsing import parse_amount

if TYPE_CHECKING:
    from playwright.sync_api import Locator, Page

    from chaco_facturas.config import Credentials
    from chaco_facturas.scraper.browser import BrowserSession

logger = setup_logging(__name__)

# Customer ids look like "123456/7"
_CUSTOMER_ID = re.compile(r"\d+/\d")
_LABEL_PREFIX_LENGTH = 10


@dataclass(frozen=True)
class SecheepSupplyPoint:
    """One entry of the supply point dropdown."""

    index: int
    customer_id: str
    name: str
    address: str
    text: str


@dataclass
class SecheepInvoice:
    """One row of the invoices grid."""

    company: str
    customer_id: str
    name: str
    address: str
    invoice_id: str | None
    invoice_name: str | None
    status: str | None
    period: str | None
    due_date: str | None
    amount: float
    filename: str | None = None
    file_url: str | None = None
    extracted_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["extracted_at"] = self.extracted_at.isoformat()
        return data


def parse_supply_point_label(text: str, index: int) -> SecheepSupplyPoint:
    """Split a dropdown label into customer id, name, and address.

    Labels look like ``"123456/7  PEREZ JUAN - AV. SARMIENTO 1200"``: the
    customer id occupies the first ten characters, then name and address
    are separated by ``" - "``.
    """
    cleaned = text.strip()
    match = _CUSTOMER_ID.search(cleaned[:_LABEL_PREFIX_LENGTH])
    parts = cleaned[_LABEL_PREFIX_LENGTH:].split(" - ")
    return SecheepSupplyPoint(
        index=index,
        customer_id=match.group(0) if match else "",
        name=parts[0].strip(),
        address=parts[1].strip() if len(parts) > 1 else "",
        text=cleaned,
    )


def parse_item_count(text: str | None) -> int | None:
    """Read the total from a pager message such as ``"(25 ítems)"``."""
    if not text:
        return None
    match = re.search(r"(\d[\d.]*)\s*[íi]tems", text) or re.search(r"(\d+)", text)
    return int(match.group(1).replace(".", "")) if match else None


def build_invoice(cells: list[str], supply_point: SecheepSupplyPoint, company: str = "SECHEEP") -> SecheepInvoice:
    """Map grid cells to a :class:`SecheepInvoice` by position."""

    def cell(i: int) -> str | None:
        value = cells[i].strip() if i < len(cells) else ""
        return value or None

    return SecheepInvoice(
        company=company,
        customer_id=supply_point.customer_id,
        name=supply_point.name,
        address=supply_point.address,
        invoice_id=cell(0),
        invoice_name=cell(1),
        status=cell(2),
        period=cell(3),
        due_date=cell(4),
        amount=parse_amount(cell(5)),
    )


class SecheepCollector:
    """Drive the SECHEEP virtual office through one browser session."""

    def __init__(self, session: BrowserSession, settings: SecheepSettings | None = None) -> None:
        self.session = session
        self.settings = settings or SecheepSettings()

    @property
    def page(self) -> Page:
        return self.session.page

    def _selector(self, name: str) -> str:
        return self.settings.selectors[name]

    def login(self, credentials: Credentials) -> None:
        """Log in and open the invoices section.

        Raises
        ------
        LoginError
            If the invoices menu does not appear after submitting.
        """
        page = self.page
        page.goto(self.settings.login_url, wait_until="domcontentloaded")
        page.fill(self._selector("username"), credentials.username)
        page.fill(self._selector("password"), credentials.password)
        page.click(self._selector("submit"))
        try:
            page.wait_for_selector(self._selector("invoices_menu"), timeout=self.settings.login_timeout_ms)
        except PlaywrightTimeout as e:
            msg = f"SECHEEP login did not show the invoices menu (now at {page.url})"
            raise LoginError(msg, reason=LoginFailureReason.TIMEOUT) from e

        logger.info("SECHEEP login successful")
        page.click(self._selector("invoices_menu"))

    def _open_dropdown(self) -> bool:
        try:
            self.page.locator(self._selector("dropdown")).first.click()
            self.page.wait_for_selector(self._selector("dropdown_items"), timeout=self.settings.dropdown_timeout_ms)
        except PlaywrightError as e:
            logger.error("Could not open the supply point dropdown: %s", e)
            return False
        return True

    def list_supply_points(self) -> list[SecheepSupplyPoint]:
        if not self._open_dropdown():
            return []
        labels = self.page.locator(self._selector("dropdown_items")).all_text_contents()
        supply_points = [parse_supply_point_label(text, i) for i, text in enumerate(labels)]
        logger.info("Found %d SECHEEP supply points", len(supply_points))
        return supply_points

    def select_supply_point(self, supply_point: SecheepSupplyPoint) -> bool:
        if not self._open_dropdown():
            return False
        items = self.page.locator(self._selector("dropdown_items"))
        if supply_point.index >= items.count():
            logger.warning("Supply point %d no longer in dropdown", supply_point.index)
            return False
        items.nth(supply_point.index).click()
        try:
            self.page.wait_for_selector(
                self._selector("dropdown_open"),
                state="detached",
                timeout=self.settings.item_count_timeout_ms,
            )
        except PlaywrightTimeout:
            logger.debug("Dropdown popup still attached after selection")
        return True

    def item_count(self) -> int | None:
        """Total invoices of the selected supply point, or ``None`` if unknown."""
        self.page.wait_for_timeout(1500)
        message = self.page.locator(self._selector("item_count"), has_text="ítems)")
        try:
            text = message.inner_text(timeout=self.settings.item_count_timeout_ms)
        except PlaywrightTimeout:
            logger.warning("Pager message not found; the grid may be empty")
            return None
        return parse_item_count(text)

    def _capture_download(self, button: Locator, invoice: SecheepInvoice) -> None:
        try:
            with self.page.expect_download(timeout=self.settings.download_timeout_ms) as download_info:
                button.click()
            download = download_info.value
        except PlaywrightError as e:
            logger.warning("Download not captured for invoice %s: %s", invoice.invoice_id, e)
            return
        invoice.filename = download.suggested_filename
        invoice.file_url = download.url
        logger.debug("Download observed: %s", invoice.filename)

    def _read_grid_page(self, supply_point: SecheepSupplyPoint) -> list[SecheepInvoice]:
        invoices = []
        table = self.page.locator(self._selector("grid_table"))
        for row in table.locator("tr").all():
            cells = row.locator("th, td")
            texts = cells.all_text_contents()
            if not texts:
                continue
            invoice = build_invoice(texts, supply_point, self.settings.company)
            if len(texts) > self.settings.download_cell:
                button = cells.nth(self.settings.download_cell).locator(self._selector("download_button"))
                if button.count() > 0:
                    self._capture_download(button, invoice)
            invoices.append(invoice)
        return invoices

    def read_invoices(self, supply_point: SecheepSupplyPoint, expected: int) -> list[SecheepInvoice]:
        """Read every grid page until ``expected`` invoices are collected.

        Parameters
        ----------
        supply_point : SecheepSupplyPoint
            Currently selected supply point.
        expected : int
            Total reported by the pager.

        Returns
        -------
        list[SecheepInvoice]
            Invoices in grid order.
        """
        invoices: list[SecheepInvoice] = []
        while True:
            page_invoices = self._read_grid_page(supply_point)
            invoices.extend(page_invoices)
            if len(invoices) >= expected or not page_invoices:
                break
            self.page.locator(self._selector("next_page")).click()
            self.page.wait_for_timeout(300)

        if len(invoices) < expected:
            logger.warning("Supply point %s: read %d of %d invoices", supply_point.text, len(invoices), expected)

        try:
            self.page.locator(self._selector("first_page")).click(timeout=self.settings.dropdown_timeout_ms)
        except PlaywrightError as e:
            logger.debug("Could not return to first grid page: %s", e)

        logger.info(
            "Supply point %s: %d invoices (%d downloads)",
            supply_point.text,
            len(invoices),
            sum(1 for i in invoices if i.filename),
        )
        return invoices

    def collect(self) -> list[SecheepInvoice]:
        """Read the invoices of every supply point in the dropdown."""
        self.page.wait_for_timeout(2000)
        invoices: list[SecheepInvoice] = []
        for supply_point in self.list_supply_points():
            if not self.select_supply_point(supply_point):
                continue
            count = self.item_count()
            if not count:
                logger.info("Supply point %s: no invoices", supply_point.text)
                continue
            try:
                invoices.extend(self.read_invoices(supply_point, count))
            except PlaywrightError as e:
                logger.warning("Could not read invoices of %s: %s", supply_point.text, e)
        return invoices
