"""Navigation between the portal levels: account list, account, statements.

Every transition is a click followed by a settle wait. The settle wait is
a fixed pause plus a bounded wait for network idle; the portal keeps
polling connections open on some pages, so a network-idle timeout is
logged and ignored rather than treated as a failure.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from lxml import html as lxml_html
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import PortalSettings, setup_logging
from chaco_facturas.errors import NavigationTimeout, StructuralElementMissing
from chaco_facturas.scraper.discovery import parse_supply_point_rows

if TYPE_CHECKING:
    from playwright.sync_api import Page

logger = setup_logging(__name__)


def statement_link_ordinal(
    markup: str,
    supply_index: int,
    link_text: str = "Saldo",
    expected_rows: int | None = None,
) -> int:
    """Map a supply point row to the ordinal of its statements link.

    The account page exposes one statements link per supply point row, but
    the links carry no reference to their row. The only correspondence is
    order: the Nth link on the page belongs to the Nth supply point row.
    This function is the single place that assumption lives.

    Parameters
    ----------
    markup : str
        Account page HTML.
    supply_index : int
        Position of the supply point among the parsed supply point rows.
    link_text : str, optional
        Visible text of the statements link.
    expected_rows : int | None, optional
        Number of parsed supply point rows; a mismatch with the link count
        is logged because it means the correspondence may be off.

    Returns
    -------
    int
        Zero-based ordinal among the page's statements links.

    Raises
    ------
    StructuralElementMissing
        If the page has no statements link at that ordinal.
    """
    links = []
    if markup.strip():
        document = lxml_html.fromstring(markup)
        links = [a for a in document.iter("a") if " ".join(a.text_content().split()) == link_text]

    if expected_rows is not None and expected_rows != len(links):
        logger.warning("Found %d '%s' links for %d supply point rows", len(links), link_text, expected_rows)

    if supply_index < 0 or supply_index >= len(links):
        msg = f"No '{link_text}' link for supply point row {supply_index} ({len(links)} links on page)"
        raise StructuralElementMissing(msg)
    return supply_index


def supply_point_index(
    markup: str,
    supply_number: str,
    table_index: int = 1,
    min_cells: int = 8,
) -> int | None:
    """Re-derive the row position of a supply point from live markup."""
    for ref in parse_supply_point_rows(markup, table_index=table_index, min_cells=min_cells):
        if ref.supply_number == supply_number:
            return ref.position
    return None


class Navigator:
    """Click-driven navigation between portal levels."""

    def __init__(self, settings: PortalSettings | None = None) -> None:
        self.settings = settings or PortalSettings()

    def _settle(self, page: Page, pause_ms: int | None = None) -> None:
        page.wait_for_timeout(self.settings.settle_ms if pause_ms is None else pause_ms)
        try:
            page.wait_for_load_state("networkidle", timeout=self.settings.network_idle_timeout_ms)
        except PlaywrightTimeout:
            logger.debug("Network did not go idle; continuing")

    def enter_account(self, page: Page, list_id: str) -> None:
        """Click the "enter" link of the account listed as ``list_id``.

        Raises
        ------
        NavigationTimeout
            If the control cannot be clicked in time.
        """
        control = page.locator(f'[id="{self.settings.account_control_prefix}{list_id}"]')
        try:
            control.get_by_role("link", name=self.settings.account_enter_link).click(
                timeout=self.settings.default_timeout_ms,
            )
        except PlaywrightError as e:
            msg = f"Could not enter account {list_id}: {e}"
            raise NavigationTimeout(msg) from e

        self._settle(page)
        logger.debug("Entered account %s", list_id)

    def locate_supply_point(self, page: Page, supply_number: str) -> int | None:
        return supply_point_index(
            page.content(),
            supply_number,
            table_index=self.settings.supply_points_table,
            min_cells=self.settings.min_supply_point_cells,
        )

    def enter_supply_point_statements(self, page: Page, index: int) -> None:
        """Open the statements page of the supply point at row ``index``.

        Raises
        ------
        StructuralElementMissing
            If there is no statements link for the row.
        NavigationTimeout
            If the click does not complete in time.
        """
        markup = page.content()
        expected_rows = len(
            parse_supply_point_rows(
                markup,
                table_index=self.settings.supply_points_table,
                min_cells=self.settings.min_supply_point_cells,
            ),
        )
        ordinal = statement_link_ordinal(markup, index, self.settings.statement_link, expected_rows)

        link = page.get_by_role("link", name=self.settings.statement_link, exact=True).nth(ordinal)
        try:
            link.click(timeout=self.settings.default_timeout_ms)
        except PlaywrightError as e:
            msg = f"Could not open statements for supply point row {index}: {e}"
            raise NavigationTimeout(msg) from e

        self._settle(page)
        logger.debug("Opened statements for supply point row %d", index)

    def go_back_one_level(self, page: Page) -> None:
        """Browser back, then a short settle wait.

        Raises
        ------
        NavigationTimeout
            If the history navigation fails.
        """
        try:
            page.go_back(timeout=self.settings.default_timeout_ms)
        except PlaywrightError as e:
            msg = f"Back navigation failed: {e}"
            raise NavigationTimeout(msg) from e
        self._settle(page, self.settings.back_settle_ms)
