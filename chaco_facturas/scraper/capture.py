"""Document reference capture from the statements page popup.

Clicking a statement's document control opens a modal popup whose iframe
``src`` is the (relative, session-scoped) URL of the generated PDF. The
reference is only valid for the browser session that produced it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import urljoin

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from chaco_facturas.config import PortalSettings, setup_logging
from chaco_facturas.errors import NavigationTimeout
from chaco_facturas.models import DocumentRef
from chaco_facturas.utils.parsing import sanitize_filename

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from chaco_facturas.scraper.discovery import StatementRow

logger = setup_logging(__name__)


def suggested_filename(invoice_number: str) -> str:
    """Filesystem-safe PDF name for a statement."""
    return f"{sanitize_filename(invoice_number)}.pdf"


class DocumentCapture:
    """Trigger the document popup for a row and read its frame source."""

    def __init__(self, settings: PortalSettings | None = None) -> None:
        self.settings = settings or PortalSettings()

    def trigger_and_capture_reference(
        self,
        page: Page,
        row: StatementRow,
        keep_open: bool = False,
    ) -> DocumentRef | None:
        """Open the popup for ``row`` and return the document reference.

        Parameters
        ----------
        page : Page
            Page showing the statements table that ``row`` was read from.
        row : StatementRow
            Row whose document control should be clicked.
        keep_open : bool, optional
            Leave the popup open so the caller can fetch while the server
            still considers the document active. The caller must then call
            :meth:`close_popup`.

        Returns
        -------
        DocumentRef | None
            Absolute URL and suggested filename, or ``None`` when the row has
            no visible control or the popup frame never appeared.

        Raises
        ------
        NavigationTimeout
            If the control is present but cannot be clicked.
        """
        control = row.document_control
        if control is None or not control.visible:
            return None

        try:
            page.locator(f'[id="{control.element_id}"]').click(timeout=self.settings.default_timeout_ms)
        except PlaywrightError as e:
            msg = f"Could not click document control {control.element_id}: {e}"
            raise NavigationTimeout(msg) from e

        frame = page.locator(self.settings.popup_frame)
        try:
            frame.wait_for(state="visible", timeout=self.settings.popup_frame_timeout_ms)
        except PlaywrightTimeout:
            logger.warning("Document popup did not appear for %s", row.invoice_number)
            return None

        source = frame.get_attribute("src")
        if not source:
            logger.warning("Document popup for %s has no source", row.invoice_number)
            self.close_popup(page)
            return None

        url = urljoin(self.settings.servlet_base_url, source)
        if not keep_open:
            self.close_popup(page)

        logger.debug("Captured reference for %s: %s", row.invoice_number, url[:80])
        return DocumentRef(url=url, suggested_filename=suggested_filename(row.invoice_number))

    def close_popup(self, page: Page) -> None:
        """Close the popup if it is open; failures are logged only."""
        try:
            page.locator(self.settings.popup_close).click(timeout=self.settings.popup_frame_timeout_ms)
            page.wait_for_timeout(self.settings.popup_close_settle_ms)
        except PlaywrightError as e:
            logger.debug("Popup close skipped: %s", e)
