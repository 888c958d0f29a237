"""Phase 2: re-navigate to statements and fetch their PDFs.

Document references captured in phase 1 belong to a browser session that
no longer exists, so they only tell us which rows have a document. For
each pending statement the fetcher walks back to its row through a new
session, re-opens the popup for a fresh reference, and downloads the
bytes with that session's cookies while the popup is still open.

Statements that already have a content hash are skipped without any
navigation, so running phase 2 twice over the same checkpoint fetches
nothing the second time. A failed statement is counted and left for the
next run; nothing is retried in a loop here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

from playwright.sync_api import Error as PlaywrightError

from chaco_facturas.collector.walker import PageSource
from chaco_facturas.config import setup_logging
from chaco_facturas.errors import CollectorError, is_fatal
from chaco_facturas.scraper.discovery import find_statement_row
from chaco_facturas.scraper.download import validate_pdf

if TYPE_CHECKING:
    from playwright.sync_api import Page

    from chaco_facturas.models import Account, CollectionRun, Statement, SupplyPoint
    from chaco_facturas.scraper.capture import DocumentCapture
    from chaco_facturas.scraper.discovery import EntityDiscoverer, StatementRow
    from chaco_facturas.scraper.download import FetchedDocument
    from chaco_facturas.scraper.navigator import Navigator
    from chaco_facturas.store.artifacts import ArtifactStore


logger = setup_logging(__name__)


class FetchSession(PageSource, Protocol):
    """A page source that can also fetch with its cookies."""

    def fetch_bytes(self, url: str) -> FetchedDocument: ...


@dataclass
class FetchFailure:
    statement_id: str
    reason: str


@dataclass
class FetchReport:
    """Outcome counts of one phase 2 pass."""

    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[FetchFailure] = field(default_factory=list)

    def record_failure(self, statement: Statement, reason: str) -> None:
        self.failed += 1
        self.failures.append(FetchFailure(statement.id, reason))
        logger.warning("Fetch failed for %s: %s", statement.full_invoice_number, reason)


def pending_statements(supply_point: SupplyPoint) -> list[Statement]:
    """Statements with a document that has not been stored yet."""
    return [s for s in supply_point.statements if s.has_document and not s.hash]


class Phase2Fetcher:
    """Fetch, validate, and store the documents of a collection run."""

    def __init__(
        self,
        session: FetchSession,
        discoverer: EntityDiscoverer,
        navigator: Navigator,
        capture: DocumentCapture,
        store: ArtifactStore,
        min_document_size: int = 1000,
    ) -> None:
        self.session = session
        self.discoverer = discoverer
        self.navigator = navigator
        self.capture = capture
        self.store = store
        self.min_document_size = min_document_size

    def fetch_all(self, run: CollectionRun) -> FetchReport:
        """Fetch every pending document of ``run``.

        Parameters
        ----------
        run : CollectionRun
            Checkpoint tree; statements are updated in place.

        Returns
        -------
        FetchReport
            Succeeded, failed, and skipped counts.

        Raises
        ------
        PersistenceError
            If the artifact store cannot write.
        """
        report = FetchReport()

        for account in run.accounts:
            work = []
            for supply_point in account.supply_points:
                report.skipped += sum(1 for s in supply_point.statements if s.has_document and s.hash)
                pending = pending_statements(supply_point)
                if pending:
                    work.append((supply_point, pending))
            if not work:
                continue

            logger.info(
                "Account %s: %d documents to fetch",
                account.id,
                sum(len(pending) for _, pending in work),
            )
            self._fetch_account(account, work, report)

        logger.info(
            "Phase 2 finished: %d fetched, %d failed, %d already stored",
            report.succeeded,
            report.failed,
            report.skipped,
        )
        return report

    def _fetch_account(
        self,
        account: Account,
        work: list[tuple[SupplyPoint, list[Statement]]],
        report: FetchReport,
    ) -> None:
        page = self.session.page
        needs_reentry = True

        for supply_point, pending in work:
            try:
                if needs_reentry:
                    self.session.return_home()
                    self.navigator.enter_account(page, account.list_id)
                else:
                    self.navigator.go_back_one_level(page)
                needs_reentry = False
                rows = self._open_statements(page, supply_point)
            except (CollectorError, PlaywrightError) as e:
                if is_fatal(e):
                    raise
                for statement in pending:
                    report.record_failure(statement, f"navigation: {e}")
                needs_reentry = True
                continue

            for statement in pending:
                row = find_statement_row(rows, statement.full_invoice_number)
                if row is None:
                    report.record_failure(statement, "row not found on statements page")
                    continue
                self._fetch_statement(page, account, supply_point, statement, row, report)

    def _open_statements(self, page: Page, supply_point: SupplyPoint) -> list[StatementRow]:
        index = self.navigator.locate_supply_point(page, supply_point.supply_number)
        if index is None:
            logger.warning(
                "Supply point %s not found by number; using stored position %d",
                supply_point.id,
                supply_point.position,
            )
            index = supply_point.position
        self.navigator.enter_supply_point_statements(page, index)
        return self.discoverer.list_statement_rows(page)

    def _fetch_statement(
        self,
        page: Page,
        account: Account,
        supply_point: SupplyPoint,
        statement: Statement,
        row: StatementRow,
        report: FetchReport,
    ) -> None:
        try:
            ref = self.capture.trigger_and_capture_reference(page, row, keep_open=True)
            if ref is None:
                report.record_failure(statement, "no fresh document reference")
                return
            try:
                fetched = self.session.fetch_bytes(ref.url)
            finally:
                self.capture.close_popup(page)
            validate_pdf(fetched.content, self.min_document_size)
        except (CollectorError, PlaywrightError) as e:
            if is_fatal(e):
                raise
            report.record_failure(statement, str(e))
            return

        statement.attach_reference(ref)
        self.store.save(account, supply_point, statement, fetched.content)
        report.succeeded += 1
