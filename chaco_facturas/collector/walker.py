"""Phase 1: walk accounts, supply points, and statements.

The walk is strictly sequential on one page:

    account list -> account -> supply point statements -> back -> ...
                             -> account list (next account)

Each account and each supply point is one retryable unit. A failed
attempt leaves no partial children behind: supply points and statements
are only attached once the attempt that produced them has finished.
After retries are exhausted the entity is marked failed and the walk
moves on; only fatal errors stop the run.

Identifier correction
---------------------
Accounts are discovered under a positional placeholder. The first
statement row of the first visited supply point carries the
authoritative account id and supply number in its invoice number; the
account and supply point are patched before any statement is built, so
every statement is created with final keys.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Protocol

from playwright.sync_api import Error as PlaywrightError

from chaco_facturas.collector.retry import RetryPolicy, recover_quietly, run_with_retries
from chaco_facturas.config import setup_logging
from chaco_facturas.errors import CollectorError, StructuralElementMissing, is_fatal
from chaco_facturas.models import Account, CollectionRun, EntityStatus, Statement, SupplyPoint
from chaco_facturas.scraper.discovery import build_statement
from chaco_facturas.utils.parsing import invoice_account_and_supply

if TYPE_CHECKING:
    from collections.abc import Callable

    from playwright.sync_api import Page

    from chaco_facturas.scraper.capture import DocumentCapture
    from chaco_facturas.scraper.discovery import EntityDiscoverer, StatementRow
    from chaco_facturas.scraper.navigator import Navigator

logger = setup_logging(__name__)


class PageSource(Protocol):
    """What the collectors need from a browser session."""

    @property
    def page(self) -> Page: ...

    def return_home(self) -> None: ...


class Phase1Collector:
    """Discover the account tree and capture document references."""

    def __init__(
        self,
        session: PageSource,
        discoverer: EntityDiscoverer,
        navigator: Navigator,
        capture: DocumentCapture,
        policy: RetryPolicy | None = None,
        capture_documents: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.session = session
        self.discoverer = discoverer
        self.navigator = navigator
        self.capture = capture
        self.policy = policy or RetryPolicy()
        self.capture_documents = capture_documents
        self.sleep = sleep
        self._on_statements_page = False

    def run(self) -> CollectionRun:
        """Walk every account listed on the landing page.

        Returns
        -------
        CollectionRun
            The collected tree with counters consistent with it.
        """
        run = CollectionRun()
        refs = self.discoverer.list_accounts(self.session.page)
        run.accounts = [Account.discovered(ref.list_id) for ref in refs]
        run.recount()
        logger.info("Discovered %d accounts", run.total_accounts)

        for number, account in enumerate(run.accounts, start=1):
            logger.info("Account %d/%d: %s", number, run.total_accounts, account.list_id)
            outcome = run_with_retries(
                partial(self._process_account, account),
                self.policy,
                label=f"Account {account.list_id}",
                recover=self.session.return_home,
                sleep=self.sleep,
            )
            if outcome.succeeded:
                account.status = EntityStatus.DONE
                run.accounts_processed += 1
            else:
                account.status = EntityStatus.FAILED
                account.supply_points = []
            run.recount()

        logger.info("Phase 1 finished: %d/%d accounts processed", run.accounts_processed, run.total_accounts)
        return run

    # -------------------------------------------------------------------------
    # Account level
    # -------------------------------------------------------------------------

    def _process_account(self, account: Account) -> None:
        page = self.session.page
        account.supply_points = []

        self.navigator.enter_account(page, account.list_id)
        self._on_statements_page = False

        name = self.discoverer.read_account_name(page)
        if name:
            account.display_name = name

        refs = self.discoverer.list_supply_points(page)
        if not refs:
            msg = f"Account {account.list_id} shows no supply points"
            raise StructuralElementMissing(msg)

        supply_points = [
            SupplyPoint.create(
                account.id,
                ref.supply_number,
                street=ref.street,
                house_number=ref.house_number,
                floor=ref.floor,
                position=ref.position,
            )
            for ref in refs
        ]
        account.supply_points = supply_points
        logger.info("Account %s (%s): %d supply points", account.list_id, account.display_name, len(refs))

        recover = partial(self._return_to_account_page, page)
        for index, supply_point in enumerate(supply_points):
            is_last = index == len(supply_points) - 1
            outcome = run_with_retries(
                partial(self._process_supply_point, account, supply_point, is_last),
                self.policy,
                label=f"Supply point {supply_point.supply_number} of account {account.list_id}",
                recover=recover,
                sleep=self.sleep,
            )
            if outcome.succeeded:
                supply_point.status = EntityStatus.DONE
            else:
                supply_point.status = EntityStatus.FAILED
                supply_point.statements = []
                if not is_last:
                    recover_quietly(recover, label=f"supply point {supply_point.supply_number}")

        self.session.return_home()

    def _return_to_account_page(self, page: Page) -> None:
        if self._on_statements_page:
            self.navigator.go_back_one_level(page)
            self._on_statements_page = False

    # -------------------------------------------------------------------------
    # Supply point level
    # -------------------------------------------------------------------------

    def _process_supply_point(self, account: Account, supply_point: SupplyPoint, is_last: bool) -> None:
        page = self.session.page
        supply_point.statements = []

        self.navigator.enter_supply_point_statements(page, supply_point.position)
        self._on_statements_page = True
        rows = self.discoverer.list_statement_rows(page)
        if rows:
            self._correct_identifiers(account, supply_point, rows[0].invoice_number)

        statements = []
        for row in rows:
            keys = invoice_account_and_supply(row.invoice_number)
            if keys is None or keys[1] != supply_point.supply_number:
                continue
            statement = build_statement(row, account.id, supply_point.id)
            if statement.has_document and self.capture_documents:
                self._capture_reference(page, row, statement)
            statements.append(statement)

        if not is_last:
            self.navigator.go_back_one_level(page)
            self._on_statements_page = False

        supply_point.statements = statements
        logger.info(
            "Supply point %s: %d statements (%d with document)",
            supply_point.id,
            len(statements),
            sum(1 for s in statements if s.has_document),
        )

    def _correct_identifiers(self, account: Account, supply_point: SupplyPoint, invoice_number: str) -> None:
        keys = invoice_account_and_supply(invoice_number)
        if keys is None:
            logger.warning("Cannot read account/supply from invoice number %r", invoice_number)
            return

        real_account_id, real_supply_number = keys
        if not account.id_confirmed and account.adopt_authoritative_id(real_account_id):
            logger.info("Account %s corrected to id %s", account.list_id, real_account_id)
        if supply_point.supply_number != real_supply_number:
            logger.info("Supply point %s corrected to number %s", supply_point.id, real_supply_number)
            supply_point.rebind(account.id, real_supply_number)

    def _capture_reference(self, page: Page, row: StatementRow, statement: Statement) -> None:
        try:
            ref = self.capture.trigger_and_capture_reference(page, row)
        except (CollectorError, PlaywrightError) as e:
            if is_fatal(e):
                raise
            logger.warning("Reference capture failed for %s: %s", statement.full_invoice_number, e)
            return
        if ref is not None:
            statement.attach_reference(ref)


# =============================================================================
# Run summary
# =============================================================================


@dataclass
class RunSummary:
    """Per-level processed/failed counts of a collection run."""

    accounts_total: int
    accounts_processed: int
    accounts_failed: int
    supply_points_total: int
    supply_points_processed: int
    supply_points_failed: int
    statements: int
    statements_with_document: int
    statements_without_document: int
    references_captured: int
    documents_stored: int

    @property
    def success_rate(self) -> float:
        if self.accounts_total == 0:
            return 0.0
        return self.accounts_processed / self.accounts_total * 100


def summarize(run: CollectionRun) -> RunSummary:
    """Aggregate a :class:`RunSummary` from the run tree."""
    supply_points = [sp for _, sp in run.iter_supply_points()]
    statements = [s for _, _, s in run.iter_statements()]
    with_document = sum(1 for s in statements if s.has_document)
    return RunSummary(
        accounts_total=len(run.accounts),
        accounts_processed=sum(1 for a in run.accounts if a.status is EntityStatus.DONE),
        accounts_failed=sum(1 for a in run.accounts if a.status is EntityStatus.FAILED),
        supply_points_total=len(supply_points),
        supply_points_processed=sum(1 for sp in supply_points if sp.status is EntityStatus.DONE),
        supply_points_failed=sum(1 for sp in supply_points if sp.status is EntityStatus.FAILED),
        statements=len(statements),
        statements_with_document=with_document,
        statements_without_document=len(statements) - with_document,
        references_captured=sum(1 for s in statements if s.document_url),
        documents_stored=sum(1 for s in statements if s.hash),
    )


def format_summary(summary: RunSummary) -> str:
    """Render a summary as log-friendly lines."""
    lines = [
        "=" * 60,
        "COLLECTION SUMMARY",
        "=" * 60,
        f"Accounts:       {summary.accounts_processed}/{summary.accounts_total} processed, "
        f"{summary.accounts_failed} failed ({summary.success_rate:.1f}%)",
        f"Supply points:  {summary.supply_points_processed}/{summary.supply_points_total} processed, "
        f"{summary.supply_points_failed} failed",
        f"Statements:     {summary.statements} "
        f"({summary.statements_with_document} with document, "
        f"{summary.statements_without_document} without)",
        f"References:     {summary.references_captured} captured",
        f"Documents:      {summary.documents_stored} stored",
        "=" * 60,
    ]
    return "\n".join(lines)
