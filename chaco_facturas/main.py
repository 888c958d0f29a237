#!/usr/bin/env python3
"""Collection orchestrator - walk the portal, then fetch and store invoices.

This module runs the two SAMEEP phases and the SECHEEP listing:
1. phase1: log in, walk accounts/supply points/statements, write a checkpoint
2. phase2: load the latest checkpoint, fetch pending PDFs, write an updated checkpoint
3. all: phase1, a fixed pause, then phase2
4. secheep: list SECHEEP invoices and write a JSON export

Usage (from project root):
    python -m chaco_facturas.main phase1
    python -m chaco_facturas.main phase2 --checkpoint data/checkpoints/sameep-datos-....json
    python -m chaco_facturas.main all --no-db --pause 10
    python -m chaco_facturas.main secheep --no-headless

Exit codes:
    0   Run finished, even if some accounts or documents failed
    1   Fatal error: missing credentials, browser launch failure, login
        failure, document store unreachable, or no checkpoint to resume
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# Add project root to path when running directly
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from chaco_facturas.collector import (  # noqa: E402
    FetchReport,
    Phase1Collector,
    Phase2Fetcher,
    RetryPolicy,
    format_summary,
    summarize,
)
from chaco_facturas.config import (  # noqa: E402
    ARTIFACT_DIR,
    CHECKPOINT_DIR,
    DATA_DIR,
    Credentials,
    PortalSettings,
    load_credentials,
    load_mongo_settings,
    load_portal_settings,
    load_secheep_settings,
    setup_logging,
)
from chaco_facturas.errors import CollectorError, PersistenceError, is_fatal  # noqa: E402
from chaco_facturas.models import CollectionRun  # noqa: E402
from chaco_facturas.scraper import (  # noqa: E402
    BrowserSession,
    DocumentCapture,
    EntityDiscoverer,
    Navigator,
    PortalSession,
    SecheepCollector,
)
from chaco_facturas.store import (  # noqa: E402
    ArtifactStore,
    MongoRepository,
    latest_checkpoint,
    load_checkpoint,
    save_checkpoint,
    save_json,
)

logger = setup_logging(__name__)


def run_phase1(
    settings: PortalSettings,
    credentials: Credentials,
    headless: bool = True,
    policy: RetryPolicy | None = None,
    repository: MongoRepository | None = None,
    capture_documents: bool = True,
) -> tuple[CollectionRun, Path]:
    """Walk the portal and write a checkpoint.

    Returns
    -------
    tuple[CollectionRun, Path]
        The collected run and the checkpoint it was saved to.
    """
    with PortalSession(settings, headless=headless) as session:
        session.login(credentials)
        collector = Phase1Collector(
            session,
            EntityDiscoverer(settings),
            Navigator(settings),
            DocumentCapture(settings),
            policy=policy or RetryPolicy.from_settings(settings),
            capture_documents=capture_documents,
        )
        run = collector.run()

    path = save_checkpoint(run, CHECKPOINT_DIR, settings.checkpoint_prefix)
    logger.info("\n%s", format_summary(summarize(run)))

    if repository is not None:
        repository.persist_run(run)
    return run, path


def run_phase2(
    settings: PortalSettings,
    credentials: Credentials,
    headless: bool = True,
    checkpoint: Path | None = None,
    repository: MongoRepository | None = None,
    extract_text: bool = False,
    keep_binary: bool = False,
) -> FetchReport:
    """Fetch the pending documents of a checkpoint and save an updated one.

    Parameters
    ----------
    settings : PortalSettings
        SAMEEP portal settings.
    credentials : Credentials
        Portal login.
    headless : bool, optional
        Run the browser without UI.
    checkpoint : Path | None, optional
        Checkpoint to resume; the latest one in ``CHECKPOINT_DIR`` when ``None``.
    repository : MongoRepository | None, optional
        Document store mirror.
    extract_text : bool, optional
        Store extracted PDF text on each statement.
    keep_binary : bool, optional
        Keep raw PDF bytes on each statement (and in the checkpoint).

    Returns
    -------
    FetchReport
        Succeeded, failed, and skipped counts.

    Raises
    ------
    PersistenceError
        If there is no checkpoint to resume.
    """
    path = checkpoint or latest_checkpoint(CHECKPOINT_DIR, settings.checkpoint_prefix)
    if path is None:
        msg = f"No {settings.checkpoint_prefix} checkpoint in {CHECKPOINT_DIR}; run phase1 first"
        raise PersistenceError(msg)

    run = load_checkpoint(path)
    store = ArtifactStore(ARTIFACT_DIR, repository, extract_text=extract_text, keep_binary=keep_binary)

    with PortalSession(settings, headless=headless) as session:
        session.login(credentials)
        fetcher = Phase2Fetcher(
            session,
            EntityDiscoverer(settings),
            Navigator(settings),
            DocumentCapture(settings),
            store,
            min_document_size=settings.min_document_size,
        )
        try:
            report = fetcher.fetch_all(run)
        finally:
            # Hashes of documents stored before a fatal error must survive it
            save_checkpoint(run, CHECKPOINT_DIR, settings.checkpoint_prefix)

    logger.info("\n%s", format_summary(summarize(run)))
    logger.info(
        "Fetch report: %d succeeded, %d failed, %d already stored",
        report.succeeded,
        report.failed,
        report.skipped,
    )
    return report


def run_secheep(headless: bool = True) -> Path:
    """List SECHEEP invoices and write them to a JSON export."""
    settings = load_secheep_settings()
    credentials = load_credentials("SECHEEP")

    with BrowserSession(
        headless=headless,
        default_timeout_ms=settings.default_timeout_ms,
        navigation_timeout_ms=settings.navigation_timeout_ms,
    ) as session:
        collector = SecheepCollector(session, settings)
        collector.login(credentials)
        invoices = collector.collect()

    logger.info("SECHEEP: %d invoices", len(invoices))
    return save_json([invoice.to_dict() for invoice in invoices], DATA_DIR, settings.export_prefix)


# =============================================================================
# CLI
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Collect invoices from the SAMEEP and SECHEEP portals.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m chaco_facturas.main phase1                 # Walk portal, write checkpoint
  python -m chaco_facturas.main phase2                 # Fetch PDFs of the latest checkpoint
  python -m chaco_facturas.main all --pause 30         # Both phases
  python -m chaco_facturas.main secheep                # SECHEEP invoice listing
        """,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--no-headless", action="store_true", help="Show browser window")
    common.add_argument("--no-db", action="store_true", help="Don't mirror results to MongoDB")
    common.add_argument("--max-attempts", type=int, default=None, help="Attempts per account/supply point")

    fetch = argparse.ArgumentParser(add_help=False)
    fetch.add_argument("--extract-text", action="store_true", help="Store extracted PDF text")
    fetch.add_argument("--keep-binary", action="store_true", help="Keep PDF bytes in the checkpoint")

    subparsers = parser.add_subparsers(dest="command", required=True)
    phase1 = subparsers.add_parser("phase1", parents=[common], help="Collect structure and references")
    phase1.add_argument("--no-capture", action="store_true", help="Skip document reference capture")

    phase2 = subparsers.add_parser("phase2", parents=[common, fetch], help="Fetch pending documents")
    phase2.add_argument("--checkpoint", type=Path, default=None, help="Checkpoint file (default: latest)")

    all_phases = subparsers.add_parser("all", parents=[common, fetch], help="Run phase1 then phase2")
    all_phases.add_argument("--pause", type=float, default=5.0, help="Seconds between phases (default: 5)")

    subparsers.add_parser("secheep", parents=[common], help="List SECHEEP invoices")
    return parser


def _settings_from_args(args: argparse.Namespace) -> PortalSettings:
    settings = load_portal_settings()
    if args.max_attempts is not None:
        settings.max_attempts = args.max_attempts
    return settings


def _dispatch(args: argparse.Namespace, repository: MongoRepository | None) -> None:
    headless = not args.no_headless

    if args.command == "secheep":
        run_secheep(headless=headless)
        return

    settings = _settings_from_args(args)
    credentials = load_credentials("SAMEEP")

    if args.command in ("phase1", "all"):
        run_phase1(
            settings,
            credentials,
            headless=headless,
            repository=repository,
            capture_documents=not getattr(args, "no_capture", False),
        )

    if args.command == "all":
        logger.info("Pausing %.0f s before phase 2", args.pause)
        time.sleep(args.pause)

    if args.command in ("phase2", "all"):
        run_phase2(
            settings,
            credentials,
            headless=headless,
            checkpoint=getattr(args, "checkpoint", None),
            repository=repository,
            extract_text=args.extract_text,
            keep_binary=args.keep_binary,
        )


def main(argv: list[str] | None = None) -> int:
    """Parse CLI arguments and run the requested command.

    Returns
    -------
    int
        ``0`` when the run finished; ``1`` on a fatal error.
    """
    args = build_parser().parse_args(argv)

    repository = None
    try:
        # SECHEEP listings only go to the JSON export
        if not args.no_db and args.command != "secheep":
            repository = MongoRepository.connect(load_mongo_settings())
        _dispatch(args, repository)
    except CollectorError as e:
        if not is_fatal(e):
            raise
        logger.error("Fatal: %s", e)
        return 1
    finally:
        if repository is not None:
            repository.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
