"""JSON checkpoints of collection runs.

Checkpoint files are named ``<prefix>-<UTC timestamp>.json`` with a
timestamp that sorts lexicographically in time order, so the latest
checkpoint is simply the greatest matching file name.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from chaco_facturas.config import CHECKPOINT_DIR, setup_logging
from chaco_facturas.errors import PersistenceError
from chaco_facturas.models import CollectionRun

logger = setup_logging(__name__)

DEFAULT_PREFIX = "sameep-datos"


def checkpoint_filename(prefix: str = DEFAULT_PREFIX, now: datetime | None = None) -> str:
    """Build ``<prefix>-YYYY-MM-DDTHH-MM-SS-mmmZ.json`` (no colons)."""
    moment = (now or datetime.now(UTC)).astimezone(UTC)
    stamp = moment.strftime("%Y-%m-%dT%H-%M-%S-") + f"{moment.microsecond // 1000:03d}Z"
    return f"{prefix}-{stamp}.json"


def save_json(
    payload: dict[str, Any] | list[Any],
    directory: Path = CHECKPOINT_DIR,
    prefix: str = DEFAULT_PREFIX,
    now: datetime | None = None,
) -> Path:
    """Write ``payload`` to a new timestamped JSON file.

    Raises
    ------
    PersistenceError
        If the file cannot be written.
    """
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / checkpoint_filename(prefix, now)
    try:
        with path.open("w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
    except OSError as e:
        msg = f"Could not write {path}: {e}"
        raise PersistenceError(msg) from e

    logger.info("Saved %s", path)
    return path


def save_checkpoint(
    run: CollectionRun,
    directory: Path = CHECKPOINT_DIR,
    prefix: str = DEFAULT_PREFIX,
    now: datetime | None = None,
) -> Path:
    """Recount and persist a run as a new checkpoint file.

    Parameters
    ----------
    run : CollectionRun
        Run to persist.
    directory : Path, optional
        Checkpoint directory. Default ``data/checkpoints``.
    prefix : str, optional
        File name prefix.
    now : datetime | None, optional
        Timestamp for the file name (defaults to the current UTC time).

    Returns
    -------
    Path
        Path of the written checkpoint.
    """
    run.recount()
    return save_json(run.to_dict(), directory, prefix, now)


def load_checkpoint(path: Path) -> CollectionRun:
    """Load a checkpoint and reconcile its counters with its tree.

    Raises
    ------
    PersistenceError
        If the file is missing or is not valid JSON.
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        msg = f"Could not read checkpoint {path}: {e}"
        raise PersistenceError(msg) from e

    run = CollectionRun.from_dict(data)
    if not run.counters_consistent():
        logger.warning("Checkpoint %s counters disagree with its contents; recounting", path.name)
        run.recount()
        run.accounts_processed = run.expected_counters()["accounts_processed"]

    logger.info(
        "Loaded checkpoint %s: %d accounts, %d statements",
        path.name,
        run.total_accounts,
        run.total_statements,
    )
    return run


def latest_checkpoint(directory: Path = CHECKPOINT_DIR, prefix: str = DEFAULT_PREFIX) -> Path | None:
    """Return the lexicographically greatest ``<prefix>-*.json`` file, if any."""
    if not directory.exists():
        return None
    candidates = sorted(p for p in directory.glob(f"{prefix}-*.json") if p.is_file())
    return candidates[-1] if candidates else None
