"""Bounded retry loop for entity-level work.

A unit of work (one account, one supply point) is attempted up to
``max_attempts`` times. Between attempts the loop sleeps for the backoff
and runs an optional recovery step that returns the browser to a known
page. Fatal errors (see :func:`chaco_facturas.errors.is_fatal`) are never
retried and propagate immediately.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from playwright.sync_api import Error as PlaywrightError

from chaco_facturas.config import setup_logging
from chaco_facturas.errors import CollectorError, is_fatal

if TYPE_CHECKING:
    from collections.abc import Callable

    from chaco_facturas.config import PortalSettings

logger = setup_logging(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt limit and pause between attempts."""

    max_attempts: int = 3
    backoff_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)

    @classmethod
    def from_settings(cls, settings: PortalSettings) -> RetryPolicy:
        return cls(max_attempts=settings.max_attempts, backoff_seconds=settings.backoff_seconds)


@dataclass
class RetryOutcome(Generic[T]):
    """Result of :func:`run_with_retries`."""

    succeeded: bool
    attempts: int
    value: T | None = None
    errors: list[BaseException] = field(default_factory=list)


def run_with_retries(
    action: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str,
    recover: Callable[[], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome[T]:
    """Run ``action`` until it succeeds or the policy is exhausted.

    Parameters
    ----------
    action : Callable[[], T]
        Unit of work. Collector and Playwright errors count as a failed
        attempt.
    policy : RetryPolicy
        Attempt limit and backoff.
    label : str
        Entity description used in log messages.
    recover : Callable[[], None] | None, optional
        Run after the backoff, before the next attempt. Its own failures are
        logged and do not consume an attempt.
    sleep : Callable[[float], None], optional
        Sleep function (tests pass a no-op).

    Returns
    -------
    RetryOutcome[T]
        Success flag, attempts used, the action's value, and the errors seen.

    Raises
    ------
    CollectorError
        Only fatal errors; they end the loop immediately.
    """
    outcome: RetryOutcome[T] = RetryOutcome(succeeded=False, attempts=0)

    for attempt in range(1, policy.max_attempts + 1):
        outcome.attempts = attempt
        try:
            outcome.value = action()
        except (CollectorError, PlaywrightError) as e:
            if is_fatal(e):
                raise
            outcome.errors.append(e)
            logger.warning("%s failed (attempt %d/%d): %s", label, attempt, policy.max_attempts, e)
        else:
            outcome.succeeded = True
            if attempt > 1:
                logger.info("%s succeeded on attempt %d", label, attempt)
            return outcome

        if attempt < policy.max_attempts:
            logger.info("Retrying %s in %.0f s", label, policy.backoff_seconds)
            sleep(policy.backoff_seconds)
            if recover is not None:
                recover_quietly(recover, label=label)

    logger.error("%s failed after %d attempts", label, policy.max_attempts)
    return outcome


def recover_quietly(recover: Callable[[], None], *, label: str) -> bool:
    """Run a recovery step, logging non-fatal failures instead of raising.

    Returns
    -------
    bool
        ``True`` if the step completed.

    Raises
    ------
    CollectorError
        Only fatal errors.
    """
    try:
        recover()
    except (CollectorError, PlaywrightError) as e:
        if is_fatal(e):
            raise
        logger.error("Recovery after %s failed: %s", label, e)
        return False
    return True
