"""Collection phases.

- Phase1Collector: walk accounts, supply points, and statements; capture references
- Phase2Fetcher: re-navigate, fetch, validate, and store documents
- run_with_retries: bounded retry loop shared by both
"""

from chaco_facturas.collector.fetcher import FetchReport, Phase2Fetcher
from chaco_facturas.collector.retry import RetryOutcome, RetryPolicy, recover_quietly, run_with_retries
from chaco_facturas.collector.walker import Phase1Collector, RunSummary, format_summary, summarize

__all__ = [
    "FetchReport",
    "Phase1Collector",
    "Phase2Fetcher",
    "RetryOutcome",
    "RetryPolicy",
    "RunSummary",
    "format_summary",
    "recover_quietly",
    "run_with_retries",
    "summarize",
]
