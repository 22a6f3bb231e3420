"""Group scan and portfolio entry points.

Each entry point validates the whole request before scheduling any scan,
fans out through ``scan_batch`` and folds the results into a report.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from .aggregate import DEFAULT_GROUP_LABEL, aggregate
from .batch import GROUP_SCAN_LIMITS, PORTFOLIO_LIMITS, ScanFn, scan_batch, validate_npis
from .errors import DataUnavailable
from .models import BatchResult, FailureKind, GroupScanResult, PortfolioAnalysis, ScanFailure
from .portfolio import DEFAULT_PORTFOLIO_LABEL, analyze_portfolio

logger = logging.getLogger(__name__)


def _raise_if_dataset_missing(results: BatchResult) -> None:
    """Raise when reference data, not the providers, failed every scan."""
    if results and all(
        isinstance(r, ScanFailure) and r.kind == FailureKind.DATA_UNAVAILABLE for r in results.values()
    ):
        first = next(iter(results.values()))
        raise DataUnavailable(f"No provider could be scored: {first.message}")


async def run_group_scan(
    npis: Iterable[str],
    scan: ScanFn,
    group_label: str = DEFAULT_GROUP_LABEL,
    max_concurrency: Optional[int] = None,
) -> GroupScanResult:
    """Validate, batch-scan and aggregate a group of 2-50 providers.

    Raises:
        ValidationError: before any scan when an NPI is malformed or the
            distinct count is out of range.
        DataUnavailable: when every provider failed for lack of reference data.
    """
    unique = validate_npis(npis, GROUP_SCAN_LIMITS)
    logger.info("Group scan %r: %d providers", group_label, len(unique))
    results = await scan_batch(unique, scan, max_concurrency=max_concurrency)
    _raise_if_dataset_missing(results)
    return aggregate(results, group_label)


async def run_portfolio_analysis(
    npis: Iterable[str],
    scan: ScanFn,
    portfolio_label: str = DEFAULT_PORTFOLIO_LABEL,
    max_concurrency: Optional[int] = None,
) -> PortfolioAnalysis:
    """Validate, batch-scan and analyze a portfolio of 2-20 providers."""
    unique = validate_npis(npis, PORTFOLIO_LIMITS)
    logger.info("Portfolio analysis %r: %d providers", portfolio_label, len(unique))
    results = await scan_batch(unique, scan, max_concurrency=max_concurrency)
    _raise_if_dataset_missing(results)
    return analyze_portfolio(results, portfolio_label)
