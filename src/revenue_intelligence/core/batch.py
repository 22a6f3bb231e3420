"""Concurrency-bounded batch scanning.

A fixed pool of workers drains a queue of provider identifiers, calling the
single-provider scan collaborator for each one. Every identifier resolves to
exactly one outcome: a ``ScanResult`` or a ``ScanFailure``. One identifier's
error never aborts its siblings.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import re
from typing import Any, Awaitable, Callable, Iterable, NamedTuple, Optional, Union

from .errors import DataUnavailable, NotFound, ValidationError
from .models import BatchResult, FailureKind, ScanFailure, ScanOutcome, ScanResult

logger = logging.getLogger(__name__)

NPI_RE = re.compile(r"^[0-9]{10}$")

DEFAULT_MAX_CONCURRENCY = 5
DEFAULT_UNIT_TIMEOUT_SECONDS = 30.0

_UNSET: Any = object()

ScanFn = Callable[[str], Union[Awaitable[ScanResult], ScanResult]]


class BatchLimits(NamedTuple):
    """Allowed number of distinct identifiers for one batch."""

    min_size: int
    max_size: int
    kind: str


GROUP_SCAN_LIMITS = BatchLimits(2, 50, "group scan")
PORTFOLIO_LIMITS = BatchLimits(2, 20, "portfolio analysis")


def get_max_concurrency() -> int:
    value = int(os.environ.get("SCAN_MAX_CONCURRENCY", str(DEFAULT_MAX_CONCURRENCY)))
    if value < 1:
        raise ValidationError(f"SCAN_MAX_CONCURRENCY must be at least 1, got {value}")
    return value


def get_unit_timeout() -> Optional[float]:
    value = float(os.environ.get("SCAN_UNIT_TIMEOUT_SECONDS", str(DEFAULT_UNIT_TIMEOUT_SECONDS)))
    return value if value > 0 else None


def is_valid_npi(npi: object) -> bool:
    return isinstance(npi, str) and NPI_RE.match(npi) is not None


def dedupe(npis: Iterable[str]) -> list[str]:
    """Drop repeated identifiers, keeping first-seen order."""
    return list(dict.fromkeys(npis))


def validate_npis(raw: Iterable[str], limits: BatchLimits) -> list[str]:
    """Pre-flight validation for a batch request.

    Raises ValidationError on any malformed identifier or when the number of
    distinct identifiers falls outside ``limits``.
    """
    if isinstance(raw, str):
        raise ValidationError("Expected a list of NPIs, got a single string")
    npis = list(raw)
    invalid = [n for n in npis if not is_valid_npi(n)]
    if invalid:
        shown = ", ".join(repr(n) for n in invalid[:5])
        raise ValidationError(f"NPIs must be exactly 10 digits; invalid: {shown}")

    unique = dedupe(npis)
    if len(unique) < limits.min_size:
        raise ValidationError(f"A {limits.kind} needs at least {limits.min_size} distinct NPIs, got {len(unique)}")
    if len(unique) > limits.max_size:
        raise ValidationError(f"Maximum {limits.max_size} NPIs per {limits.kind}, got {len(unique)}")
    return unique


def _is_async(scan: ScanFn) -> bool:
    return inspect.iscoroutinefunction(scan) or inspect.iscoroutinefunction(getattr(scan, "__call__", None))


async def _run_blocking(npi: str, scan: ScanFn, timeout: Optional[float]) -> ScanResult:
    """Run a blocking collaborator on a thread, bounded by ``timeout``.

    A thread cannot be cancelled, so on timeout the caller's worker slot stays
    taken until the thread returns. The number of collaborator calls in flight
    never exceeds the pool size.
    """
    thread = asyncio.ensure_future(asyncio.to_thread(scan, npi))
    try:
        return await asyncio.wait_for(asyncio.shield(thread), timeout)
    except asyncio.TimeoutError:
        await asyncio.wait({thread})
        if not thread.cancelled():
            thread.exception()
        raise


async def _scan_one(npi: str, scan: ScanFn, timeout: Optional[float]) -> ScanOutcome:
    """Run one unit and convert any error into a failure entry."""
    try:
        if _is_async(scan):
            result = await asyncio.wait_for(scan(npi), timeout)
        else:
            result = await _run_blocking(npi, scan, timeout)
    except asyncio.TimeoutError:
        logger.warning("Scan for NPI %s timed out", npi)
        message = f"Scan timed out after {timeout:g}s" if timeout is not None else "Scan timed out"
        return ScanFailure(npi=npi, kind=FailureKind.TIMEOUT, message=message)
    except NotFound as exc:
        logger.warning("No billing record for NPI %s", npi)
        return ScanFailure(npi=npi, kind=FailureKind.NOT_FOUND, message=str(exc))
    except DataUnavailable as exc:
        logger.warning("Reference data unavailable scanning NPI %s: %s", npi, exc)
        return ScanFailure(npi=npi, kind=FailureKind.DATA_UNAVAILABLE, message=str(exc))
    except ValidationError as exc:
        return ScanFailure(npi=npi, kind=FailureKind.INVALID, message=str(exc))
    except Exception as exc:
        logger.warning("Scan failed for NPI %s: %s", npi, exc, exc_info=True)
        return ScanFailure(npi=npi, kind=FailureKind.ERROR, message=str(exc) or type(exc).__name__)

    if not isinstance(result, ScanResult):
        logger.warning("Scan for NPI %s returned %s instead of a ScanResult", npi, type(result).__name__)
        return ScanFailure(npi=npi, kind=FailureKind.ERROR, message="Scan returned no result")
    return result


async def scan_batch(
    npis: Iterable[str],
    scan: ScanFn,
    max_concurrency: Optional[int] = None,
    unit_timeout: Optional[float] = _UNSET,
) -> BatchResult:
    """Scan every distinct identifier with at most ``max_concurrency`` in flight.

    Args:
        npis: Provider identifiers. Duplicates are scanned once.
        scan: Single-provider scan collaborator, sync or async.
        max_concurrency: Worker pool size. Defaults to SCAN_MAX_CONCURRENCY.
        unit_timeout: Seconds allowed per identifier; None disables it.
            Defaults to SCAN_UNIT_TIMEOUT_SECONDS.

    Returns:
        Mapping keyed by exactly the distinct input identifiers. Malformed
        identifiers are recorded as ``invalid`` failures without being passed
        to ``scan``.
    """
    if max_concurrency is None:
        max_concurrency = get_max_concurrency()
    if max_concurrency < 1:
        raise ValidationError(f"max_concurrency must be at least 1, got {max_concurrency}")
    timeout = get_unit_timeout() if unit_timeout is _UNSET else unit_timeout

    unique = dedupe(npis)
    results: BatchResult = {}
    queue: asyncio.Queue[str] = asyncio.Queue()
    for npi in unique:
        if is_valid_npi(npi):
            queue.put_nowait(npi)
        else:
            results[npi] = ScanFailure(npi=str(npi), kind=FailureKind.INVALID, message="NPI must be exactly 10 digits")

    async def worker() -> list[tuple[str, ScanOutcome]]:
        collected = []
        while True:
            try:
                npi = queue.get_nowait()
            except asyncio.QueueEmpty:
                return collected
            collected.append((npi, await _scan_one(npi, scan, timeout)))

    pool_size = min(max_concurrency, queue.qsize())
    if pool_size:
        per_worker = await asyncio.gather(*(worker() for _ in range(pool_size)))
        for collected in per_worker:
            results.update(collected)

    succeeded = sum(1 for outcome in results.values() if isinstance(outcome, ScanResult))
    logger.info(
        "Batch scan finished: %d requested, %d succeeded, %d failed (pool of %d)",
        len(unique), succeeded, len(unique) - succeeded, pool_size,
    )
    return results


def successes(results: BatchResult) -> dict[str, ScanResult]:
    return {npi: r for npi, r in results.items() if isinstance(r, ScanResult)}


def failures(results: BatchResult) -> list[ScanFailure]:
    return [r for r in results.values() if isinstance(r, ScanFailure)]
