"""Single-provider scan backed by the reference store.

``ProviderScanner`` is the collaborator handed to the batch scanner: it reads
one provider's billing summary, optionally fills missing registry fields
from NPPES, pairs it with its specialty benchmark and scores it.
"""

from __future__ import annotations

import logging
import os
from typing import Awaitable, Callable, Optional

from .core.benchmarks import BenchmarkRegistry, registry
from .core.clients import nppes
from .core.errors import NotFound
from .core.models import DataSource, ProviderBillingSummary, ScanResult
from .core.revenue import calculate_scan_result
from .ingestors import get_provider_summary

logger = logging.getLogger(__name__)

ProviderSource = Callable[[str], Awaitable[Optional[ProviderBillingSummary]]]


def nppes_lookup_enabled() -> bool:
    return os.environ.get("NPPES_LOOKUP", "1").strip().lower() not in ("0", "false", "no", "off")


class ProviderScanner:
    """Async scan collaborator: NPI in, ``ScanResult`` out.

    Raises NotFound when the store has no billing row for the NPI and
    DataUnavailable (from the registry) when benchmarks are not loaded.
    """

    def __init__(
        self,
        benchmarks: BenchmarkRegistry = registry,
        source: ProviderSource = get_provider_summary,
        registry_lookup: Optional[bool] = None,
    ):
        self.benchmarks = benchmarks
        self.source = source
        self.registry_lookup = nppes_lookup_enabled() if registry_lookup is None else registry_lookup

    async def __call__(self, npi: str) -> ScanResult:
        summary = await self.source(npi)
        if summary is None:
            raise NotFound(npi)

        if self.registry_lookup and not (summary.specialty and summary.state):
            summary = await self._enrich(summary)

        benchmark, used_fallback = self.benchmarks.resolve(summary.specialty)
        if used_fallback:
            logger.info(
                "No benchmark for specialty %r (NPI %s); using %s",
                summary.specialty, npi, benchmark.specialty,
            )
        data_source = DataSource.NATIONAL_DEFAULT if used_fallback else DataSource.SPECIALTY
        return calculate_scan_result(summary, benchmark, data_source)

    async def _enrich(self, summary: ProviderBillingSummary) -> ProviderBillingSummary:
        listing = await nppes.lookup_provider(summary.npi)
        if listing is None:
            return summary
        updates = {
            "name": summary.name or listing.full_name,
            "credential": summary.credential or listing.credential,
            "specialty": summary.specialty or listing.specialty,
            "state": summary.state or listing.state,
            "city": summary.city or listing.city,
        }
        return summary.model_copy(update=updates)
