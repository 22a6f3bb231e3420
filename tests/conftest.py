"""Shared fixtures: synthetic providers, scan results and fake scan collaborators."""

import asyncio
from typing import Optional

import pytest

from revenue_intelligence.core.benchmarks import DEFAULT_BENCHMARKS, BenchmarkRegistry
from revenue_intelligence.core.models import (
    EMCounts,
    MissedRevenue,
    ProviderBillingSummary,
    RevenueScore,
    ScanResult,
    ScoreBreakdown,
    SpecialtyBenchmark,
)
from revenue_intelligence.core.tiers import estimate_percentile, get_score_tier

# Provider NPIs
NPI_A = "1000000001"
NPI_B = "1000000002"
NPI_C = "1000000003"
NPI_D = "1000000004"
NPI_E = "1000000005"


def _benchmark(specialty: str) -> SpecialtyBenchmark:
    return next(b for b in DEFAULT_BENCHMARKS if b.specialty == specialty)


@pytest.fixture
def internal_medicine() -> SpecialtyBenchmark:
    return _benchmark("Internal Medicine")


@pytest.fixture
def cardiology() -> SpecialtyBenchmark:
    return _benchmark("Cardiology")


@pytest.fixture
def benchmark_registry() -> BenchmarkRegistry:
    """A fresh registry loaded with the built-in defaults."""
    reg = BenchmarkRegistry()
    reg.load(DEFAULT_BENCHMARKS)
    return reg


@pytest.fixture
def make_provider():
    def _make(npi: str = NPI_A, **overrides) -> ProviderBillingSummary:
        fields = {
            "npi": npi,
            "name": f"Provider {npi[-2:]}",
            "specialty": "Internal Medicine",
            "state": "TX",
            "city": "Austin",
            "em": EMCounts(em_99212=30, em_99213=300, em_99214=600, em_99215=70),
            "total_paid": 77297.0,
            "unique_patients": 169,
            "distinct_code_count": 20,
        }
        fields.update(overrides)
        return ProviderBillingSummary(**fields)

    return _make


@pytest.fixture
def make_result(internal_medicine):
    """Build a ScanResult with a fixed overall score, bypassing the scorer."""

    def _make(
        npi: str,
        score: int,
        *,
        specialty: str = "Internal Medicine",
        state: str = "TX",
        total_paid: float = 50000.0,
        unique_patients: int = 150,
        missed: Optional[MissedRevenue] = None,
        benchmark: Optional[SpecialtyBenchmark] = None,
    ) -> ScanResult:
        tier = get_score_tier(score)
        breakdown = ScoreBreakdown(
            em_coding=score,
            program_util=score,
            revenue_efficiency=score,
            service_diversity=score,
            patient_volume=score,
        )
        return ScanResult(
            provider=ProviderBillingSummary(
                npi=npi,
                name=f"Provider {npi[-2:]}",
                specialty=specialty,
                state=state,
                total_paid=total_paid,
                unique_patients=unique_patients,
            ),
            benchmark=benchmark or internal_medicine,
            score=RevenueScore(
                overall=breakdown.overall,
                label=tier.label,
                color=tier.color,
                percentile=estimate_percentile(score),
                breakdown=breakdown,
            ),
            missed_revenue=missed or MissedRevenue(),
        )

    return _make


class FakeScanner:
    """Async scan collaborator returning canned outcomes.

    ``outcomes`` maps NPI -> ScanResult or an exception instance to raise.
    Tracks every call and the peak number of scans in flight.
    """

    def __init__(self, outcomes: dict, delay: float = 0.01):
        self.outcomes = outcomes
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.peak_in_flight = 0

    async def __call__(self, npi: str) -> ScanResult:
        self.calls.append(npi)
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            outcome = self.outcomes[npi]
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_scanner():
    return FakeScanner
