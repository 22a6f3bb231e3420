"""Revenue Score engine.

Maps a provider's billing summary and its specialty benchmark to a 0-100
"credit score" for revenue health. Five factors are scored independently and
combined with fixed weights (see ``models.FACTOR_WEIGHTS``). Scoring is pure:
the same inputs always produce the same breakdown.

A factor whose inputs are missing or would divide by zero scores the neutral
midpoint (50) instead of failing the scan.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

from .models import (
    EMCounts,
    EMDistribution,
    Program,
    ProgramRates,
    ProgramUsage,
    ProviderBillingSummary,
    RevenueScore,
    ScoreBreakdown,
    SpecialtyBenchmark,
)
from .tiers import clamp, estimate_percentile, get_score_tier, round_half_up

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50

# Relative value of each program inside the utilization factor.
PROGRAM_POINTS = {
    Program.CCM: 25,
    Program.RPM: 20,
    Program.BHI: 15,
    Program.AWV: 40,
}

# Programs adopted by fewer than 1% of a specialty are irrelevant to it.
RELEVANT_ADOPTION_RATE = 0.01

# Revenue ratio at which the efficiency factor reaches two thirds of 100.
REVENUE_HALF_SATURATION = 0.5

# Patient volume (relative to benchmark) that earns the full volume factor.
VOLUME_SATURATION_RATIO = 2.0

# Smallest share of the specialty's code breadth expected from a tiny practice.
MIN_DIVERSITY_VOLUME_FACTOR = 0.25


def _bounded(value: float) -> int:
    return int(clamp(round_half_up(value), 0, 100))


def score_em_coding(em: EMCounts, expected: EMDistribution) -> int:
    """Score how closely the E&M level mix tracks the benchmark.

    Uses a one-sided earth mover's distance over the five levels: only mass
    sitting at lower complexity than the benchmark is penalized. Coding at or
    above the benchmark mix scores 100.
    """
    total = em.total
    if total <= 0:
        # No office visits (pathology, radiology, ...)
        return NEUTRAL_SCORE

    observed = [count / total for count in em.as_tuple()]
    benchmark = expected.as_tuple()

    shortfall = 0.0
    cum_observed = 0.0
    cum_expected = 0.0
    for obs, exp in zip(observed[:-1], benchmark[:-1]):
        cum_observed += obs
        cum_expected += exp
        shortfall += max(0.0, cum_observed - cum_expected)

    distance = shortfall / (len(observed) - 1)
    return _bounded(100 * (1 - distance))


def program_adoption_rate(usage: ProgramUsage, unique_patients: int) -> Optional[float]:
    """Enrolled / eligible, or enrolled / panel size when eligibility is unknown."""
    if usage.eligible:
        return usage.enrolled / usage.eligible
    if unique_patients > 0:
        return usage.enrolled / unique_patients
    return None


def score_program_utilization(provider: ProviderBillingSummary, rates: ProgramRates) -> int:
    """Weighted average of per-program adoption relative to the benchmark."""
    relevant = [p for p in Program if rates.rate(p) >= RELEVANT_ADOPTION_RATE]
    if not relevant:
        return NEUTRAL_SCORE

    earned = 0.0
    total_points = 0
    for program in relevant:
        points = PROGRAM_POINTS[program]
        total_points += points
        usage = provider.usage(program)
        rate = program_adoption_rate(usage, provider.unique_patients)
        if rate is None:
            credit = 1.0 if usage.active else 0.0
        else:
            credit = min(rate / rates.rate(program), 1.0)
        earned += points * credit

    return _bounded(100 * earned / total_points)


def score_revenue_efficiency(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> int:
    """Revenue per patient against the benchmark, saturating at both ends.

    ``100 * r / (r + 0.5)``: parity (r = 1) scores 67, r → ∞ approaches 100,
    r = 0 scores 0.
    """
    if provider.unique_patients <= 0 or benchmark.avg_revenue_per_patient <= 0:
        return NEUTRAL_SCORE
    ratio = (provider.total_paid / provider.unique_patients) / benchmark.avg_revenue_per_patient
    return _bounded(100 * ratio / (ratio + REVENUE_HALF_SATURATION))


def score_service_diversity(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> int:
    """Distinct billing codes against a volume-adjusted specialty expectation."""
    codes = provider.distinct_code_count
    if codes is None or benchmark.expected_distinct_codes <= 0:
        return NEUTRAL_SCORE

    expected = benchmark.expected_distinct_codes
    if provider.unique_patients > 0 and benchmark.avg_medicare_patients > 0:
        volume = provider.unique_patients / benchmark.avg_medicare_patients
        expected *= clamp(math.sqrt(volume), MIN_DIVERSITY_VOLUME_FACTOR, 1.0)

    return _bounded(100 * min(codes / expected, 1.0))


def score_patient_volume(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> int:
    """Unique patients against the benchmark panel, log-damped and capped."""
    if provider.unique_patients <= 0 or benchmark.avg_medicare_patients <= 0:
        return NEUTRAL_SCORE
    ratio = provider.unique_patients / benchmark.avg_medicare_patients
    return _bounded(100 * math.log1p(ratio) / math.log1p(VOLUME_SATURATION_RATIO))


def score(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> ScoreBreakdown:
    """Compute the five-factor breakdown.

    The caller is responsible for pairing the provider with the right
    specialty benchmark.
    """
    return ScoreBreakdown(
        em_coding=score_em_coding(provider.em, benchmark.em_distribution),
        program_util=score_program_utilization(provider, benchmark.adoption),
        revenue_efficiency=score_revenue_efficiency(provider, benchmark),
        service_diversity=score_service_diversity(provider, benchmark),
        patient_volume=score_patient_volume(provider, benchmark),
    )


def calculate_revenue_score(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> RevenueScore:
    """Score a provider and attach its tier and estimated percentile."""
    breakdown = score(provider, benchmark)
    overall = breakdown.overall
    tier = get_score_tier(overall)
    return RevenueScore(
        overall=overall,
        label=tier.label,
        color=tier.color,
        percentile=estimate_percentile(overall),
        breakdown=breakdown,
    )
