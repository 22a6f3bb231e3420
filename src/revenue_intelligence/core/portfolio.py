"""Portfolio analysis for acquisition and ownership groups.

Layers acquisition scoring and concentration metrics on top of the ordinary
group report. A practice with a low Revenue Score and a large patient base is
the best target: most of its upside is still uncaptured.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Mapping, NamedTuple, Optional

from .aggregate import aggregate
from .models import (
    AcquisitionBreakdown,
    AcquisitionScore,
    ConcentrationMetrics,
    PortfolioAnalysis,
    PortfolioProvider,
    Program,
    ScanOutcome,
    ScanResult,
)
from .tiers import clamp, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_PORTFOLIO_LABEL = "Portfolio"

# Weights in hundredths; they sum to 100.
ACQUISITION_WEIGHTS = {
    "upside_potential": 35,
    "patient_base_value": 25,
    "optimization_readiness": 25,
    "market_position": 15,
}

# Post-acquisition revenue per patient relative to the specialty average.
OPTIMIZED_REVENUE_MULTIPLIER = 1.15
FALLBACK_REVENUE_PER_PATIENT = 400.0
FALLBACK_BENCHMARK_PATIENTS = 100.0

# Specialty adoption at which a missing program is an easy win.
MISSING_PROGRAM_ADOPTION = {
    Program.CCM: 0.02,
    Program.RPM: 0.01,
    Program.BHI: 0.01,
    Program.AWV: 0.05,
}
POINTS_PER_MISSING_PROGRAM = 22

TOP_N_SHARES = (1, 3)


class AcquisitionTier(NamedTuple):
    min_score: int
    label: str
    color: str
    description: str


ACQUISITION_TIERS = (
    AcquisitionTier(85, "Prime Target", "#2F5EA8", "Exceptional acquisition opportunity with massive upside"),
    AcquisitionTier(70, "Strong Opportunity", "#34d399", "Strong fundamentals with significant optimization potential"),
    AcquisitionTier(55, "Moderate Upside", "#facc15", "Reasonable opportunity with moderate improvement potential"),
    AcquisitionTier(35, "Limited Upside", "#fb923c", "Below-average returns, high revenue already captured"),
    AcquisitionTier(0, "Low Priority", "#a1a1aa", "Minimal upside, already optimized or low volume"),
)


def get_acquisition_tier(score: int) -> AcquisitionTier:
    for tier in ACQUISITION_TIERS:
        if score >= tier.min_score:
            return tier
    return ACQUISITION_TIERS[-1]


def _volume_multiplier(patients: int) -> float:
    if patients >= 200:
        return 1.3
    if patients >= 100:
        return 1.1
    if patients >= 50:
        return 1.0
    return 0.7


def _demand_score(provider_count: int) -> int:
    if provider_count > 20000:
        return 70
    if provider_count > 10000:
        return 55
    if provider_count > 5000:
        return 40
    return 30


def _revenue_scale(current_revenue: float) -> int:
    if current_revenue > 100000:
        return 30
    if current_revenue > 50000:
        return 20
    return 10


def missing_programs(result: ScanResult) -> list[Program]:
    """Programs the provider does not bill but its specialty commonly does."""
    adoption = result.benchmark.adoption
    return [
        program
        for program, threshold in MISSING_PROGRAM_ADOPTION.items()
        if not result.provider.usage(program).active and adoption.rate(program) >= threshold
    ]


def _em_readiness(result: ScanResult) -> int:
    em = result.provider.em
    if em.total <= 0:
        return 0
    gap = result.benchmark.em_distribution.pct_99214 - em.em_99214 / em.total
    if gap > 0.1:
        return 15
    if gap > 0.05:
        return 8
    return 0


def calculate_acquisition_score(result: ScanResult) -> AcquisitionScore:
    """Score how attractive a scanned practice is to an acquirer."""
    provider = result.provider
    benchmark = result.benchmark
    patients = provider.unique_patients
    current = provider.total_paid

    upside = int(clamp(round_half_up((100 - result.overall) * _volume_multiplier(patients)), 0, 100))

    bench_patients = max(benchmark.avg_medicare_patients or FALLBACK_BENCHMARK_PATIENTS, 1.0)
    patient_ratio = patients / bench_patients
    patient_base = int(clamp(round_half_up(min(patient_ratio, 2.0) * 50), 0, 100))

    missing = missing_programs(result)
    readiness = int(clamp(len(missing) * POINTS_PER_MISSING_PROGRAM + _em_readiness(result), 0, 100))

    market = int(clamp(_demand_score(benchmark.provider_count) + _revenue_scale(current), 0, 100))

    breakdown = AcquisitionBreakdown(
        upside_potential=upside,
        patient_base_value=patient_base,
        optimization_readiness=readiness,
        market_position=market,
    )
    weighted = sum(getattr(breakdown, name) * weight for name, weight in ACQUISITION_WEIGHTS.items())
    overall = max(0, min(100, (weighted + 50) // 100))

    revenue_per_patient = benchmark.avg_revenue_per_patient or FALLBACK_REVENUE_PER_PATIENT
    optimized = patients * revenue_per_patient * OPTIMIZED_REVENUE_MULTIPLIER
    estimated_upside = max(0, round_half_up(optimized - current))
    increase_pct = round_half_up(estimated_upside / current * 100) if current > 0 else 0

    tier = get_acquisition_tier(overall)
    return AcquisitionScore(
        overall=overall,
        label=tier.label,
        color=tier.color,
        description=tier.description,
        breakdown=breakdown,
        missing_programs=missing,
        current_revenue=current,
        projected_optimized_revenue=float(round_half_up(optimized)),
        estimated_upside_revenue=float(estimated_upside),
        revenue_increase_pct=increase_pct,
    )


def concentration_metrics(providers: list[PortfolioProvider]) -> Optional[ConcentrationMetrics]:
    """Revenue concentration and specialty mix across a portfolio.

    Shares are fractions in [0, 1]. The Herfindahl-Hirschman index is the sum
    of squared revenue shares: 1.0 when one provider earns everything, 1/n for
    an even split.
    """
    if not providers:
        return None

    total = sum(p.current_revenue for p in providers)
    revenues = sorted((p.current_revenue for p in providers), reverse=True)
    shares = [r / total for r in revenues] if total > 0 else [0.0] * len(revenues)

    top_1, top_3 = (min(sum(shares[:n]), 1.0) for n in TOP_N_SHARES)
    hhi = min(sum(s * s for s in shares), 1.0)

    counts = Counter(p.specialty for p in providers)
    mix = {
        specialty: count / len(providers)
        for specialty, count in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    }

    return ConcentrationMetrics(
        top_1_revenue_share=top_1,
        top_3_revenue_share=top_3,
        herfindahl_index=hhi,
        specialty_mix=mix,
    )


def _actions_for(result: ScanResult, acquisition: AcquisitionScore) -> list[str]:
    actions = []
    if acquisition.breakdown.optimization_readiness > 50:
        if not result.provider.ccm.active:
            actions.append("Implement CCM (99490) across eligible patients")
        if not result.provider.rpm.active:
            actions.append("Launch RPM program (99454/99457) for chronic conditions")
        if not result.provider.awv.active:
            actions.append("Increase AWV completion rates (G0438/G0439)")
    if acquisition.breakdown.upside_potential > 60:
        actions.append("Optimize E&M coding distribution toward 99214/99215")
    return actions


def analyze_portfolio(
    results: Mapping[str, ScanOutcome],
    portfolio_label: str = DEFAULT_PORTFOLIO_LABEL,
) -> PortfolioAnalysis:
    """Group report plus acquisition scores and concentration metrics."""
    group = aggregate(results, portfolio_label)
    if group.is_empty:
        return PortfolioAnalysis(portfolio_label=portfolio_label, group=group)

    scanned = sorted((r for r in results.values() if isinstance(r, ScanResult)), key=lambda r: r.npi)
    providers = []
    actions: dict[str, None] = {}
    for result in scanned:
        acquisition = calculate_acquisition_score(result)
        provider = result.provider
        providers.append(PortfolioProvider(
            npi=provider.npi,
            name=provider.name or f"NPI {provider.npi}",
            specialty=provider.specialty or "Unknown",
            state=provider.state,
            city=provider.city,
            revenue_score=result.overall,
            current_revenue=provider.total_paid,
            acquisition=acquisition,
        ))
        actions.update(dict.fromkeys(_actions_for(result, acquisition)))

    # Best targets first.
    providers.sort(key=lambda p: (-p.acquisition.overall, p.npi))

    total_current = sum(p.current_revenue for p in providers)
    total_projected = sum(p.acquisition.projected_optimized_revenue for p in providers)
    avg_score = sum(p.acquisition.overall for p in providers) / len(providers)
    logger.info(
        "Portfolio %r analyzed: %d providers, avg acquisition score %.1f",
        portfolio_label, len(providers), avg_score,
    )

    return PortfolioAnalysis(
        portfolio_label=portfolio_label,
        group=group,
        providers=providers,
        total_current_revenue=total_current,
        total_projected_revenue=total_projected,
        total_upside=max(0.0, total_projected - total_current),
        avg_acquisition_score=avg_score,
        concentration=concentration_metrics(providers),
        prioritized_actions=list(actions),
    )
