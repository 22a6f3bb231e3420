"""Missed-revenue estimation and single-provider scan assembly.

Gaps are priced at 2024 national Medicare non-facility rates. A gap is never
negative: billing above the benchmark-implied potential counts as zero missed
revenue, not as a credit against other categories.
"""

from __future__ import annotations

import logging
from typing import Optional

from .models import (
    ActionItem,
    ChronicPrevalence,
    CodingGap,
    DataSource,
    GapCategory,
    MissedRevenue,
    Program,
    ProgramGap,
    ProviderBillingSummary,
    ScanResult,
    SpecialtyBenchmark,
)
from .scoring import calculate_revenue_score
from .tiers import round_half_up

logger = logging.getLogger(__name__)

# E&M rates, lowest to highest complexity (99211-99215).
EM_RATES = (23.38, 56.64, 92.03, 130.04, 176.15)

RATES = {
    "99490": 66.0,   # CCM, first 20 min
    "99454": 55.72,  # RPM device supply / month
    "99457": 48.80,  # RPM first 20 min interactive
    "99484": 48.56,  # BHI
    "G0439": 118.88,  # subsequent AWV
}

PROGRAM_INFO = {
    Program.CCM: ("Chronic Care Management", "99490", RATES["99490"]),
    Program.RPM: ("Remote Patient Monitoring", "99454/99457", RATES["99454"] + RATES["99457"]),
    Program.BHI: ("Behavioral Health Integration", "99484", RATES["99484"]),
    Program.AWV: ("Annual Wellness Visits", "G0438/G0439", RATES["G0439"]),
}

ACTION_TEMPLATES = {
    GapCategory.CODING: (
        "Optimize E&M Coding Documentation",
        "Review documentation templates to support higher-level E&M codes. Focus on documenting "
        "medical decision-making complexity, number of diagnoses addressed, and data reviewed.",
        "Weeks 1-4",
        "easy",
    ),
    GapCategory.AWV: (
        "Launch Annual Wellness Visit Program",
        "Implement an AWV workflow with Health Risk Assessment forms and send outreach to Medicare "
        "patients without an AWV in the past 12 months.",
        "Weeks 2-6",
        "easy",
    ),
    GapCategory.CCM: (
        "Implement Chronic Care Management (99490)",
        "Identify patients with 2+ chronic conditions, set up the consent process, care plan "
        "templates, and monthly time tracking.",
        "Weeks 3-8",
        "medium",
    ),
    GapCategory.RPM: (
        "Deploy Remote Patient Monitoring",
        "Partner with a device vendor for blood pressure monitors and glucose meters. Enroll "
        "hypertension and diabetes patients first.",
        "Weeks 6-12",
        "hard",
    ),
    GapCategory.BHI: (
        "Add Behavioral Health Integration",
        "Implement PHQ-9 depression screening at all visits and develop care plans for patients "
        "screening positive.",
        "Weeks 4-10",
        "medium",
    ),
}


def _dollars(amount: float) -> float:
    return float(round_half_up(amount))


def estimate_eligible_patients(program: Program, patients: int, chronic: ChronicPrevalence) -> int:
    """Estimate program-eligible patients from specialty chronic-condition prevalence."""
    if program == Program.CCM:
        share = min(chronic.diabetes * 0.6 + chronic.hypertension * 0.5 + chronic.heart_failure * 0.8, 0.45)
    elif program == Program.RPM:
        share = min(chronic.hypertension * 0.4 + chronic.diabetes * 0.3 + chronic.copd * 0.5, 0.35)
    elif program == Program.BHI:
        share = chronic.depression * 0.7
    else:
        share = 1.0
    return round_half_up(patients * share)


def calculate_coding_gap(provider: ProviderBillingSummary, benchmark: SpecialtyBenchmark) -> Optional[CodingGap]:
    """Revenue at the benchmark E&M mix minus current E&M revenue."""
    total = provider.em.total
    if total <= 0:
        return None

    counts = provider.em.as_tuple()
    optimal_mix = benchmark.em_distribution.as_tuple()
    current_mix = tuple(c / total for c in counts)

    current_revenue = sum(c * rate for c, rate in zip(counts, EM_RATES))
    optimal_revenue = sum(total * pct * rate for pct, rate in zip(optimal_mix, EM_RATES))
    gap = max(0.0, optimal_revenue - current_revenue)

    low_observed = sum(current_mix[:3])
    low_expected = sum(optimal_mix[:3])
    excess_low_visits = round_half_up((low_observed - low_expected) * total)
    if excess_low_visits > 0:
        shifts = f"Shift ~{excess_low_visits} visits from 99211-99213 to higher-level codes"
    else:
        shifts = "E&M distribution is close to benchmark"

    return CodingGap(
        current=current_mix,
        optimal=optimal_mix,
        current_revenue=_dollars(current_revenue),
        optimal_revenue=_dollars(optimal_revenue),
        annual_gap=_dollars(gap),
        shifts_needed=shifts,
    )


def calculate_program_gap(
    program: Program,
    provider: ProviderBillingSummary,
    benchmark: SpecialtyBenchmark,
) -> ProgramGap:
    """Annual revenue left uncaptured by one program."""
    name, codes, rate = PROGRAM_INFO[program]
    usage = provider.usage(program)

    if usage.eligible is not None:
        eligible = usage.eligible
    else:
        eligible = estimate_eligible_patients(program, provider.unique_patients, benchmark.chronic)
    eligible = max(eligible, usage.enrolled)

    # AWV is billed once a year; the others monthly.
    annual_rate = rate if program == Program.AWV else rate * 12
    current = usage.payment if usage.payment > 0 else usage.enrolled * annual_rate
    potential = eligible * annual_rate

    return ProgramGap(
        program=program,
        program_name=name,
        codes=codes,
        eligible_patients=eligible,
        current_patients=usage.enrolled,
        capture_rate=usage.enrolled / eligible if eligible > 0 else 0.0,
        current_annual_revenue=_dollars(current),
        potential_annual_revenue=_dollars(potential),
        annual_gap=_dollars(max(0.0, potential - current)),
    )


def estimate_missed_revenue(
    coding_gap: Optional[CodingGap],
    program_gaps: list[ProgramGap],
) -> MissedRevenue:
    amounts = {g.program.value: g.annual_gap for g in program_gaps}
    return MissedRevenue(coding=coding_gap.annual_gap if coding_gap else 0.0, **amounts)


def build_action_plan(missed: MissedRevenue) -> list[ActionItem]:
    """One action per category with a positive gap, largest gap first."""
    ranked = sorted(GapCategory, key=lambda c: -missed.amount(c))
    items = []
    for category in ranked:
        amount = missed.amount(category)
        if amount <= 0:
            continue
        title, description, timeline, difficulty = ACTION_TEMPLATES[category]
        items.append(ActionItem(
            priority=len(items) + 1,
            title=title,
            description=description,
            timeline=timeline,
            estimated_revenue=amount,
            difficulty=difficulty,
            category=category,
        ))
    return items


def calculate_scan_result(
    provider: ProviderBillingSummary,
    benchmark: SpecialtyBenchmark,
    data_source: DataSource = DataSource.SPECIALTY,
) -> ScanResult:
    """Score a provider and estimate its missed revenue."""
    revenue_score = calculate_revenue_score(provider, benchmark)
    coding_gap = calculate_coding_gap(provider, benchmark)
    program_gaps = [calculate_program_gap(p, provider, benchmark) for p in Program]
    missed = estimate_missed_revenue(coding_gap, program_gaps)

    return ScanResult(
        provider=provider,
        benchmark=benchmark,
        data_source=data_source,
        score=revenue_score,
        coding_gap=coding_gap,
        program_gaps=program_gaps,
        missed_revenue=missed,
        action_plan=build_action_plan(missed),
    )
