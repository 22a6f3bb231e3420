"""Group/portfolio aggregation over batch scan results.

Statistics are computed only over successful scans. Any ordering in the
report is imposed here by an explicit sort: providers rank by overall score
descending with ties broken by NPI ascending, independent of the order in
which scans completed.
"""

from __future__ import annotations

import logging
import statistics
from collections import Counter
from typing import Mapping

from .models import (
    AggregateStatus,
    GapCategory,
    GroupScanResult,
    MissedRevenue,
    PracticeActionItem,
    Program,
    ProgramAdoption,
    ProviderSummary,
    ScanFailure,
    ScanOutcome,
    ScanResult,
    ScoreOutlier,
    SpecialtyBreakdown,
    TierCount,
)
from .tiers import SCORE_TIERS, get_score_tier, round_half_up

logger = logging.getLogger(__name__)

DEFAULT_GROUP_LABEL = "Group Practice"
UNKNOWN = "Unknown"

# Tukey fences need a few points before quartiles mean anything.
OUTLIER_MIN_PROVIDERS = 4
OUTLIER_IQR_MULTIPLIER = 1.5

# Per-provider gap (USD) above which a provider counts toward a practice action.
PRACTICE_ACTIONS = {
    GapCategory.CODING: (
        5000,
        "Optimize E&M Coding Across Practice",
        "{n} provider{s} could benefit from documentation review and coding education. Focus on "
        "shifting appropriate visits from 99213 to 99214/99215.",
        "medium",
    ),
    GapCategory.CCM: (
        3000,
        "Launch Chronic Care Management (CCM) Program",
        "{n} provider{s} have eligible patients not enrolled in CCM. A practice-wide program with "
        "dedicated care coordinators can capture this revenue.",
        "medium",
    ),
    GapCategory.RPM: (
        2000,
        "Implement Remote Patient Monitoring (RPM)",
        "{n} provider{s} have patients who would benefit from RPM. Deploy connected devices for "
        "blood pressure, glucose, and weight monitoring.",
        "hard",
    ),
    GapCategory.AWV: (
        1000,
        "Increase Annual Wellness Visit (AWV) Capture",
        "{n} provider{s} are under-billing AWVs. Implement proactive outreach and scheduling for "
        "Medicare wellness visits.",
        "easy",
    ),
    GapCategory.BHI: (
        1000,
        "Add Behavioral Health Integration (BHI)",
        "{n} provider{s} have patients eligible for BHI services. Integrate depression screening and "
        "behavioral health follow-up into workflows.",
        "medium",
    ),
}


def rank_key(result: ScanResult) -> tuple[int, str]:
    return (-result.overall, result.npi)


def _provider_summary(rank: int, result: ScanResult) -> ProviderSummary:
    provider = result.provider
    current = provider.total_paid
    missed = result.missed_revenue.total
    return ProviderSummary(
        rank=rank,
        npi=provider.npi,
        name=provider.name or f"Provider {provider.npi}",
        specialty=provider.specialty or UNKNOWN,
        city=provider.city,
        state=provider.state or UNKNOWN,
        revenue_score=result.overall,
        percentile=result.score.percentile,
        score_tier=result.score.label,
        score_color=result.score.color,
        current_revenue=current,
        missed_revenue=missed,
        potential_revenue=current + missed,
        missed_by_category=result.missed_revenue,
    )


def _counts(values: list[str]) -> dict[str, int]:
    """Counts ordered by frequency, then name."""
    counter = Counter(values)
    return dict(sorted(counter.items(), key=lambda kv: (-kv[1], kv[0])))


def _sum_missed(results: list[ScanResult]) -> MissedRevenue:
    return MissedRevenue(**{
        c.value: sum(r.missed_revenue.amount(c) for r in results) for c in GapCategory
    })


def _program_adoption(results: list[ScanResult]) -> dict[Program, ProgramAdoption]:
    adoption = {}
    for program in Program:
        enrolled = 0
        eligible = 0
        for result in results:
            gap = result.program_gap(program)
            if gap is not None:
                enrolled += gap.current_patients
                eligible += gap.eligible_patients
        rate = round_half_up(enrolled / eligible * 100) if eligible > 0 else 0
        adoption[program] = ProgramAdoption(enrolled=enrolled, eligible=eligible, rate=rate)
    return adoption


def _specialty_breakdown(summaries: list[ProviderSummary]) -> list[SpecialtyBreakdown]:
    grouped: dict[str, list[ProviderSummary]] = {}
    for s in summaries:
        grouped.setdefault(s.specialty, []).append(s)
    breakdown = [
        SpecialtyBreakdown(
            specialty=specialty,
            count=len(members),
            total_revenue=sum(m.current_revenue for m in members),
        )
        for specialty, members in grouped.items()
    ]
    return sorted(breakdown, key=lambda b: (-b.count, b.specialty))


def _score_distribution(scores: list[int]) -> list[TierCount]:
    labels = Counter(get_score_tier(s).label for s in scores)
    return [
        TierCount(tier=tier.label, count=labels[tier.label], color=tier.color)
        for tier in SCORE_TIERS
        if labels[tier.label] > 0
    ]


def detect_outliers(summaries: list[ProviderSummary]) -> list[ScoreOutlier]:
    """Providers whose score falls outside the Tukey fences of the group."""
    if len(summaries) < OUTLIER_MIN_PROVIDERS:
        return []
    scores = [s.revenue_score for s in summaries]
    q1, _, q3 = statistics.quantiles(scores, n=4, method="inclusive")
    spread = OUTLIER_IQR_MULTIPLIER * (q3 - q1)
    low, high = q1 - spread, q3 + spread

    outliers = []
    for s in summaries:
        if s.revenue_score > high:
            outliers.append(ScoreOutlier(npi=s.npi, revenue_score=s.revenue_score, direction="high"))
        elif s.revenue_score < low:
            outliers.append(ScoreOutlier(npi=s.npi, revenue_score=s.revenue_score, direction="low"))
    return outliers


def build_practice_action_plan(summaries: list[ProviderSummary]) -> list[PracticeActionItem]:
    """Practice-wide actions, largest total opportunity first."""
    items = []
    for category, (threshold, title, template, difficulty) in PRACTICE_ACTIONS.items():
        affected = [s for s in summaries if s.missed_by_category.amount(category) > threshold]
        if not affected:
            continue
        n = len(affected)
        items.append(PracticeActionItem(
            priority=0,
            title=title,
            description=template.format(n=n, s="s" if n > 1 else ""),
            affected_providers=n,
            total_estimated_revenue=sum(s.missed_by_category.amount(category) for s in affected),
            difficulty=difficulty,
            category=category,
        ))
    items.sort(key=lambda item: -item.total_estimated_revenue)
    return [item.model_copy(update={"priority": i}) for i, item in enumerate(items, 1)]


def aggregate(results: Mapping[str, ScanOutcome], group_label: str = DEFAULT_GROUP_LABEL) -> GroupScanResult:
    """Roll a batch result map into a group report.

    Returns a report with ``status == EMPTY`` (never raises) when no scan in
    ``results`` succeeded.
    """
    requested = len(results)
    succeeded = [r for r in results.values() if isinstance(r, ScanResult)]
    failed = sorted(
        (r for r in results.values() if isinstance(r, ScanFailure)),
        key=lambda f: f.npi,
    )

    if not succeeded:
        logger.info("Group %r has no successful scans out of %d requested", group_label, requested)
        return GroupScanResult(
            group_label=group_label,
            status=AggregateStatus.EMPTY,
            requested=requested,
            succeeded=0,
            failures=failed,
        )

    ranked = sorted(succeeded, key=rank_key)
    summaries = [_provider_summary(rank, r) for rank, r in enumerate(ranked, 1)]
    scores = [s.revenue_score for s in summaries]

    total_current = sum(s.current_revenue for s in summaries)
    total_missed = sum(s.missed_revenue for s in summaries)
    revenue_increase_pct = round_half_up(total_missed / total_current * 100) if total_current > 0 else 0

    return GroupScanResult(
        group_label=group_label,
        status=AggregateStatus.OK,
        requested=requested,
        succeeded=len(summaries),
        failures=failed,
        providers=summaries,
        mean_score=statistics.mean(scores),
        median_score=statistics.median(scores),
        total_current_revenue=total_current,
        total_missed_revenue=total_missed,
        mean_missed_revenue=total_missed / len(summaries),
        total_potential_revenue=total_current + total_missed,
        revenue_increase_pct=revenue_increase_pct,
        missed_by_category=_sum_missed(ranked),
        score_distribution=_score_distribution(scores),
        program_adoption=_program_adoption(ranked),
        specialty_counts=_counts([s.specialty for s in summaries]),
        state_counts=_counts([s.state for s in summaries]),
        specialty_breakdown=_specialty_breakdown(summaries),
        top_performer=summaries[0],
        bottom_performer=min(summaries, key=lambda s: (s.revenue_score, s.npi)),
        biggest_opportunity=min(summaries, key=lambda s: (-s.missed_revenue, s.npi)),
        outliers=detect_outliers(summaries),
        practice_action_plan=build_practice_action_plan(summaries),
    )
