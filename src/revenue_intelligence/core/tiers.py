"""Banding tables for scores, percentiles, and capture-rate grades.

Thresholds live in ordered tables so a recalibration is a data edit. Each
table is sorted by descending lower bound and its last row starts at 0, so
the bands partition [0, 100] with no gaps.
"""

from __future__ import annotations

import math
from typing import NamedTuple

from .models import Grade


class ScoreTier(NamedTuple):
    min_score: int
    label: str
    color: str


class PercentileSegment(NamedTuple):
    """Linear piece of the score → percentile curve starting at ``min_score``."""

    min_score: int
    base: int
    slope: float


class GradeBand(NamedTuple):
    min_rate: float
    grade: str
    label: str
    color: str
    bg_color: str


SCORE_TIERS: tuple[ScoreTier, ...] = (
    ScoreTier(90, "Elite", "#E8A824"),
    ScoreTier(75, "Strong", "#34d399"),
    ScoreTier(60, "Average", "#facc15"),
    ScoreTier(40, "Below Average", "#fb923c"),
    ScoreTier(0, "Critical", "#f87171"),
)

# Calibrated once against the national provider score distribution.
PERCENTILE_CURVE: tuple[PercentileSegment, ...] = (
    PercentileSegment(90, 95, 0.5),
    PercentileSegment(75, 70, 1.67),
    PercentileSegment(60, 35, 2.33),
    PercentileSegment(40, 10, 1.25),
    PercentileSegment(0, 0, 0.25),
)

GRADE_BANDS: tuple[GradeBand, ...] = (
    GradeBand(90, "A", "Excellent", "#34d399", "#10b98133"),
    GradeBand(75, "B", "Good", "#60a5fa", "#3b82f633"),
    GradeBand(60, "C", "Average", "#facc15", "#eab30833"),
    GradeBand(45, "D", "Below Average", "#fb923c", "#f9731633"),
    GradeBand(0, "F", "Poor", "#f87171", "#ef444433"),
)

# Capture-rate targets: (national target, points) per input.
CAPTURE_TARGETS = {
    "ccm": (15.0, 25.0),
    "rpm": (10.0, 20.0),
    "bhi": (8.0, 15.0),
    "awv": (50.0, 15.0),
    "em_99214": (55.0, 15.0),
    "em_99215": (15.0, 10.0),
}


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def clamp(value: float, low: float, high: float) -> float:
    if math.isnan(value):
        return low
    return max(low, min(high, value))


def get_score_tier(score: float) -> ScoreTier:
    """Return the presentation tier for an overall score."""
    for tier in SCORE_TIERS:
        if score >= tier.min_score:
            return tier
    return SCORE_TIERS[-1]


def estimate_percentile(overall_score: float) -> int:
    """Estimate a provider's population percentile from an overall score.

    Out-of-range scores are clamped to [0, 100]. The curve is non-decreasing
    and every segment starts at or above where the previous one ended, so
    the result is monotonic across the whole domain.
    """
    score = clamp(overall_score, 0, 100)
    for segment in PERCENTILE_CURVE:
        if score >= segment.min_score:
            percentile = segment.base + round_half_up((score - segment.min_score) * segment.slope)
            return int(clamp(percentile, 1, 100))
    return 1


def calculate_grade(capture_rate: float) -> Grade:
    """Map a capture rate (0-100) to a letter grade."""
    rate = clamp(capture_rate, 0, 100)
    band = next((b for b in GRADE_BANDS if rate >= b.min_rate), GRADE_BANDS[-1])
    return Grade(grade=band.grade, label=band.label, color=band.color, bg_color=band.bg_color)


def estimate_capture_rate(
    ccm_rate: float,
    rpm_rate: float,
    bhi_rate: float,
    awv_rate: float,
    pct_99214: float,
    pct_99215: float,
) -> int:
    """Estimate a capture rate from program adoption and E&M mix.

    All inputs are percentages (0-100). Programs count for 75 points and the
    E&M mix for 25; coding inputs stop earning above their target.
    """
    rates = {"ccm": ccm_rate, "rpm": rpm_rate, "bhi": bhi_rate, "awv": awv_rate}
    score = 0.0
    for key, value in rates.items():
        target, points = CAPTURE_TARGETS[key]
        score += clamp(value, 0.0, 100.0) / target * points
    for key, value in (("em_99214", pct_99214), ("em_99215", pct_99215)):
        target, points = CAPTURE_TARGETS[key]
        score += clamp(value, 0.0, target) / target * points
    return int(clamp(round_half_up(score), 0, 100))
