"""Pydantic models for provider billing, scan results and group reports.

Every scoring, batch, and aggregation function in ``core`` speaks in these
types. All of them are frozen: results are built once per request and never
mutated afterwards.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

NPI_PATTERN = r"^[0-9]{10}$"

# Factor weights in hundredths; they sum to 100.
FACTOR_WEIGHTS = {
    "em_coding": 25,
    "program_util": 25,
    "revenue_efficiency": 20,
    "service_diversity": 15,
    "patient_volume": 15,
}


class Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Program(str, Enum):
    """Monitored care-management programs."""

    CCM = "ccm"
    RPM = "rpm"
    BHI = "bhi"
    AWV = "awv"


class GapCategory(str, Enum):
    """Missed-revenue categories."""

    CODING = "coding"
    CCM = "ccm"
    RPM = "rpm"
    BHI = "bhi"
    AWV = "awv"


class DataSource(str, Enum):
    """Where a scan's benchmark came from."""

    SPECIALTY = "specialty"
    NATIONAL_DEFAULT = "national_default"


# ─── Provider billing ──────────────────────────────────────────────────────


class EMCounts(Frozen):
    """Established-patient office visit counts per E&M level."""

    em_99211: int = Field(default=0, ge=0)
    em_99212: int = Field(default=0, ge=0)
    em_99213: int = Field(default=0, ge=0)
    em_99214: int = Field(default=0, ge=0)
    em_99215: int = Field(default=0, ge=0)

    @property
    def total(self) -> int:
        return self.em_99211 + self.em_99212 + self.em_99213 + self.em_99214 + self.em_99215

    def as_tuple(self) -> tuple[int, int, int, int, int]:
        """Counts ordered from lowest to highest complexity."""
        return (self.em_99211, self.em_99212, self.em_99213, self.em_99214, self.em_99215)


class ProgramUsage(Frozen):
    """A provider's participation in one care program."""

    enrolled: int = Field(default=0, ge=0, description="Patients billed for the program")
    eligible: Optional[int] = Field(default=None, ge=0, description="Eligible patients, when known")
    services: int = Field(default=0, ge=0)
    payment: float = Field(default=0.0, ge=0.0)

    @property
    def active(self) -> bool:
        return self.enrolled > 0 or self.services > 0


class ProviderBillingSummary(Frozen):
    """Billing facts for one provider, as read from the reference dataset."""

    npi: str = Field(pattern=NPI_PATTERN)
    name: str = ""
    credential: str = ""
    specialty: str = ""
    state: str = ""
    city: str = ""
    em: EMCounts = Field(default_factory=EMCounts)
    ccm: ProgramUsage = Field(default_factory=ProgramUsage)
    rpm: ProgramUsage = Field(default_factory=ProgramUsage)
    bhi: ProgramUsage = Field(default_factory=ProgramUsage)
    awv: ProgramUsage = Field(default_factory=ProgramUsage)
    total_allowed: float = Field(default=0.0, ge=0.0)
    total_paid: float = Field(default=0.0, ge=0.0)
    total_services: int = Field(default=0, ge=0)
    distinct_code_count: Optional[int] = Field(default=None, ge=0)
    unique_patients: int = Field(default=0, ge=0)

    def usage(self, program: Program) -> ProgramUsage:
        return getattr(self, program.value)


# ─── Benchmarks ────────────────────────────────────────────────────────────


class EMDistribution(Frozen):
    """Expected share of E&M visits at each level. Shares sum to 1."""

    pct_99211: float = Field(default=0.0, ge=0.0, le=1.0)
    pct_99212: float = Field(default=0.0, ge=0.0, le=1.0)
    pct_99213: float = Field(default=0.0, ge=0.0, le=1.0)
    pct_99214: float = Field(default=0.0, ge=0.0, le=1.0)
    pct_99215: float = Field(default=0.0, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_sum(self) -> "EMDistribution":
        total = sum(self.as_tuple())
        if abs(total - 1.0) > 0.02:
            raise ValueError(f"E&M distribution must sum to 1, got {total:.4f}")
        return self

    def as_tuple(self) -> tuple[float, float, float, float, float]:
        return (self.pct_99211, self.pct_99212, self.pct_99213, self.pct_99214, self.pct_99215)


class ProgramRates(Frozen):
    """Expected adoption rate per program, each in [0, 1]."""

    ccm: float = Field(default=0.0, ge=0.0, le=1.0)
    rpm: float = Field(default=0.0, ge=0.0, le=1.0)
    bhi: float = Field(default=0.0, ge=0.0, le=1.0)
    awv: float = Field(default=0.0, ge=0.0, le=1.0)

    def rate(self, program: Program) -> float:
        return getattr(self, program.value)


class ChronicPrevalence(Frozen):
    """Share of a specialty's Medicare panel with each chronic condition."""

    diabetes: float = Field(default=0.27, ge=0.0, le=1.0)
    hypertension: float = Field(default=0.58, ge=0.0, le=1.0)
    heart_failure: float = Field(default=0.14, ge=0.0, le=1.0)
    depression: float = Field(default=0.18, ge=0.0, le=1.0)
    copd: float = Field(default=0.11, ge=0.0, le=1.0)


class SpecialtyBenchmark(Frozen):
    """Reference statistics for every provider sharing a specialty."""

    specialty: str
    provider_count: int = Field(default=0, ge=0)
    em_distribution: EMDistribution
    adoption: ProgramRates = Field(default_factory=ProgramRates)
    avg_medicare_patients: float = Field(default=0.0, ge=0.0)
    avg_total_payment: float = Field(default=0.0, ge=0.0)
    avg_revenue_per_patient: float = Field(default=0.0, ge=0.0)
    expected_distinct_codes: float = Field(default=20.0, ge=0.0)
    chronic: ChronicPrevalence = Field(default_factory=ChronicPrevalence)


# ─── Scores ────────────────────────────────────────────────────────────────


class ScoreBreakdown(Frozen):
    """The five weighted factors behind a Revenue Score."""

    em_coding: int = Field(ge=0, le=100)
    program_util: int = Field(ge=0, le=100)
    revenue_efficiency: int = Field(ge=0, le=100)
    service_diversity: int = Field(ge=0, le=100)
    patient_volume: int = Field(ge=0, le=100)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall(self) -> int:
        weighted = sum(getattr(self, name) * weight for name, weight in FACTOR_WEIGHTS.items())
        # Half-up rounding of weighted / 100, kept in integers so x.5 never drifts.
        return max(0, min(100, (weighted + 50) // 100))


class RevenueScore(Frozen):
    """Overall score with its presentation tier and population percentile."""

    overall: int = Field(ge=0, le=100)
    label: str
    color: str = Field(description="Hex color of the score tier")
    percentile: int = Field(ge=1, le=100)
    breakdown: ScoreBreakdown


class Grade(Frozen):
    """Letter grade for a capture rate."""

    grade: str
    label: str
    color: str
    bg_color: str


# ─── Missed revenue ────────────────────────────────────────────────────────


class CodingGap(Frozen):
    """Distance between a provider's E&M mix and the benchmark mix."""

    current: tuple[float, float, float, float, float]
    optimal: tuple[float, float, float, float, float]
    current_revenue: float
    optimal_revenue: float
    annual_gap: float = Field(ge=0.0)
    shifts_needed: str


class ProgramGap(Frozen):
    """Uncaptured revenue for one care program."""

    program: Program
    program_name: str
    codes: str
    eligible_patients: int = Field(ge=0)
    current_patients: int = Field(ge=0)
    capture_rate: float = Field(ge=0.0)
    current_annual_revenue: float = Field(ge=0.0)
    potential_annual_revenue: float = Field(ge=0.0)
    annual_gap: float = Field(ge=0.0)


class MissedRevenue(Frozen):
    """Estimated annual missed revenue, decomposed by category."""

    coding: float = Field(default=0.0, ge=0.0)
    ccm: float = Field(default=0.0, ge=0.0)
    rpm: float = Field(default=0.0, ge=0.0)
    bhi: float = Field(default=0.0, ge=0.0)
    awv: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total(self) -> float:
        return self.coding + self.ccm + self.rpm + self.bhi + self.awv

    def amount(self, category: GapCategory) -> float:
        return getattr(self, category.value)


class ActionItem(Frozen):
    priority: int
    title: str
    description: str
    timeline: str
    estimated_revenue: float
    difficulty: str
    category: GapCategory


class ScanResult(Frozen):
    """Outcome of scanning a single provider."""

    provider: ProviderBillingSummary
    benchmark: SpecialtyBenchmark
    data_source: DataSource = DataSource.SPECIALTY
    score: RevenueScore
    coding_gap: Optional[CodingGap] = None
    program_gaps: list[ProgramGap] = Field(default_factory=list)
    missed_revenue: MissedRevenue
    action_plan: list[ActionItem] = Field(default_factory=list)
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def npi(self) -> str:
        return self.provider.npi

    @property
    def overall(self) -> int:
        return self.score.overall

    @property
    def benchmark_fallback(self) -> bool:
        return self.data_source == DataSource.NATIONAL_DEFAULT

    def program_gap(self, program: Program) -> Optional[ProgramGap]:
        return next((g for g in self.program_gaps if g.program == program), None)


class FailureKind(str, Enum):
    INVALID = "invalid"
    NOT_FOUND = "not_found"
    DATA_UNAVAILABLE = "data_unavailable"
    TIMEOUT = "timeout"
    ERROR = "error"


class ScanFailure(Frozen):
    """A per-identifier failure recorded inside a batch."""

    npi: str
    kind: FailureKind
    message: str = ""


ScanOutcome = Union[ScanResult, ScanFailure]
BatchResult = dict[str, ScanOutcome]


# ─── Group aggregation ─────────────────────────────────────────────────────


class AggregateStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"


class ProviderSummary(Frozen):
    """One provider's line in a group report."""

    rank: int = Field(ge=1)
    npi: str
    name: str
    specialty: str
    city: str
    state: str
    revenue_score: int
    percentile: int
    score_tier: str
    score_color: str
    current_revenue: float
    missed_revenue: float
    potential_revenue: float
    missed_by_category: MissedRevenue


class TierCount(Frozen):
    tier: str
    count: int
    color: str


class ProgramAdoption(Frozen):
    enrolled: int
    eligible: int
    rate: int = Field(description="Whole-number percentage")


class SpecialtyBreakdown(Frozen):
    specialty: str
    count: int
    total_revenue: float


class ScoreOutlier(Frozen):
    npi: str
    revenue_score: int
    direction: str = Field(description="'high' or 'low'")


class PracticeActionItem(Frozen):
    priority: int
    title: str
    description: str
    affected_providers: int
    total_estimated_revenue: float
    difficulty: str
    category: GapCategory


class GroupScanResult(Frozen):
    """Population statistics over the successful scans of a group."""

    group_label: str
    status: AggregateStatus
    scanned_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    requested: int = Field(ge=0)
    succeeded: int = Field(ge=0)
    failures: list[ScanFailure] = Field(default_factory=list)
    providers: list[ProviderSummary] = Field(default_factory=list)
    mean_score: Optional[float] = None
    median_score: Optional[float] = None
    total_current_revenue: float = 0.0
    total_missed_revenue: float = 0.0
    mean_missed_revenue: Optional[float] = None
    total_potential_revenue: float = 0.0
    revenue_increase_pct: int = 0
    missed_by_category: MissedRevenue = Field(default_factory=MissedRevenue)
    score_distribution: list[TierCount] = Field(default_factory=list)
    program_adoption: dict[Program, ProgramAdoption] = Field(default_factory=dict)
    specialty_counts: dict[str, int] = Field(default_factory=dict)
    state_counts: dict[str, int] = Field(default_factory=dict)
    specialty_breakdown: list[SpecialtyBreakdown] = Field(default_factory=list)
    top_performer: Optional[ProviderSummary] = None
    bottom_performer: Optional[ProviderSummary] = None
    biggest_opportunity: Optional[ProviderSummary] = None
    outliers: list[ScoreOutlier] = Field(default_factory=list)
    practice_action_plan: list[PracticeActionItem] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_counts(self) -> "GroupScanResult":
        if self.succeeded > self.requested:
            raise ValueError("succeeded cannot exceed requested")
        return self

    @property
    def failed(self) -> int:
        return self.requested - self.succeeded

    @property
    def is_empty(self) -> bool:
        return self.status == AggregateStatus.EMPTY


# ─── Portfolio analysis ────────────────────────────────────────────────────


class AcquisitionBreakdown(Frozen):
    upside_potential: int = Field(ge=0, le=100)
    patient_base_value: int = Field(ge=0, le=100)
    optimization_readiness: int = Field(ge=0, le=100)
    market_position: int = Field(ge=0, le=100)


class AcquisitionScore(Frozen):
    """How attractive a practice is to an acquirer who will optimize it."""

    overall: int = Field(ge=0, le=100)
    label: str
    color: str
    description: str
    breakdown: AcquisitionBreakdown
    missing_programs: list[Program] = Field(default_factory=list)
    current_revenue: float
    projected_optimized_revenue: float
    estimated_upside_revenue: float = Field(ge=0.0)
    revenue_increase_pct: int


class PortfolioProvider(Frozen):
    npi: str
    name: str
    specialty: str
    state: str
    city: str
    revenue_score: int
    current_revenue: float
    acquisition: AcquisitionScore


class ConcentrationMetrics(Frozen):
    """How revenue and specialties are spread across a portfolio."""

    top_1_revenue_share: float = Field(ge=0.0, le=1.0)
    top_3_revenue_share: float = Field(ge=0.0, le=1.0)
    herfindahl_index: float = Field(ge=0.0, le=1.0)
    specialty_mix: dict[str, float] = Field(default_factory=dict)


class PortfolioAnalysis(Frozen):
    """Group report plus acquisition and concentration metrics."""

    portfolio_label: str
    group: GroupScanResult
    providers: list[PortfolioProvider] = Field(default_factory=list)
    total_current_revenue: float = 0.0
    total_projected_revenue: float = 0.0
    total_upside: float = 0.0
    avg_acquisition_score: Optional[float] = None
    concentration: Optional[ConcentrationMetrics] = None
    prioritized_actions: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.group.is_empty


# ─── NPI registry ──────────────────────────────────────────────────────────


class RegistryProvider(Frozen):
    """A provider as listed in the public NPPES registry."""

    npi: str
    entity_type: str = Field(description="'individual' or 'organization'")
    first_name: str = ""
    last_name: str = ""
    full_name: str = ""
    credential: str = ""
    specialty: str = ""
    taxonomy_code: str = ""
    taxonomy_description: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    phone: str = ""
