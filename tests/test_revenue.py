"""Tests for missed-revenue estimation and single-provider scans."""

import pytest

from revenue_intelligence.core.models import (
    ChronicPrevalence,
    DataSource,
    EMCounts,
    GapCategory,
    MissedRevenue,
    Program,
    ProgramUsage,
)
from revenue_intelligence.core.revenue import (
    build_action_plan,
    calculate_coding_gap,
    calculate_program_gap,
    calculate_scan_result,
    estimate_eligible_patients,
)


@pytest.mark.parametrize("program,expected", [
    (Program.CCM, 45),  # capped at 45%
    (Program.RPM, 35),  # capped at 35%
    (Program.BHI, 13),
    (Program.AWV, 100),
])
def test_eligible_patient_estimates(program, expected):
    assert estimate_eligible_patients(program, 100, ChronicPrevalence()) == expected


def test_coding_gap_without_visits(make_provider, internal_medicine):
    assert calculate_coding_gap(make_provider(em=EMCounts()), internal_medicine) is None


def test_coding_gap_for_undercoder(make_provider, internal_medicine):
    gap = calculate_coding_gap(make_provider(em=EMCounts(em_99213=100)), internal_medicine)
    assert gap is not None
    assert gap.current_revenue == pytest.approx(9203.0)
    assert gap.annual_gap > 0
    assert gap.annual_gap == pytest.approx(gap.optimal_revenue - gap.current_revenue, abs=1)
    assert gap.shifts_needed.startswith("Shift ~")


def test_coding_gap_is_never_negative(make_provider, internal_medicine):
    gap = calculate_coding_gap(make_provider(em=EMCounts(em_99215=100)), internal_medicine)
    assert gap.annual_gap == 0
    assert gap.shifts_needed == "E&M distribution is close to benchmark"


def test_program_gap_with_known_eligibility(make_provider, internal_medicine):
    provider = make_provider(ccm=ProgramUsage(enrolled=4, eligible=10))
    gap = calculate_program_gap(Program.CCM, provider, internal_medicine)
    assert gap.eligible_patients == 10
    assert gap.capture_rate == pytest.approx(0.4)
    assert gap.current_annual_revenue == 3168  # 4 x $66 x 12
    assert gap.potential_annual_revenue == 7920
    assert gap.annual_gap == 4752


def test_awv_gap_is_annual(make_provider, internal_medicine):
    provider = make_provider(unique_patients=50, awv=ProgramUsage(enrolled=10))
    gap = calculate_program_gap(Program.AWV, provider, internal_medicine)
    assert gap.eligible_patients == 50
    assert gap.potential_annual_revenue == 5944
    assert gap.annual_gap == 4755


def test_program_gap_uses_reported_payment(make_provider, internal_medicine):
    provider = make_provider(ccm=ProgramUsage(enrolled=4, eligible=10, payment=5000.0))
    gap = calculate_program_gap(Program.CCM, provider, internal_medicine)
    assert gap.current_annual_revenue == 5000
    assert gap.annual_gap == 2920


def test_enrollment_above_eligibility_means_no_gap(make_provider, internal_medicine):
    provider = make_provider(ccm=ProgramUsage(enrolled=12, eligible=10))
    gap = calculate_program_gap(Program.CCM, provider, internal_medicine)
    assert gap.eligible_patients == 12
    assert gap.annual_gap == 0


def test_action_plan_orders_by_gap():
    missed = MissedRevenue(coding=1000.0, ccm=5000.0, rpm=0.0, bhi=200.0, awv=3000.0)
    plan = build_action_plan(missed)
    assert [a.category for a in plan] == [GapCategory.CCM, GapCategory.AWV, GapCategory.CODING, GapCategory.BHI]
    assert [a.priority for a in plan] == [1, 2, 3, 4]
    assert missed.total == 9200.0


def test_scan_result_totals(make_provider, internal_medicine):
    result = calculate_scan_result(make_provider(), internal_medicine)
    assert result.data_source == DataSource.SPECIALTY
    assert not result.benchmark_fallback
    assert len(result.program_gaps) == 4
    gap_sum = sum(g.annual_gap for g in result.program_gaps) + (result.coding_gap.annual_gap if result.coding_gap else 0)
    assert result.missed_revenue.total == pytest.approx(gap_sum)
    assert result.npi == "1000000001"


def test_scan_result_records_fallback(make_provider, internal_medicine):
    result = calculate_scan_result(make_provider(specialty="Podiatry"), internal_medicine, DataSource.NATIONAL_DEFAULT)
    assert result.benchmark_fallback
