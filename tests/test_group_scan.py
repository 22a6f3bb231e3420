"""End-to-end tests for the group scan and portfolio entry points."""

import pytest

from revenue_intelligence.core.errors import DataUnavailable, NotFound, ValidationError
from revenue_intelligence.core.group_scan import run_group_scan, run_portfolio_analysis


def _npis(count: int) -> list[str]:
    return [f"{3000000000 + i}" for i in range(count)]


@pytest.mark.asyncio
async def test_group_scan_with_partial_failure(make_result, fake_scanner):
    npis = _npis(4)
    outcomes = {n: make_result(n, 50 + i * 10) for i, n in enumerate(npis)}
    outcomes[npis[0]] = NotFound(npis[0])
    report = await run_group_scan(npis, fake_scanner(outcomes), "Main Street Clinic", max_concurrency=2)

    assert report.requested == 4
    assert report.succeeded == 3
    assert report.failures[0].npi == npis[0]
    assert report.top_performer.npi == npis[3]


@pytest.mark.asyncio
async def test_group_scan_dedupes_before_scanning(make_result, fake_scanner):
    npis = _npis(2)
    scanner = fake_scanner({n: make_result(n, 70) for n in npis})
    report = await run_group_scan(npis + npis, scanner, max_concurrency=2)
    assert report.requested == 2
    assert len(scanner.calls) == 2


@pytest.mark.asyncio
async def test_oversized_portfolio_is_rejected_before_scanning(fake_scanner):
    scanner = fake_scanner({})
    with pytest.raises(ValidationError):
        await run_portfolio_analysis(_npis(21), scanner)
    assert scanner.calls == []


@pytest.mark.asyncio
async def test_malformed_group_is_rejected_before_scanning(fake_scanner):
    scanner = fake_scanner({})
    with pytest.raises(ValidationError):
        await run_group_scan(["3000000000", "30000000"], scanner)
    assert scanner.calls == []


@pytest.mark.asyncio
async def test_missing_reference_data_fails_whole_scan(fake_scanner):
    npis = _npis(3)
    scanner = fake_scanner({n: DataUnavailable("Specialty benchmarks are not loaded") for n in npis})
    with pytest.raises(DataUnavailable):
        await run_group_scan(npis, scanner, max_concurrency=3)


@pytest.mark.asyncio
async def test_all_not_found_is_an_empty_report(fake_scanner):
    npis = _npis(2)
    scanner = fake_scanner({n: NotFound(n) for n in npis})
    report = await run_group_scan(npis, scanner, max_concurrency=2)
    assert report.is_empty
    assert report.failed == 2


@pytest.mark.asyncio
async def test_portfolio_analysis(make_result, fake_scanner):
    npis = _npis(3)
    scanner = fake_scanner({n: make_result(n, 40 + i * 20, total_paid=10000.0 * (i + 1)) for i, n in enumerate(npis)})
    analysis = await run_portfolio_analysis(npis, scanner, "Fund I", max_concurrency=3)

    assert analysis.portfolio_label == "Fund I"
    assert analysis.group.succeeded == 3
    assert len(analysis.providers) == 3
    assert analysis.concentration is not None
    assert analysis.concentration.top_3_revenue_share == pytest.approx(1.0)
