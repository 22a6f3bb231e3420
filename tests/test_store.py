"""Tests for the SQLite reference store, CSV import and the provider scanner."""

import csv
from pathlib import Path

import pytest
import pytest_asyncio

from revenue_intelligence import db
from revenue_intelligence.core.benchmarks import DEFAULT_BENCHMARKS, BenchmarkRegistry
from revenue_intelligence.core.clients import nppes
from revenue_intelligence.core.errors import DataUnavailable, NotFound, ValidationError
from revenue_intelligence.core.models import DataSource, RegistryProvider
from revenue_intelligence.ingestors import (
    count_providers,
    get_provider_summary,
    import_providers_csv,
    load_benchmarks,
    needs_benchmark_seed,
    refresh_benchmarks,
    seed_default_benchmarks,
)
from revenue_intelligence.scan import ProviderScanner

CSV_COLUMNS = [
    "npi", "first_name", "last_name", "specialty", "city", "state",
    "total_beneficiaries", "total_medicare_payment", "distinct_codes",
    "em_99212", "em_99213", "em_99214", "em_99215",
    "ccm_patients", "ccm_payment", "awv_patients",
]


def _write_csv(path: Path, rows: list[dict]) -> Path:
    with path.open("w", newline="") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    return path


@pytest_asyncio.fixture
async def store(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    await db.close_db()
    await db.init_db()
    yield tmp_path
    await db.close_db()


@pytest.fixture
def providers_csv(tmp_path):
    return _write_csv(tmp_path / "providers.csv", [
        {
            "npi": "1000000001", "first_name": "Ada", "last_name": "Lovelace", "specialty": "Internal Medicine",
            "city": "Austin", "state": "tx", "total_beneficiaries": "169", "total_medicare_payment": "77297",
            "distinct_codes": "22", "em_99212": "30", "em_99213": "300", "em_99214": "600", "em_99215": "70",
            "ccm_patients": "8", "ccm_payment": "6336", "awv_patients": "60",
        },
        {
            "npi": "1000000002", "first_name": "Alan", "last_name": "Turing", "specialty": "Podiatry",
            "city": "Dallas", "state": "TX", "total_beneficiaries": "90", "total_medicare_payment": "20000",
            "distinct_codes": "", "em_99212": "", "em_99213": "100", "em_99214": "50", "em_99215": "0",
            "ccm_patients": "", "ccm_payment": "", "awv_patients": "",
        },
        {"npi": "12345", "first_name": "Bad", "last_name": "Row"},
        {"npi": "1000000003", "total_beneficiaries": "lots"},
    ])


@pytest.mark.asyncio
async def test_seed_and_refresh_benchmarks(store):
    assert await needs_benchmark_seed()
    assert await seed_default_benchmarks() == len(DEFAULT_BENCHMARKS)
    assert not await needs_benchmark_seed()

    loaded = await load_benchmarks()
    assert {b.specialty for b in loaded} == {b.specialty for b in DEFAULT_BENCHMARKS}
    cardiology = next(b for b in loaded if b.specialty == "Cardiology")
    expected = next(b for b in DEFAULT_BENCHMARKS if b.specialty == "Cardiology")
    assert cardiology == expected

    reg = BenchmarkRegistry()
    assert await refresh_benchmarks(reg) == 1
    assert reg.get("cardiology") == expected


@pytest.mark.asyncio
async def test_refresh_from_empty_store_uses_defaults(store):
    reg = BenchmarkRegistry()
    await refresh_benchmarks(reg)
    assert len(reg.all()) == len(DEFAULT_BENCHMARKS)
    # A second refresh against the still-empty store keeps the loaded table.
    assert await refresh_benchmarks(reg) == 1


@pytest.mark.asyncio
async def test_import_providers_csv(store, providers_csv):
    assert await import_providers_csv(providers_csv) == 2
    assert await count_providers() == 2

    summary = await get_provider_summary("1000000001")
    assert summary.name == "Ada Lovelace"
    assert summary.state == "TX"
    assert summary.em.total == 1000
    assert summary.ccm.enrolled == 8
    assert summary.distinct_code_count == 22

    sparse = await get_provider_summary("1000000002")
    assert sparse.distinct_code_count is None
    assert sparse.ccm.enrolled == 0

    assert await get_provider_summary("1000000003") is None

    # Re-importing replaces rows instead of duplicating them.
    await import_providers_csv(providers_csv)
    assert await count_providers() == 2


@pytest.mark.asyncio
async def test_import_skips_non_finite_and_negative_values(store, tmp_path):
    path = _write_csv(tmp_path / "odd.csv", [
        {"npi": "1000000001", "total_beneficiaries": "10"},
        {"npi": "1000000002", "total_beneficiaries": "inf"},
        {"npi": "1000000003", "total_medicare_payment": "nan"},
        {"npi": "1000000004", "ccm_payment": "-1e400"},
        {"npi": "1000000005", "em_99213": "-3"},
        {"npi": "1000000006", "total_beneficiaries": "5"},
    ])
    assert await import_providers_csv(path) == 2
    assert await get_provider_summary("1000000002") is None
    assert await get_provider_summary("1000000003") is None
    assert (await get_provider_summary("1000000006")).unique_patients == 5


@pytest.mark.asyncio
async def test_import_rejects_missing_file(store, tmp_path):
    with pytest.raises(ValidationError):
        await import_providers_csv(tmp_path / "nope.csv")


@pytest.mark.asyncio
async def test_scanner_against_store(store, providers_csv):
    await import_providers_csv(providers_csv)
    reg = BenchmarkRegistry()
    reg.load(DEFAULT_BENCHMARKS)
    scanner = ProviderScanner(benchmarks=reg, registry_lookup=False)

    result = await scanner("1000000001")
    assert result.npi == "1000000001"
    assert result.data_source == DataSource.SPECIALTY

    fallback = await scanner("1000000002")
    assert fallback.benchmark_fallback
    assert fallback.benchmark.specialty == "Internal Medicine"

    with pytest.raises(NotFound):
        await scanner("1999999999")


@pytest.mark.asyncio
async def test_scanner_needs_loaded_benchmarks(make_provider):
    async def source(npi):
        return make_provider(npi)

    scanner = ProviderScanner(benchmarks=BenchmarkRegistry(), source=source, registry_lookup=False)
    with pytest.raises(DataUnavailable):
        await scanner("1000000001")


@pytest.mark.asyncio
async def test_scanner_fills_missing_fields_from_registry(monkeypatch, make_provider, benchmark_registry):
    async def source(npi):
        return make_provider(npi, specialty="", state="", name="")

    async def fake_lookup(npi, client=None):
        return RegistryProvider(npi=npi, entity_type="individual", full_name="JANE DOE", specialty="Cardiology", state="TX")

    monkeypatch.setattr(nppes, "lookup_provider", fake_lookup)
    scanner = ProviderScanner(benchmarks=benchmark_registry, source=source, registry_lookup=True)
    result = await scanner("1000000001")
    assert result.provider.specialty == "Cardiology"
    assert result.provider.name == "JANE DOE"
    assert result.benchmark.specialty == "Cardiology"
    assert not result.benchmark_fallback


@pytest.mark.asyncio
async def test_unmapped_registry_taxonomy_flags_fallback(monkeypatch, make_provider, benchmark_registry):
    async def source(npi):
        return make_provider(npi, specialty="")

    async def fake_lookup(npi, client=None):
        return nppes.parse_result({
            "number": npi,
            "enumeration_type": "NPI-1",
            "basic": {"first_name": "SAM", "last_name": "ROE"},
            "taxonomies": [{"code": "111N00000X", "desc": "Chiropractor", "primary": True}],
            "addresses": [],
        })

    monkeypatch.setattr(nppes, "lookup_provider", fake_lookup)
    scanner = ProviderScanner(benchmarks=benchmark_registry, source=source, registry_lookup=True)
    result = await scanner("1000000001")
    assert result.benchmark_fallback
    assert result.data_source == DataSource.NATIONAL_DEFAULT


def test_registry_lookup_env_switch(monkeypatch):
    monkeypatch.setenv("NPPES_LOOKUP", "false")
    assert ProviderScanner().registry_lookup is False
    monkeypatch.setenv("NPPES_LOOKUP", "1")
    assert ProviderScanner().registry_lookup is True


@pytest.mark.asyncio
async def test_scheduler_seeds_and_loads_on_start(store):
    from revenue_intelligence.scheduler import BenchmarkRefreshScheduler

    reg = BenchmarkRegistry()
    scheduler = BenchmarkRefreshScheduler(target=reg, interval_hours=1)
    await scheduler.start()
    try:
        assert scheduler.running
        assert reg.is_loaded
        assert not await needs_benchmark_seed()
    finally:
        await scheduler.stop()
    assert not scheduler.running


def test_store_location_follows_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "ref"))
    assert db.get_data_dir() == tmp_path / "ref"
    assert (tmp_path / "ref").is_dir()
    assert db.get_db_url() == f"sqlite+aiosqlite:///{tmp_path / 'ref' / db.DB_FILENAME}"
