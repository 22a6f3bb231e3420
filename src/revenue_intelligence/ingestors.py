"""Reference data loading for the local SQLite store.

On first run the built-in specialty benchmarks are seeded into the store.
Provider billing rows arrive through CSV import. The process-wide benchmark
registry is (re)loaded from the store on startup and on every scheduled
refresh.
"""

from __future__ import annotations

import csv
import logging
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from pydantic import ValidationError as ModelValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .core.batch import is_valid_npi
from .core.benchmarks import DEFAULT_BENCHMARKS, BenchmarkRegistry, registry
from .core.errors import ValidationError
from .core.models import (
    ChronicPrevalence,
    EMCounts,
    EMDistribution,
    ProgramRates,
    ProgramUsage,
    ProviderBillingSummary,
    SpecialtyBenchmark,
)
from .db import get_session_factory
from .sqlmodels import BenchmarkRecord, IngestionMeta, ProviderRecord

logger = logging.getLogger(__name__)

META_BENCHMARKS_SEEDED = "benchmarks_seeded"
META_LAST_BENCHMARK_REFRESH = "last_benchmark_refresh"
META_LAST_PROVIDER_IMPORT = "last_provider_import"

_INT_COLUMNS = {
    "total_beneficiaries", "total_services",
    "em_99211", "em_99212", "em_99213", "em_99214", "em_99215",
    "ccm_patients", "ccm_services", "rpm_patients", "rpm_services",
    "bhi_patients", "bhi_services", "awv_patients", "awv_services",
}
_FLOAT_COLUMNS = {
    "total_allowed", "total_medicare_payment",
    "ccm_payment", "rpm_payment", "bhi_payment", "awv_payment",
}
_TEXT_COLUMNS = {"first_name", "last_name", "credential", "specialty", "city", "state"}


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─── Record conversion ─────────────────────────────────────────────────────


def benchmark_to_record(benchmark: SpecialtyBenchmark) -> BenchmarkRecord:
    em = benchmark.em_distribution
    adoption = benchmark.adoption
    return BenchmarkRecord(
        specialty=benchmark.specialty,
        provider_count=benchmark.provider_count,
        avg_medicare_patients=benchmark.avg_medicare_patients,
        avg_total_payment=benchmark.avg_total_payment,
        avg_revenue_per_patient=benchmark.avg_revenue_per_patient,
        expected_distinct_codes=benchmark.expected_distinct_codes,
        pct_99211=em.pct_99211,
        pct_99212=em.pct_99212,
        pct_99213=em.pct_99213,
        pct_99214=em.pct_99214,
        pct_99215=em.pct_99215,
        ccm_adoption_rate=adoption.ccm,
        rpm_adoption_rate=adoption.rpm,
        bhi_adoption_rate=adoption.bhi,
        awv_adoption_rate=adoption.awv,
        chronic_prevalence=benchmark.chronic.model_dump_json(),
        updated_at=_now(),
    )


def record_to_benchmark(record: BenchmarkRecord) -> SpecialtyBenchmark:
    """Raises pydantic's ValidationError when the stored row is inconsistent."""
    if record.chronic_prevalence:
        chronic = ChronicPrevalence.model_validate_json(record.chronic_prevalence)
    else:
        chronic = ChronicPrevalence()
    return SpecialtyBenchmark(
        specialty=record.specialty,
        provider_count=record.provider_count,
        em_distribution=EMDistribution(
            pct_99211=record.pct_99211,
            pct_99212=record.pct_99212,
            pct_99213=record.pct_99213,
            pct_99214=record.pct_99214,
            pct_99215=record.pct_99215,
        ),
        adoption=ProgramRates(
            ccm=record.ccm_adoption_rate,
            rpm=record.rpm_adoption_rate,
            bhi=record.bhi_adoption_rate,
            awv=record.awv_adoption_rate,
        ),
        avg_medicare_patients=record.avg_medicare_patients,
        avg_total_payment=record.avg_total_payment,
        avg_revenue_per_patient=record.avg_revenue_per_patient,
        expected_distinct_codes=record.expected_distinct_codes,
        chronic=chronic,
    )


def record_to_summary(record: ProviderRecord) -> ProviderBillingSummary:
    name = f"{record.first_name or ''} {record.last_name or ''}".strip()
    return ProviderBillingSummary(
        npi=record.npi,
        name=name,
        credential=record.credential or "",
        specialty=record.specialty or "",
        state=record.state or "",
        city=record.city or "",
        em=EMCounts(
            em_99211=record.em_99211 or 0,
            em_99212=record.em_99212 or 0,
            em_99213=record.em_99213 or 0,
            em_99214=record.em_99214 or 0,
            em_99215=record.em_99215 or 0,
        ),
        ccm=ProgramUsage(enrolled=record.ccm_patients or 0, services=record.ccm_services or 0, payment=record.ccm_payment or 0.0),
        rpm=ProgramUsage(enrolled=record.rpm_patients or 0, services=record.rpm_services or 0, payment=record.rpm_payment or 0.0),
        bhi=ProgramUsage(enrolled=record.bhi_patients or 0, services=record.bhi_services or 0, payment=record.bhi_payment or 0.0),
        awv=ProgramUsage(enrolled=record.awv_patients or 0, services=record.awv_services or 0, payment=record.awv_payment or 0.0),
        total_allowed=record.total_allowed or 0.0,
        total_paid=record.total_medicare_payment or 0.0,
        total_services=record.total_services or 0,
        distinct_code_count=record.distinct_codes,
        unique_patients=record.total_beneficiaries or 0,
    )


# ─── Ingestion metadata ────────────────────────────────────────────────────


async def _set_meta(session: AsyncSession, key: str, value: str) -> None:
    result = await session.execute(select(IngestionMeta).where(IngestionMeta.key == key))
    row = result.scalar_one_or_none()
    if row:
        row.value = value
        row.updated_at = _now()
    else:
        session.add(IngestionMeta(key=key, value=value, updated_at=_now()))


async def get_meta(key: str) -> Optional[str]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(IngestionMeta.value).where(IngestionMeta.key == key))
        return result.scalar_one_or_none()


# ─── Benchmarks ────────────────────────────────────────────────────────────


async def needs_benchmark_seed() -> bool:
    return await get_meta(META_BENCHMARKS_SEEDED) is None


async def seed_default_benchmarks(benchmarks: Iterable[SpecialtyBenchmark] = DEFAULT_BENCHMARKS) -> int:
    """Write benchmarks into the store, replacing rows for the same specialty.

    Returns the number of rows written.
    """
    session_factory = get_session_factory()
    count = 0
    async with session_factory() as session:
        for benchmark in benchmarks:
            await session.merge(benchmark_to_record(benchmark))
            count += 1
        await _set_meta(session, META_BENCHMARKS_SEEDED, _now().isoformat())
        await session.commit()
    logger.info("Seeded %d specialty benchmarks", count)
    return count


async def load_benchmarks() -> list[SpecialtyBenchmark]:
    """Read every valid benchmark row from the store."""
    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(BenchmarkRecord).order_by(BenchmarkRecord.specialty))
        records = result.scalars().all()

    benchmarks = []
    for record in records:
        try:
            benchmarks.append(record_to_benchmark(record))
        except ModelValidationError as exc:
            logger.warning("Skipping invalid benchmark row %r: %s", record.specialty, exc)
    return benchmarks


async def refresh_benchmarks(target: BenchmarkRegistry = registry) -> int:
    """Reload ``target`` from the store and return its new version.

    An empty store leaves an already-loaded registry untouched and otherwise
    falls back to the built-in defaults.
    """
    benchmarks = await load_benchmarks()
    if not benchmarks:
        if target.is_loaded:
            logger.warning("Benchmark store is empty; keeping registry v%d", target.version)
            return target.version
        logger.warning("Benchmark store is empty; loading built-in defaults")
        benchmarks = list(DEFAULT_BENCHMARKS)

    version = target.load(benchmarks)

    session_factory = get_session_factory()
    async with session_factory() as session:
        await _set_meta(session, META_LAST_BENCHMARK_REFRESH, _now().isoformat())
        await session.commit()
    return version


# ─── Providers ─────────────────────────────────────────────────────────────


async def get_provider_summary(npi: str) -> Optional[ProviderBillingSummary]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        record = await session.get(ProviderRecord, npi)
        if record is None:
            return None
        return record_to_summary(record)


async def count_providers() -> int:
    session_factory = get_session_factory()
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(ProviderRecord))
        return result.scalar_one()


def _number(raw: str) -> float:
    value = float(raw)
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"expected a non-negative number, got {raw!r}")
    return value


def _parse_row(row: dict) -> dict:
    values: dict = {"npi": (row.get("npi") or "").strip()}
    for column in _TEXT_COLUMNS:
        values[column] = (row.get(column) or "").strip()
    for column in _INT_COLUMNS:
        raw = (row.get(column) or "").strip()
        values[column] = int(_number(raw)) if raw else 0
    for column in _FLOAT_COLUMNS:
        raw = (row.get(column) or "").strip()
        values[column] = _number(raw) if raw else 0.0
    raw_codes = (row.get("distinct_codes") or "").strip()
    values["distinct_codes"] = int(_number(raw_codes)) if raw_codes else None
    values["state"] = values["state"].upper()[:2]
    return values


async def import_providers_csv(path: Union[str, Path]) -> int:
    """Upsert provider billing rows from a CSV file keyed by ``npi``.

    Columns match ``ProviderRecord``; missing numeric columns default to 0.
    Rows with a malformed NPI or a negative, non-finite or non-numeric
    value are skipped with a warning. Returns the number of rows imported.

    Raises:
        ValidationError: when the file is missing or has no ``npi`` column.
    """
    csv_path = Path(path).expanduser()
    if not csv_path.is_file():
        raise ValidationError(f"CSV file not found: {csv_path}")

    session_factory = get_session_factory()
    imported = 0
    skipped = 0
    with csv_path.open(newline="", encoding="utf-8-sig") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames or "npi" not in reader.fieldnames:
            raise ValidationError(f"{csv_path.name} has no 'npi' column")

        async with session_factory() as session:
            for line_no, row in enumerate(reader, start=2):
                try:
                    values = _parse_row(row)
                except (ValueError, OverflowError) as exc:
                    logger.warning("%s line %d: skipping row: %s", csv_path.name, line_no, exc)
                    skipped += 1
                    continue
                if not is_valid_npi(values["npi"]):
                    logger.warning("%s line %d: skipping malformed NPI %r", csv_path.name, line_no, values["npi"])
                    skipped += 1
                    continue
                await session.merge(ProviderRecord(**values, imported_at=_now()))
                imported += 1

            await _set_meta(session, META_LAST_PROVIDER_IMPORT, _now().isoformat())
            await session.commit()

    logger.info("Imported %d providers from %s (%d skipped)", imported, csv_path.name, skipped)
    return imported
