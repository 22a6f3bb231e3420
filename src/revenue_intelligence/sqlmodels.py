"""SQLAlchemy models for the local reference store.

Holds one billing row per provider (imported from CMS Physician & Other
Practitioners extracts) and one benchmark row per specialty. Scans read from
here; nothing in the store is derived from a scan.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class ProviderRecord(Base):
    """Annual Medicare billing totals for one provider."""

    __tablename__ = "providers"

    npi: Mapped[str] = mapped_column(String(10), primary_key=True)
    first_name: Mapped[str] = mapped_column(String(100), default="")
    last_name: Mapped[str] = mapped_column(String(200), default="")
    credential: Mapped[str] = mapped_column(String(50), default="")
    specialty: Mapped[str] = mapped_column(String(100), default="")
    city: Mapped[str] = mapped_column(String(100), default="")
    state: Mapped[str] = mapped_column(String(2), default="")

    total_beneficiaries: Mapped[int] = mapped_column(Integer, default=0)
    total_services: Mapped[int] = mapped_column(Integer, default=0)
    total_allowed: Mapped[float] = mapped_column(Float, default=0.0)
    total_medicare_payment: Mapped[float] = mapped_column(Float, default=0.0)
    distinct_codes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    em_99211: Mapped[int] = mapped_column(Integer, default=0)
    em_99212: Mapped[int] = mapped_column(Integer, default=0)
    em_99213: Mapped[int] = mapped_column(Integer, default=0)
    em_99214: Mapped[int] = mapped_column(Integer, default=0)
    em_99215: Mapped[int] = mapped_column(Integer, default=0)

    ccm_patients: Mapped[int] = mapped_column(Integer, default=0)
    ccm_services: Mapped[int] = mapped_column(Integer, default=0)
    ccm_payment: Mapped[float] = mapped_column(Float, default=0.0)
    rpm_patients: Mapped[int] = mapped_column(Integer, default=0)
    rpm_services: Mapped[int] = mapped_column(Integer, default=0)
    rpm_payment: Mapped[float] = mapped_column(Float, default=0.0)
    bhi_patients: Mapped[int] = mapped_column(Integer, default=0)
    bhi_services: Mapped[int] = mapped_column(Integer, default=0)
    bhi_payment: Mapped[float] = mapped_column(Float, default=0.0)
    awv_patients: Mapped[int] = mapped_column(Integer, default=0)
    awv_services: Mapped[int] = mapped_column(Integer, default=0)
    awv_payment: Mapped[float] = mapped_column(Float, default=0.0)

    imported_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)

    __table_args__ = (
        Index("ix_providers_specialty_state", "specialty", "state"),
    )


class BenchmarkRecord(Base):
    """Specialty averages used to score providers of that specialty."""

    __tablename__ = "benchmarks"

    specialty: Mapped[str] = mapped_column(String(100), primary_key=True)
    provider_count: Mapped[int] = mapped_column(Integer, default=0)
    avg_medicare_patients: Mapped[float] = mapped_column(Float, default=0.0)
    avg_total_payment: Mapped[float] = mapped_column(Float, default=0.0)
    avg_revenue_per_patient: Mapped[float] = mapped_column(Float, default=0.0)
    expected_distinct_codes: Mapped[float] = mapped_column(Float, default=20.0)

    pct_99211: Mapped[float] = mapped_column(Float, default=0.0)
    pct_99212: Mapped[float] = mapped_column(Float, default=0.0)
    pct_99213: Mapped[float] = mapped_column(Float, default=0.0)
    pct_99214: Mapped[float] = mapped_column(Float, default=0.0)
    pct_99215: Mapped[float] = mapped_column(Float, default=0.0)

    ccm_adoption_rate: Mapped[float] = mapped_column(Float, default=0.0)
    rpm_adoption_rate: Mapped[float] = mapped_column(Float, default=0.0)
    bhi_adoption_rate: Mapped[float] = mapped_column(Float, default=0.0)
    awv_adoption_rate: Mapped[float] = mapped_column(Float, default=0.0)

    # JSON-encoded ChronicPrevalence; empty means national defaults.
    chronic_prevalence: Mapped[str] = mapped_column(Text, default="")
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)


class IngestionMeta(Base):
    """Track when the last import or benchmark refresh happened."""

    __tablename__ = "ingestion_meta"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=_utcnow)
