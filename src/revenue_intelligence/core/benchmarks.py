"""Process-wide specialty benchmark registry.

The registry holds an immutable table that is replaced as a whole on every
load, so concurrent readers never need a lock. Built-in defaults are CMS
Physician & Other Practitioners averages by specialty.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from .errors import DataUnavailable
from .models import ChronicPrevalence, EMDistribution, ProgramRates, SpecialtyBenchmark

logger = logging.getLogger(__name__)

NATIONAL_DEFAULT_KEY = "internal medicine"


def normalize_specialty(specialty: str) -> str:
    """Case- and whitespace-insensitive registry key."""
    return " ".join(specialty.split()).casefold()


def em_distribution(pct_99213: float, pct_99214: float, pct_99215: float) -> EMDistribution:
    """Build a full distribution, assigning the unreported share to 99212."""
    rest = max(0.0, 1.0 - pct_99213 - pct_99214 - pct_99215)
    return EMDistribution(pct_99212=rest, pct_99213=pct_99213, pct_99214=pct_99214, pct_99215=pct_99215)


def _benchmark(
    specialty: str,
    provider_count: int,
    patients: float,
    total_payment: float,
    revenue_per_patient: float,
    em: tuple[float, float, float],
    adoption: tuple[float, float, float, float],
    chronic: Optional[ChronicPrevalence] = None,
) -> SpecialtyBenchmark:
    ccm, rpm, bhi, awv = adoption
    return SpecialtyBenchmark(
        specialty=specialty,
        provider_count=provider_count,
        em_distribution=em_distribution(*em),
        adoption=ProgramRates(ccm=ccm, rpm=rpm, bhi=bhi, awv=awv),
        avg_medicare_patients=patients,
        avg_total_payment=total_payment,
        avg_revenue_per_patient=revenue_per_patient,
        chronic=chronic or ChronicPrevalence(),
    )


_PRIMARY_CARE = ChronicPrevalence(diabetes=0.28, hypertension=0.62, heart_failure=0.14, depression=0.2, copd=0.12)
_CARDIAC = ChronicPrevalence(diabetes=0.32, hypertension=0.78, heart_failure=0.35, depression=0.15, copd=0.14)
_PULMONARY = ChronicPrevalence(diabetes=0.26, hypertension=0.6, heart_failure=0.2, depression=0.2, copd=0.45)
_BEHAVIORAL = ChronicPrevalence(diabetes=0.2, hypertension=0.4, heart_failure=0.06, depression=0.7, copd=0.1)
_SURGICAL = ChronicPrevalence(diabetes=0.22, hypertension=0.5, heart_failure=0.08, depression=0.12, copd=0.08)

DEFAULT_BENCHMARKS: tuple[SpecialtyBenchmark, ...] = (
    _benchmark("Internal Medicine", 88703, 169, 77297, 457, (0.2988, 0.6073, 0.0665), (0.045, 0.0199, 0.0011, 0.3536), _PRIMARY_CARE),
    _benchmark("Family Medicine", 78514, 144, 55556, 385, (0.3221, 0.6133, 0.0416), (0.052, 0.0172, 0.0014, 0.5352), _PRIMARY_CARE),
    _benchmark("Orthopedics", 20699, 160, 102233, 638, (0.5388, 0.3856, 0.0222), (0.0015, 0.0022, 0.0, 0.0002), _SURGICAL),
    _benchmark("Cardiology", 19399, 480, 179674, 374, (0.1611, 0.7367, 0.083), (0.0235, 0.0405, 0.0002, 0.0113), _CARDIAC),
    _benchmark("Psychiatry", 18253, 82, 31564, 385, (0.35, 0.5, 0.1), (0.001, 0.001, 0.05, 0.01), _BEHAVIORAL),
    _benchmark("OB/GYN", 17962, 45, 15432, 343, (0.45, 0.45, 0.05), (0.001, 0.001, 0.001, 0.05), _SURGICAL),
    _benchmark("Neurology", 15573, 220, 79417, 361, (0.25, 0.6, 0.1), (0.02, 0.015, 0.005, 0.05)),
    _benchmark("Gastroenterology", 14124, 280, 76335, 273, (0.35, 0.55, 0.05), (0.01, 0.005, 0.001, 0.02)),
    _benchmark("Dermatology", 12160, 350, 224383, 641, (0.5, 0.4, 0.03), (0.001, 0.001, 0.001, 0.01), _SURGICAL),
    _benchmark("Pulmonology", 10381, 300, 95480, 318, (0.2, 0.65, 0.1), (0.04, 0.05, 0.002, 0.08), _PULMONARY),
    _benchmark("Urology", 9500, 250, 85000, 340, (0.4, 0.5, 0.05), (0.01, 0.005, 0.001, 0.02), _SURGICAL),
    _benchmark("Endocrinology", 6500, 280, 72000, 257, (0.25, 0.6, 0.1), (0.06, 0.04, 0.003, 0.1), _PRIMARY_CARE),
    _benchmark("Nephrology", 8500, 200, 90000, 450, (0.2, 0.65, 0.1), (0.05, 0.03, 0.002, 0.05), _CARDIAC),
    _benchmark("Rheumatology", 5200, 220, 65000, 295, (0.3, 0.55, 0.1), (0.03, 0.02, 0.002, 0.06)),
    _benchmark("Hematology/Oncology", 9000, 300, 150000, 500, (0.2, 0.6, 0.15), (0.02, 0.01, 0.005, 0.03)),
    _benchmark("Infectious Disease", 5000, 180, 68000, 378, (0.25, 0.6, 0.1), (0.03, 0.02, 0.002, 0.04)),
    _benchmark("Allergy/Immunology", 4000, 150, 55000, 367, (0.4, 0.45, 0.05), (0.01, 0.005, 0.001, 0.03)),
    _benchmark("Physical Medicine", 3500, 200, 60000, 300, (0.35, 0.5, 0.08), (0.01, 0.02, 0.003, 0.02), _SURGICAL),
    _benchmark("Geriatric Medicine", 2500, 250, 70000, 280, (0.25, 0.55, 0.15), (0.1, 0.06, 0.01, 0.4), _PRIMARY_CARE),
    _benchmark("Critical Care", 3000, 150, 120000, 800, (0.15, 0.55, 0.2), (0.02, 0.03, 0.005, 0.02), _PULMONARY),
)


class BenchmarkRegistry:
    """Read-only specialty benchmark table with whole-table refresh."""

    def __init__(self):
        self._table: Optional[Mapping[str, SpecialtyBenchmark]] = None
        self._version = 0
        self._loaded_at: Optional[datetime] = None

    @property
    def is_loaded(self) -> bool:
        return self._table is not None

    @property
    def version(self) -> int:
        return self._version

    @property
    def loaded_at(self) -> Optional[datetime]:
        return self._loaded_at

    def load(self, benchmarks: Iterable[SpecialtyBenchmark]) -> int:
        """Replace the whole table and return the new version number."""
        table = {normalize_specialty(b.specialty): b for b in benchmarks}
        if not table:
            raise DataUnavailable("Refusing to load an empty benchmark table")
        self._table = MappingProxyType(table)
        self._version += 1
        self._loaded_at = datetime.now(timezone.utc)
        logger.info("Benchmark registry v%d loaded (%d specialties)", self._version, len(table))
        return self._version

    def clear(self) -> None:
        self._table = None

    def _require_table(self) -> Mapping[str, SpecialtyBenchmark]:
        table = self._table
        if table is None:
            raise DataUnavailable("Specialty benchmarks are not loaded")
        return table

    def get(self, specialty: str) -> Optional[SpecialtyBenchmark]:
        """Look up a benchmark, or None when the specialty is unknown."""
        return self._require_table().get(normalize_specialty(specialty))

    def resolve(self, specialty: str) -> tuple[SpecialtyBenchmark, bool]:
        """Return the specialty benchmark, falling back to the national default.

        The second element is True when the fallback was used.
        """
        table = self._require_table()
        bench = table.get(normalize_specialty(specialty))
        if bench is not None:
            return bench, False
        fallback = table.get(NATIONAL_DEFAULT_KEY) or next(iter(table.values()))
        return fallback, True

    def specialties(self) -> list[str]:
        return sorted(b.specialty for b in self._require_table().values())

    def all(self) -> list[SpecialtyBenchmark]:
        return list(self._require_table().values())


registry = BenchmarkRegistry()
