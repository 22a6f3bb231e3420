"""Tests for the specialty benchmark registry."""

import pytest

from revenue_intelligence.core.benchmarks import (
    DEFAULT_BENCHMARKS,
    BenchmarkRegistry,
    em_distribution,
    normalize_specialty,
)
from revenue_intelligence.core.errors import DataUnavailable


def test_unloaded_registry_raises():
    reg = BenchmarkRegistry()
    assert not reg.is_loaded
    with pytest.raises(DataUnavailable):
        reg.get("Cardiology")
    with pytest.raises(DataUnavailable):
        reg.resolve("Cardiology")


def test_load_increments_version(benchmark_registry):
    assert benchmark_registry.version == 1
    assert benchmark_registry.load(DEFAULT_BENCHMARKS[:3]) == 2
    assert len(benchmark_registry.all()) == 3
    assert benchmark_registry.loaded_at is not None


def test_lookup_ignores_case_and_spacing(benchmark_registry):
    bench = benchmark_registry.get("  cardiology ")
    assert bench is not None
    assert bench.specialty == "Cardiology"
    assert normalize_specialty("Internal   MEDICINE") == "internal medicine"


def test_unknown_specialty(benchmark_registry):
    assert benchmark_registry.get("Podiatry") is None
    bench, used_fallback = benchmark_registry.resolve("Podiatry")
    assert used_fallback
    assert bench.specialty == "Internal Medicine"


def test_known_specialty_resolves_without_fallback(benchmark_registry):
    bench, used_fallback = benchmark_registry.resolve("Dermatology")
    assert not used_fallback
    assert bench.specialty == "Dermatology"


def test_empty_load_keeps_previous_table(benchmark_registry):
    with pytest.raises(DataUnavailable):
        benchmark_registry.load([])
    assert benchmark_registry.version == 1
    assert benchmark_registry.get("Cardiology") is not None


def test_defaults_are_unique_and_complete():
    names = [b.specialty for b in DEFAULT_BENCHMARKS]
    assert len(names) == len(set(names)) == 20
    for bench in DEFAULT_BENCHMARKS:
        assert sum(bench.em_distribution.as_tuple()) == pytest.approx(1.0, abs=0.02)
        assert bench.avg_revenue_per_patient > 0


def test_em_distribution_assigns_rest_to_99212():
    dist = em_distribution(0.3, 0.5, 0.1)
    assert dist.pct_99212 == pytest.approx(0.1)
    assert dist.pct_99211 == 0.0


def test_registry_table_is_read_only(benchmark_registry):
    with pytest.raises(TypeError):
        benchmark_registry._table["new"] = DEFAULT_BENCHMARKS[0]
