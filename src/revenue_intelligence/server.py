"""Revenue Intelligence MCP Server.

FastMCP server exposing Revenue Score scans, group and portfolio reports,
and the benchmark reference data behind them.
Run: revenue-intelligence-mcp
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from mcp.server.fastmcp import FastMCP
from mcp.types import ToolAnnotations

from .core.aggregate import DEFAULT_GROUP_LABEL
from .core.batch import is_valid_npi
from .core.benchmarks import registry
from .core.errors import ValidationError
from .core.group_scan import run_group_scan, run_portfolio_analysis
from .core.models import GroupScanResult, PortfolioAnalysis, ScanResult
from .core.portfolio import DEFAULT_PORTFOLIO_LABEL
from .core.tiers import calculate_grade, clamp, estimate_capture_rate, estimate_percentile, get_score_tier
from .db import close_db, init_db
from .ingestors import count_providers, import_providers_csv, refresh_benchmarks
from .scan import ProviderScanner
from .scheduler import BenchmarkRefreshScheduler

logger = logging.getLogger(__name__)

READ_ONLY = ToolAnnotations(readOnlyHint=True, destructiveHint=False, idempotentHint=True, openWorldHint=True)
LOCAL_WRITE = ToolAnnotations(readOnlyHint=False, destructiveHint=False, idempotentHint=True, openWorldHint=False)

scheduler = BenchmarkRefreshScheduler()
scanner = ProviderScanner()


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[None]:
    """Initialize the reference store, load benchmarks, start the refresh scheduler."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    await init_db()
    await scheduler.start()
    try:
        yield
    finally:
        await scheduler.stop()
        await close_db()


mcp = FastMCP(
    "Revenue Intelligence",
    instructions="Score Medicare providers' revenue health against specialty benchmarks, estimate missed revenue, and roll scans up into group practice and acquisition portfolio reports.",
    lifespan=lifespan,
)


def _usd(amount: float) -> str:
    return f"${amount:,.0f}"


def _scan_summary(result: ScanResult) -> str:
    name = result.provider.name or f"NPI {result.npi}"
    text = (
        f"{name}: Revenue Score {result.overall} ({result.score.label}, ~{result.score.percentile}th percentile). "
        f"Estimated missed revenue {_usd(result.missed_revenue.total)}/yr."
    )
    if result.benchmark_fallback:
        text += f" No benchmark for '{result.provider.specialty}'; scored against {result.benchmark.specialty}."
    return text


def _group_summary(report: GroupScanResult) -> str:
    if report.is_empty:
        return f"{report.group_label}: none of {report.requested} providers could be scanned."
    parts = [
        f"{report.group_label}: {report.succeeded}/{report.requested} providers scanned",
        f"mean score {report.mean_score:.1f}, median {report.median_score:g}",
        f"missed revenue {_usd(report.total_missed_revenue)}/yr (+{report.revenue_increase_pct}%)",
    ]
    if report.top_performer:
        parts.append(f"top performer {report.top_performer.name} ({report.top_performer.revenue_score})")
    return " | ".join(parts)


# ─── Tool 1: Single provider scan ────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_scan(npi: str) -> dict:
    """Revenue Score, missed revenue and action plan for one provider.

    Args:
        npi: 10-digit National Provider Identifier.
    """
    npi = npi.strip()
    if not is_valid_npi(npi):
        raise ValidationError(f"NPI must be exactly 10 digits, got {npi!r}")
    result = await scanner(npi)
    return {
        "scan": result.model_dump(mode="json"),
        "summary": _scan_summary(result),
    }


# ─── Tool 2: Group scan ──────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_group_scan(npis: list[str], group_label: str = DEFAULT_GROUP_LABEL) -> dict:
    """Scan 2-50 providers and aggregate them into a group practice report.

    Providers that cannot be scanned are listed under ``failures``; the rest
    of the report covers the providers that succeeded.

    Args:
        npis: Provider NPIs. Duplicates are scanned once.
        group_label: Display name for the group.
    """
    report = await run_group_scan(npis, scanner, group_label)
    return {
        "report": report.model_dump(mode="json"),
        "summary": _group_summary(report),
    }


# ─── Tool 3: Portfolio analysis ──────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_portfolio(npis: list[str], portfolio_label: str = DEFAULT_PORTFOLIO_LABEL) -> dict:
    """Acquisition scores and concentration metrics for 2-20 practices.

    Args:
        npis: Provider NPIs in the portfolio.
        portfolio_label: Display name for the portfolio.
    """
    analysis: PortfolioAnalysis = await run_portfolio_analysis(npis, scanner, portfolio_label)
    if analysis.is_empty:
        summary = _group_summary(analysis.group)
    else:
        summary = (
            f"{portfolio_label}: {len(analysis.providers)} practices, avg acquisition score "
            f"{analysis.avg_acquisition_score:.1f}, upside {_usd(analysis.total_upside)}/yr"
        )
    return {
        "analysis": analysis.model_dump(mode="json"),
        "summary": summary,
    }


# ─── Tool 4: Percentile ──────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_percentile(score: float) -> dict:
    """Estimated national percentile and tier for a Revenue Score.

    Args:
        score: Overall Revenue Score (0-100). Out-of-range values are clamped.
    """
    tier = get_score_tier(clamp(score, 0.0, 100.0))
    return {
        "score": score,
        "percentile": estimate_percentile(score),
        "tier": tier.label,
        "color": tier.color,
    }


# ─── Tool 5: Grade ───────────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_grade(
    capture_rate: Optional[float] = None,
    ccm_rate: float = 0.0,
    rpm_rate: float = 0.0,
    bhi_rate: float = 0.0,
    awv_rate: float = 0.0,
    pct_99214: float = 0.0,
    pct_99215: float = 0.0,
) -> dict:
    """Letter grade for a revenue capture rate.

    Pass ``capture_rate`` directly, or the program adoption and E&M mix
    percentages to estimate one. All values are percentages (0-100).
    """
    if capture_rate is None:
        capture_rate = estimate_capture_rate(ccm_rate, rpm_rate, bhi_rate, awv_rate, pct_99214, pct_99215)
    grade = calculate_grade(capture_rate)
    return {"capture_rate": capture_rate, **grade.model_dump()}


# ─── Tool 6: Benchmarks ──────────────────────────────────────────────────────


@mcp.tool(annotations=READ_ONLY)
async def revenue_benchmarks(specialty: str = "") -> dict:
    """Specialty benchmarks used for scoring.

    Args:
        specialty: One specialty (case-insensitive). Empty lists them all.
    """
    if specialty:
        bench = registry.get(specialty)
        if bench is None:
            raise ValidationError(f"Unknown specialty {specialty!r}. Known: {', '.join(registry.specialties())}")
        benchmarks = [bench]
    else:
        benchmarks = sorted(registry.all(), key=lambda b: b.specialty)
    return {
        "version": registry.version,
        "loaded_at": registry.loaded_at.isoformat() if registry.loaded_at else None,
        "benchmarks": [b.model_dump(mode="json") for b in benchmarks],
    }


# ─── Tool 7: Refresh benchmarks ──────────────────────────────────────────────


@mcp.tool(annotations=LOCAL_WRITE)
async def revenue_refresh_benchmarks() -> dict:
    """Reload specialty benchmarks from the local reference store now."""
    version = await refresh_benchmarks(registry)
    return {
        "version": version,
        "specialties": len(registry.all()),
        "loaded_at": registry.loaded_at.isoformat() if registry.loaded_at else None,
    }


# ─── Tool 8: Import providers ────────────────────────────────────────────────


@mcp.tool(annotations=LOCAL_WRITE)
async def revenue_import_providers(csv_path: str) -> dict:
    """Import provider billing rows from a CSV file into the reference store.

    Args:
        csv_path: Path to a CSV with an ``npi`` column plus billing columns
            (total_beneficiaries, total_medicare_payment, em_99211..em_99215,
            ccm_patients, ccm_payment, ...). Existing NPIs are replaced.
    """
    imported = await import_providers_csv(csv_path)
    return {
        "imported": imported,
        "total_providers": await count_providers(),
    }


def main():
    """Entry point for the CLI command."""
    mcp.run()


if __name__ == "__main__":
    main()
