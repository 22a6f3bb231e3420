"""Benchmark refresh scheduler.

Seeds the reference store on first start, then reloads the benchmark
registry from it on a configurable schedule. Uses asyncio tasks, no external
scheduler dependency.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Optional

from .core.benchmarks import BenchmarkRegistry, registry

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_HOURS = 24
RETRY_DELAY_SECONDS = 60


class BenchmarkRefreshScheduler:
    """Keeps the process-wide benchmark registry in sync with the store."""

    def __init__(self, target: BenchmarkRegistry = registry, interval_hours: Optional[float] = None):
        self.target = target
        self._task: Optional[asyncio.Task] = None
        self._running = False
        hours = interval_hours if interval_hours is not None else float(os.environ.get(
            "BENCHMARK_REFRESH_HOURS",
            str(DEFAULT_REFRESH_INTERVAL_HOURS),
        ))
        self._interval_seconds = hours * 3600

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Load benchmarks now, then start the background refresh loop."""
        if self._running:
            return
        await self._initial_load()
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("Benchmark scheduler started (interval: %g hours)", self._interval_seconds / 3600)

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Benchmark scheduler stopped")

    async def _initial_load(self):
        from .ingestors import needs_benchmark_seed, refresh_benchmarks, seed_default_benchmarks

        try:
            if await needs_benchmark_seed():
                logger.info("First run detected, seeding default benchmarks")
                await seed_default_benchmarks()
            await refresh_benchmarks(self.target)
        except Exception as exc:
            logger.error("Initial benchmark load failed: %s", exc, exc_info=True)

    async def _run_loop(self):
        from .ingestors import refresh_benchmarks

        while self._running:
            try:
                await asyncio.sleep(self._interval_seconds)
                if not self._running:
                    break
                await refresh_benchmarks(self.target)
            except asyncio.CancelledError:
                break
            except Exception as exc:
                logger.error("Scheduled benchmark refresh failed: %s", exc, exc_info=True)
                await asyncio.sleep(RETRY_DELAY_SECONDS)
