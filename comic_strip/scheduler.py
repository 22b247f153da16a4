"""
Eviction Scheduler - periodic ledger sweep.

Uses APScheduler's asyncio scheduler on the service event loop.
"""

import asyncio
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from comic_strip.ledger import RequestLedger

logger = logging.getLogger(__name__)

SWEEP_JOB_ID = "ledger_sweep"


class EvictionScheduler:
    """Runs RequestLedger.sweep on a fixed interval."""

    def __init__(self, ledger: RequestLedger, interval_hours: float = 2.0,
                 loop: Optional[asyncio.AbstractEventLoop] = None):
        self.ledger = ledger
        self.interval_hours = interval_hours
        if loop is not None:
            self.scheduler = AsyncIOScheduler(event_loop=loop)
        else:
            self.scheduler = AsyncIOScheduler()
        self.scheduler.add_job(
            self._sweep,
            trigger=IntervalTrigger(hours=interval_hours),
            id=SWEEP_JOB_ID,
            replace_existing=True,
        )

    def _sweep(self) -> int:
        removed = self.ledger.sweep()
        logger.debug(f"Ledger sweep done ({removed} removed, {len(self.ledger)} tracked)")
        return removed

    def start(self):
        """Start the scheduler. Must be called from the event loop thread."""
        self.scheduler.start()
        logger.info(f"Eviction scheduler started (every {self.interval_hours}h)")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Eviction scheduler stopped")
