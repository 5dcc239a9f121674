"""Challenge scheduling service for automated challenge rotation.

The scheduler ticks the challenge lifecycle manager periodically: expired
challenges are retired, the current weekly and monthly challenges are
created when missing and progress is reconciled with the points ledger.
"""

import asyncio
import logging
from typing import Optional

from labsync.services.challenge_service import ChallengeLifecycleManager, TickResult
from labsync.shared.config import get_settings

logger = logging.getLogger(__name__)


class ChallengeScheduler:
    """Service for periodic challenge rotation."""

    def __init__(
        self,
        manager: Optional[ChallengeLifecycleManager] = None,
        check_interval_seconds: Optional[int] = None
    ):
        """Initialize the scheduler.

        Args:
            manager: Challenge lifecycle manager to tick
            check_interval_seconds: Seconds between ticks, defaults to settings
        """
        self._manager = manager
        self.check_interval = (
            check_interval_seconds
            if check_interval_seconds is not None
            else get_settings().challenge_tick_interval_seconds
        )
        self.running = False

    @property
    def manager(self) -> ChallengeLifecycleManager:
        if self._manager is None:
            self._manager = ChallengeLifecycleManager()
        return self._manager

    async def start(self):
        """Start the challenge scheduler.

        The first tick runs immediately so a current challenge exists as
        soon as the process is up.
        """
        if self.running:
            logger.warning("Challenge scheduler is already running")
            return

        self.running = True
        logger.info(f"Starting challenge scheduler (every {self.check_interval}s)")

        while self.running:
            await self.run_once()
            if self.running:
                await asyncio.sleep(self.check_interval)

    async def stop(self):
        """Stop the challenge scheduler."""
        self.running = False
        logger.info("Challenge scheduler stopped")

    async def run_once(self) -> Optional[TickResult]:
        """Run a single tick; errors are logged and reported as None."""
        try:
            result = await self.manager.tick()
        except Exception as e:
            logger.error(f"Error in challenge scheduler tick: {e}")
            return None

        logger.info(
            f"Challenge tick: {result.deactivated} deactivated, "
            f"{len(result.created)} created, {result.reconciled} progress rows reconciled"
        )
        return result


async def run_challenge_scheduler():
    """Entry point for running the challenge scheduler as a standalone service."""
    scheduler = ChallengeScheduler()

    try:
        await scheduler.start()
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Received interrupt signal, stopping scheduler...")
        await scheduler.stop()
    except Exception as e:
        logger.error(f"Challenge scheduler error: {e}")
        await scheduler.stop()
        raise
