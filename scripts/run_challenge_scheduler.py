#!/usr/bin/env python3
"""Challenge scheduler runner script.

This script runs the challenge scheduler as a standalone process. Every
tick retires expired challenges, creates the current weekly and monthly
challenges when missing and reconciles progress with the points ledger.

Usage:
    python scripts/run_challenge_scheduler.py

The scheduler will run continuously until interrupted (Ctrl+C).
"""

import asyncio
import logging
import sys

from labsync.services.challenge_scheduler import run_challenge_scheduler
from labsync.shared.config import get_settings
from labsync.shared.database import close_database, init_database

# Configure logging
logging.basicConfig(
    level=getattr(logging, get_settings().log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

logger = logging.getLogger(__name__)


async def main():
    """Main entry point for the challenge scheduler."""
    logger.info("Starting challenge scheduler service...")

    await init_database()
    try:
        await run_challenge_scheduler()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    except Exception as e:
        logger.error(f"Scheduler error: {e}")
        sys.exit(1)
    finally:
        await close_database()


if __name__ == "__main__":
    asyncio.run(main())
