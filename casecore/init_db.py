"""
One-time database initialization, run at process start

    python -m casecore.init_db [--reproject]
"""

import argparse
import asyncio
import sys
from typing import List, Optional

import structlog

from casecore.core.config import settings
from casecore.core.database import DatabaseConnectionManager, db_manager
from casecore.core.logging_config import configure_logging
from casecore.services.status_projector import StatusProjector

logger = structlog.get_logger()

async def init_db(manager: DatabaseConnectionManager = db_manager, reproject: bool = False) -> bool:
    """
    Create tables and optionally recompute every case status

    Safe to run repeatedly; existing tables and rows are left alone.

    Returns:
        False when the database could not be reached
    """
    logger.info("Initializing database tables...")
    if not await manager.validate_connection(force=True):
        logger.error("Database unreachable, initialization aborted")
        return False

    await manager.create_all()

    if reproject or settings.REPROJECT_ON_STARTUP:
        session = await manager.get_session_with_retry()
        try:
            summary = await StatusProjector(session).reproject_all()
        finally:
            await session.close()
        logger.info(
            "Startup reprojection finished",
            processed=summary.processed,
            failed=summary.failed,
            failed_case_ids=summary.failed_case_ids
        )

    logger.info("Database tables initialized successfully.")
    return True

async def _main(reproject: bool) -> bool:
    try:
        return await init_db(reproject=reproject)
    finally:
        await db_manager.dispose()

def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Initialize the case lifecycle database")
    parser.add_argument(
        "--reproject",
        action="store_true",
        help="recompute every case status from its event log after creating tables"
    )
    args = parser.parse_args(argv)

    configure_logging()
    return 0 if asyncio.run(_main(args.reproject)) else 1

if __name__ == "__main__":
    sys.exit(main())
