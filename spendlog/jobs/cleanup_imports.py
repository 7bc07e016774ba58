"""
Expired statement import cleanup

Run periodically (cron or a scheduler):
    python -m spendlog.jobs.cleanup_imports
"""

import asyncio
import logging

from spendlog.core.database import async_session
from spendlog.core.logging_config import configure_logging
from spendlog.services.statement_import import cleanup_expired
import spendlog.models  # noqa: F401

logger = logging.getLogger(__name__)

async def run_cleanup() -> int:
    async with async_session() as session:
        return await cleanup_expired(session)

def main():
    configure_logging()
    removed = asyncio.run(run_cleanup())
    logger.info("Cleanup finished, %d imports removed", removed)

if __name__ == "__main__":
    main()
