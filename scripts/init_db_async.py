"""
Create the database tables for the companion memory backend.

Usage:
    python scripts/init_db_async.py [--drop]
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from memory.database_async import db
from core import configure_logging, get_logger

logger = get_logger(__name__)


async def main(drop: bool = False):
    """Create all database tables, optionally dropping them first."""
    configure_logging(log_level="INFO")

    logger.info("Starting database initialization", drop=drop)

    try:
        if drop:
            await db.drop_tables()
        await db.create_tables()
        logger.info("Database initialization complete")

    except Exception as e:
        logger.error("Database initialization failed", error=str(e), exc_info=True)
        sys.exit(1)
    finally:
        await db.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Create database tables")
    parser.add_argument("--drop", action="store_true", help="Drop existing tables first")
    args = parser.parse_args()
    asyncio.run(main(drop=args.drop))
