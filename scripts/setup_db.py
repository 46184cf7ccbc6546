#!/usr/bin/env python3
"""
Create the SQLite schema (users, schools, OTP challenges, rate-limit
counters) ahead of the first run. The app also does this on startup.
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from app import db  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
logger = logging.getLogger("setup_db")


async def main() -> None:
    await db.init_db()
    try:
        logger.info("Database ready at %s", db.DB_PATH)
    finally:
        await db.close_db()


if __name__ == "__main__":
    asyncio.run(main())
