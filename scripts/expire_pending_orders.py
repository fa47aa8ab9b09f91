#!/usr/bin/env python
"""Script to abandon pending orders past their expiry.

Intended to run on a schedule. History rows are written with the system
actor.

Usage:
    python scripts/expire_pending_orders.py
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.services.order_service import OrderService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    """Abandon expired pending orders."""
    count = await OrderService().expire_pending_orders()
    logger.info("Abandoned %d expired pending orders", count)


if __name__ == "__main__":
    asyncio.run(main())
