#!/usr/bin/env python
"""Script to (re)post sales tax transactions for approved orders.

Approval posts tax transactions after it commits; if that step failed it
can be re-run here. Line items already posted are skipped.

Usage:
    python scripts/record_sales_tax.py <order_id> [<order_id> ...]
"""

import asyncio
import logging
import sys
from pathlib import Path

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.middleware.error_handler import APIError
from src.services.order_service import OrderService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main(order_ids: list[str]) -> None:
    """Post remitted tax for each order."""
    service = OrderService()
    failed = 0
    for order_id in order_ids:
        try:
            posted = await service.record_sales_tax(order_id)
            logger.info("Order %s: %d tax transactions posted", order_id, posted)
        except APIError as e:
            logger.error("Order %s: %s", order_id, e.message)
            failed += 1

    if failed:
        sys.exit(1)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    asyncio.run(main(sys.argv[1:]))
