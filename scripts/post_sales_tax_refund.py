#!/usr/bin/env python
"""Script to refund the sales tax reported for a line item.

Looks up the tax transaction posted for the line item when its order was
approved and posts a refund against it. Does nothing if no transaction was
posted.

Usage:
    python scripts/post_sales_tax_refund.py <line_item_id> [refund_date]

    refund_date is ISO 8601 and defaults to now (UTC).

Requirements:
    - SUPABASE_URL / SUPABASE_SECRET_KEY for the order store
    - TAXJAR_API_KEY and CATALOG_API_URL
"""

import asyncio
import logging
import sys
from datetime import datetime, timezone
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


async def main(line_item_id: str, refund_date: datetime) -> None:
    """Refund tax for one line item."""
    try:
        refunded = await OrderService().refund_tax(line_item_id, refund_date)
    except APIError as e:
        logger.error("Tax refund for line item %s failed: %s", line_item_id, e.message)
        sys.exit(1)

    if refunded:
        logger.info("Posted tax refund for line item %s dated %s", line_item_id, refund_date.isoformat())
    else:
        logger.info("No tax transaction posted for line item %s, nothing to refund", line_item_id)


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)
    date = datetime.fromisoformat(sys.argv[2]) if len(sys.argv) > 2 else datetime.now(timezone.utc)
    asyncio.run(main(sys.argv[1], date))
