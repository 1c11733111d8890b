#!/usr/bin/env python
"""Script to re-sync order refund ledgers from Stripe.

This script:
1. Loads each given order (or every order with refunds still in flight)
2. Lists the refunds Stripe holds for the order's PaymentIntent
3. Upserts them into the order's refunds and recomputes the order status

Usage:
    python scripts/resync_refunds.py                 # all orders with PENDING/ONHOLD refunds
    python scripts/resync_refunds.py <order-id> ...  # specific orders

Requirements:
    - STRIPE_SECRET_KEY and Supabase environment variables must be set

Note:
    - Use after a webhook outage; applying it twice has no further effect
    - Local refund status is only ever taken from Stripe
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from uuid import UUID

# Add the project root to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.middleware.error_handler import APIError
from src.core.stripe import configure_stripe
from src.services.refund_service import IN_FLIGHT_REFUND_STATUSES, RefundService

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def find_orders_with_open_refunds(service: RefundService) -> list[UUID]:
    """Find orders whose refund ledger still has in-flight refunds."""
    response = service.orders.client.table("orders").select("id, refunds").neq("refunds", "[]").execute()
    order_ids = []
    for row in response.data or []:
        if any(refund.get("status") in IN_FLIGHT_REFUND_STATUSES for refund in row.get("refunds") or []):
            order_ids.append(UUID(row["id"]))
    return order_ids


async def resync(order_ids: list[UUID]) -> dict[str, int]:
    """Re-sync the refund ledger of each order.

    Args:
        order_ids: Orders to re-sync; empty means every order with open refunds.

    Returns:
        dict: Counts of processed and failed orders.
    """
    service = RefundService()
    if not order_ids:
        order_ids = await find_orders_with_open_refunds(service)
        logger.info("Found %s orders with open refunds", len(order_ids))

    processed = 0
    failed = 0
    for order_id in order_ids:
        try:
            order = await service.resync_refunds(order_id)
            processed += 1
            logger.info(
                "Order %s: %s refunds, status %s",
                order_id,
                len(order.get("refunds") or []),
                order.get("status"),
            )
        except APIError as e:
            failed += 1
            logger.error("Order %s: %s", order_id, e.message)

    return {"processed": processed, "failed": failed}


async def main() -> None:
    """Main entry point for the re-sync script."""
    parser = argparse.ArgumentParser(description="Re-sync order refunds from Stripe")
    parser.add_argument("order_ids", nargs="*", type=UUID, help="Order IDs (default: all with open refunds)")
    args = parser.parse_args()

    configure_stripe()
    logger.info("Starting refund re-sync...")

    results = await resync(args.order_ids)

    logger.info("=" * 60)
    logger.info("Refund re-sync complete!")
    logger.info("Orders processed: %s", results["processed"])
    logger.info("Failed: %s", results["failed"])
    logger.info("=" * 60)

    if results["failed"] > 0:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
