"""Customer aggregate maintenance driven by order status transitions.

``Customer.total_orders``, ``total_spent`` and ``last_order_at`` are written
here and nowhere else. Each change is a single ``UPDATE`` with the arithmetic
done by the database, so concurrent status updates for the same customer
cannot lose increments.

Known limitation kept on purpose: served -> cancelled -> served counts the
order twice, and decrements are clamped at zero rather than paired.
"""
from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from kitchen_pos.models.customer import Customer
from kitchen_pos.models.order import Order
from kitchen_pos.services.money import to_money, utcnow

logger = logging.getLogger(__name__)

SERVED = "served"
CANCELLED = "cancelled"


def transition_effect(previous_status: str | None, new_status: str) -> int:
    """+1 when an order enters served, -1 on served -> cancelled, else 0."""
    if new_status == SERVED and previous_status != SERVED:
        return 1
    if previous_status == SERVED and new_status == CANCELLED:
        return -1
    return 0


def _record_served(db: Session, customer_id: int, amount: Decimal, served_at) -> None:
    db.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            total_orders=Customer.total_orders + 1,
            total_spent=Customer.total_spent + amount,
            last_order_at=served_at,
        )
        .execution_options(synchronize_session="fetch")
    )


def _record_cancelled(db: Session, customer_id: int, amount: Decimal) -> None:
    db.execute(
        update(Customer)
        .where(Customer.id == customer_id)
        .values(
            total_orders=case(
                (Customer.total_orders - 1 < 0, 0),
                else_=Customer.total_orders - 1,
            ),
            total_spent=case(
                (Customer.total_spent - amount < 0, 0),
                else_=Customer.total_spent - amount,
            ),
        )
        .execution_options(synchronize_session="fetch")
    )


def apply_status_transition(db: Session, order: Order, previous_status: str | None, new_status: str) -> int:
    effect = transition_effect(previous_status, new_status)
    if effect == 0 or order.customer_id is None:
        return 0

    amount = to_money(order.total_amount)
    if effect > 0:
        _record_served(db, order.customer_id, amount, order.updated_at or utcnow())
    else:
        _record_cancelled(db, order.customer_id, amount)

    logger.info(
        "customer stats updated effect=%s amount=%s",
        effect,
        amount,
        extra={"order_id": order.id, "customer_id": order.customer_id},
    )
    return effect
