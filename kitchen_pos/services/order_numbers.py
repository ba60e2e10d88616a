"""Per-restaurant, per-day order numbers of the form ``YYYYMMDD-NNNN``.

The sequence is serialized on an ``order_number_counters`` row locked with
``SELECT ... FOR UPDATE`` inside the transaction that inserts the order
(on SQLite the whole write transaction is serialized by ``BEGIN IMMEDIATE``,
see :func:`kitchen_pos.core.database.configure_sqlite_engine`).
The unique constraint on ``orders (restaurant_id, order_number)`` backs the
lock up; :func:`kitchen_pos.services.orders.create_order` retries on it.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.config import BUSINESS_TIMEZONE
from kitchen_pos.models.order import Order
from kitchen_pos.models.order_number_counter import OrderNumberCounter

logger = logging.getLogger(__name__)


def business_date_for(moment: datetime, tz_name: str = BUSINESS_TIMEZONE) -> date:
    if moment.tzinfo is None:
        return moment.date()
    return moment.astimezone(ZoneInfo(tz_name)).date()


def format_order_number(business_date: date, sequence: int) -> str:
    return f"{business_date:%Y%m%d}-{sequence:04d}"


def _locked_counter(db: Session, restaurant_id: int, business_date: date) -> OrderNumberCounter | None:
    return (
        db.query(OrderNumberCounter)
        .filter(
            OrderNumberCounter.restaurant_id == restaurant_id,
            OrderNumberCounter.business_date == business_date,
        )
        .with_for_update()
        .first()
    )


def _acquire_counter(db: Session, restaurant_id: int, business_date: date) -> OrderNumberCounter:
    counter = _locked_counter(db, restaurant_id, business_date)
    if counter is not None:
        return counter

    try:
        with db.begin_nested():
            counter = OrderNumberCounter(restaurant_id=restaurant_id, business_date=business_date, last_value=0)
            db.add(counter)
        return counter
    except IntegrityError:
        # Another transaction created the row first; wait on its lock instead.
        logger.info("order number counter race restaurant_id=%s date=%s", restaurant_id, business_date)

    counter = _locked_counter(db, restaurant_id, business_date)
    if counter is None:
        raise RuntimeError("order number counter vanished after concurrent insert")
    return counter


def next_order_number(db: Session, restaurant_id: int, business_date: date) -> str:
    counter = _acquire_counter(db, restaurant_id, business_date)
    existing = (
        db.query(func.count(Order.id))
        .filter(Order.restaurant_id == restaurant_id, Order.business_date == business_date)
        .scalar()
    ) or 0
    sequence = max(int(existing), int(counter.last_value or 0)) + 1
    counter.last_value = sequence
    db.flush()
    return format_order_number(business_date, sequence)
