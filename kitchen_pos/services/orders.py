from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from sqlalchemy import and_, exists, not_, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kitchen_pos.core.config import ORDER_NUMBER_MAX_ATTEMPTS
from kitchen_pos.core.errors import ConflictError, NotFoundError, ReferentialError, ValidationError
from kitchen_pos.models.customer import Customer
from kitchen_pos.models.order import ORDER_STATUSES, ORDER_TYPES, Order
from kitchen_pos.models.order_item import ORDER_ITEM_STATUSES, OrderItem
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.customer_stats import apply_status_transition
from kitchen_pos.services.money import ZERO, to_money, utcnow
from kitchen_pos.services.order_items import apply_order_item_changes, build_order_item
from kitchen_pos.services.order_numbers import business_date_for, next_order_number

logger = logging.getLogger(__name__)

TERMINAL_ORDER_STATUSES = frozenset({"served", "cancelled"})


def _validate_order_status(status: str) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}")
    return normalized


def _validate_item_status(status: str) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in ORDER_ITEM_STATUSES:
        raise ValidationError(f"Invalid order item status: {status}")
    return normalized


def _validate_order_type(order_type: str) -> str:
    normalized = (order_type or "").strip().lower()
    if normalized not in ORDER_TYPES:
        raise ValidationError(f"Invalid order type: {order_type}")
    return normalized


def recalculate_totals(order: Order) -> Order:
    """total = subtotal + tax - discount, with subtotal summed from the lines."""
    subtotal = sum((to_money(item.total_price) for item in order.items), ZERO)
    tax = to_money(order.tax_amount)
    discount = to_money(order.discount_amount)
    if tax < 0 or discount < 0:
        raise ValidationError("Tax and discount cannot be negative")
    total = subtotal + tax - discount
    if total < 0:
        raise ValidationError("Discount cannot exceed subtotal plus tax")
    order.subtotal = subtotal
    order.tax_amount = tax
    order.discount_amount = discount
    order.total_amount = total
    return order


def _staff_visibility_clause(revenue_center_ids: Iterable[int]):
    has_visible_item = exists().where(
        and_(OrderItem.order_id == Order.id, OrderItem.revenue_center_id.in_(list(revenue_center_ids)))
    )
    has_any_item = exists().where(OrderItem.order_id == Order.id)
    return or_(has_visible_item, not_(has_any_item))


def _ensure_visible(caller: CallerContext, order: Order) -> None:
    visible = AuthorizationService.visible_revenue_center_ids(caller)
    if visible is None or not order.items:
        return
    if not any(item.revenue_center_id in visible for item in order.items):
        AuthorizationService.ensure_revenue_center_access(caller, order.items[0].revenue_center_id)


def get_order(db: Session, caller: CallerContext, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    AuthorizationService.ensure_tenant_access(caller, order.restaurant_id)
    _ensure_visible(caller, order)
    return order


def list_orders(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    status: str | None = None,
    order_type: str | None = None,
    revenue_center_id: int | None = None,
    customer_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(Order).filter(Order.restaurant_id == restaurant_id)

    if status:
        query = query.filter(Order.status == _validate_order_status(status))
    if order_type:
        query = query.filter(Order.type == _validate_order_type(order_type))
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if revenue_center_id is not None:
        AuthorizationService.ensure_revenue_center_access(caller, revenue_center_id)
        query = query.filter(
            exists().where(and_(OrderItem.order_id == Order.id, OrderItem.revenue_center_id == revenue_center_id))
        )
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    if date_to:
        query = query.filter(Order.created_at <= date_to)

    visible = AuthorizationService.visible_revenue_center_ids(caller)
    if visible is not None:
        query = query.filter(_staff_visibility_clause(visible))

    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()


def recent_orders(db: Session, caller: CallerContext, restaurant_id: int, limit: int = 10) -> list[Order]:
    return list_orders(db, caller, restaurant_id, limit=limit)


def _resolve_customer(db: Session, restaurant_id: int, customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if customer is None:
        raise ReferentialError(f"Customer {customer_id} not found")
    if int(customer.restaurant_id) != int(restaurant_id):
        raise ReferentialError("Customer belongs to a different restaurant")
    return customer


def _insert_numbered_order(db: Session, restaurant_id: int, business_date: date, fields: dict[str, Any]) -> Order:
    for attempt in range(1, ORDER_NUMBER_MAX_ATTEMPTS + 1):
        order_number = next_order_number(db, restaurant_id, business_date)
        try:
            with db.begin_nested():
                order = Order(
                    restaurant_id=restaurant_id,
                    business_date=business_date,
                    order_number=order_number,
                    **fields,
                )
                db.add(order)
            return order
        except IntegrityError:
            taken = (
                db.query(Order.id)
                .filter(Order.restaurant_id == restaurant_id, Order.order_number == order_number)
                .first()
            )
            if taken is None:
                raise
            logger.warning(
                "order number collision attempt=%s/%s",
                attempt,
                ORDER_NUMBER_MAX_ATTEMPTS,
                extra={"order_number": order_number},
            )

    raise ConflictError("Could not assign a unique order number, please retry")


def create_order(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    order_type: str = "dine_in",
    customer_id: int | None = None,
    table_number: str | None = None,
    delivery_location: str | None = None,
    tax_amount: Any = 0,
    discount_amount: Any = 0,
    notes: str | None = None,
    items: Iterable[dict] = (),
    expected_total: Any = None,
    now: datetime | None = None,
) -> Order:
    """Number, insert and price an order in the caller's transaction.

    ``items`` are dicts with ``revenue_center_id``, ``menu_item_id`` or
    ``combo_meal_id``, ``quantity`` and optional ``special_instructions``.
    ``expected_total``, when given, must match the computed total.
    """
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    normalized_type = _validate_order_type(order_type)
    _resolve_customer(db, restaurant_id, customer_id)

    lines = list(items)
    for line in lines:
        if line.get("revenue_center_id") is not None:
            AuthorizationService.ensure_revenue_center_access(caller, line["revenue_center_id"])

    created_at = now or utcnow()
    business_date = business_date_for(created_at)
    order = _insert_numbered_order(
        db,
        restaurant_id,
        business_date,
        {
            "customer_id": customer_id,
            "type": normalized_type,
            "status": "pending",
            "table_number": table_number,
            "delivery_location": delivery_location,
            "subtotal": ZERO,
            "tax_amount": ZERO,
            "discount_amount": ZERO,
            "total_amount": ZERO,
            "notes": notes,
            "created_at": created_at,
            "updated_at": created_at,
        },
    )

    # Inserted balanced at zero; the real amounts land with the priced lines.
    order.tax_amount = to_money(tax_amount)
    order.discount_amount = to_money(discount_amount)
    for line in lines:
        order.items.append(build_order_item(db, order, **line))
    recalculate_totals(order)

    if expected_total is not None and to_money(expected_total) != order.total_amount:
        raise ValidationError(
            f"Order total mismatch: expected {to_money(expected_total)}, computed {order.total_amount}"
        )

    db.flush()
    logger.info(
        "order created items=%s total=%s",
        len(lines),
        order.total_amount,
        extra={"order_id": order.id, "order_number": order.order_number},
    )
    return order


def update_order(db: Session, caller: CallerContext, order_id: int, changes: dict) -> Order:
    order = get_order(db, caller, order_id)
    if "customer_id" in changes:
        _resolve_customer(db, order.restaurant_id, changes["customer_id"])
        order.customer_id = changes["customer_id"]
    if "type" in changes:
        order.type = _validate_order_type(changes["type"])
    for field in ("table_number", "delivery_location", "notes"):
        if field in changes:
            setattr(order, field, changes[field])
    if "tax_amount" in changes:
        order.tax_amount = to_money(changes["tax_amount"])
    if "discount_amount" in changes:
        order.discount_amount = to_money(changes["discount_amount"])
    recalculate_totals(order)
    db.flush()
    return order


def update_order_status(
    db: Session,
    caller: CallerContext,
    order_id: int,
    new_status: str,
    now: datetime | None = None,
) -> Order:
    """Set any status from any status; entering/leaving served moves customer stats."""
    order = get_order(db, caller, order_id)
    normalized = _validate_order_status(new_status)
    previous = order.status

    order.status = normalized
    order.updated_at = now or utcnow()
    db.flush()
    apply_status_transition(db, order, previous, normalized)

    logger.info(
        "order status changed %s -> %s",
        previous,
        normalized,
        extra={"order_id": order.id, "order_number": order.order_number},
    )
    return order


def delete_order(db: Session, caller: CallerContext, order_id: int) -> None:
    order = get_order(db, caller, order_id)
    db.delete(order)
    db.flush()


def _get_item(order: Order, item_id: int) -> OrderItem:
    for item in order.items:
        if item.id == item_id:
            return item
    raise NotFoundError("Order item not found")


def add_order_item(db: Session, caller: CallerContext, order_id: int, line: dict) -> OrderItem:
    order = get_order(db, caller, order_id)
    if line.get("revenue_center_id") is not None:
        AuthorizationService.ensure_revenue_center_access(caller, line["revenue_center_id"])
    item = build_order_item(db, order, **line)
    order.items.append(item)
    recalculate_totals(order)
    db.flush()
    return item


def update_order_item(db: Session, caller: CallerContext, order_id: int, item_id: int, changes: dict) -> OrderItem:
    order = get_order(db, caller, order_id)
    item = _get_item(order, item_id)
    AuthorizationService.ensure_revenue_center_access(caller, changes.get("revenue_center_id", item.revenue_center_id))
    apply_order_item_changes(db, order, item, changes)
    recalculate_totals(order)
    db.flush()
    return item


def update_order_item_status(
    db: Session,
    caller: CallerContext,
    order_id: int,
    item_id: int,
    status: str,
) -> OrderItem:
    order = get_order(db, caller, order_id)
    item = _get_item(order, item_id)
    AuthorizationService.ensure_revenue_center_access(caller, item.revenue_center_id)
    item.status = _validate_item_status(status)
    db.flush()
    return item


def remove_order_item(db: Session, caller: CallerContext, order_id: int, item_id: int) -> Order:
    order = get_order(db, caller, order_id)
    item = _get_item(order, item_id)
    AuthorizationService.ensure_revenue_center_access(caller, item.revenue_center_id)
    order.items.remove(item)
    recalculate_totals(order)
    db.flush()
    return order


def order_stats(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(Order.status, Order.type, Order.total_amount).filter(Order.restaurant_id == restaurant_id)
    if date_from:
        query = query.filter(Order.created_at >= date_from)
    if date_to:
        query = query.filter(Order.created_at <= date_to)

    rows = query.all()
    total_orders = len(rows)
    total_sales = sum((to_money(row.total_amount) for row in rows), ZERO)
    average = (total_sales / total_orders).quantize(Decimal("0.01")) if total_orders else ZERO

    status_distribution: dict[str, int] = {}
    type_distribution: dict[str, int] = {}
    for row in rows:
        status_distribution[row.status] = status_distribution.get(row.status, 0) + 1
        type_distribution[row.type] = type_distribution.get(row.type, 0) + 1

    return {
        "total_orders": total_orders,
        "total_sales": total_sales,
        "average_order_value": average,
        "status_distribution": status_distribution,
        "type_distribution": type_distribution,
    }
