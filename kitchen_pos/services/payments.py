from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from kitchen_pos.core.errors import NotFoundError, ValidationError
from kitchen_pos.models.order import Order
from kitchen_pos.models.payment import PAYMENT_METHODS, PAYMENT_STATUSES, Payment
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.money import ZERO, to_money, utcnow

logger = logging.getLogger(__name__)

PAYMENT_METHOD_ALIASES = {
    "credit_card": "card",
    "debit_card": "card",
    "giftcard": "gift_card",
    "gift card": "gift_card",
}


def normalize_payment_method(method: str | None) -> str:
    lowered = (method or "").strip().lower()
    return PAYMENT_METHOD_ALIASES.get(lowered, lowered)


def derive_payment_status(order_total, payments: Iterable) -> str:
    """Order-level payment status, recomputed from the payment rows on every read."""
    rows = list(payments)
    if not rows:
        return "pending"

    total = to_money(order_total)
    completed = sum((to_money(p.amount) for p in rows if p.status == "completed"), ZERO)
    if completed >= total:
        return "completed"

    has_completed = any(p.status == "completed" for p in rows)
    has_pending = any(p.status == "pending" for p in rows)
    if has_completed and has_pending:
        return "partial"
    return "pending"


def order_payment_summary(order: Order) -> dict:
    payments = list(order.payments or [])
    paid = sum((to_money(p.amount) for p in payments if p.status == "completed"), ZERO)
    return {
        "payment_status": derive_payment_status(order.total_amount, payments),
        "amount_paid": paid,
        "balance_due": max(to_money(order.total_amount) - paid, ZERO),
    }


def _validate_status(status: str) -> str:
    normalized = (status or "").strip().lower()
    if normalized not in PAYMENT_STATUSES:
        raise ValidationError(f"Invalid payment status: {status}")
    return normalized


def _get_order(db: Session, caller: CallerContext, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    AuthorizationService.ensure_tenant_access(caller, order.restaurant_id)
    return order


def get_payment(db: Session, caller: CallerContext, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if payment is None:
        raise NotFoundError("Payment not found")
    AuthorizationService.ensure_tenant_access(caller, payment.order.restaurant_id)
    return payment


def list_order_payments(db: Session, caller: CallerContext, order_id: int) -> list[Payment]:
    order = _get_order(db, caller, order_id)
    return list(order.payments)


def list_payments(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    status: str | None = None,
    method: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Payment]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(Payment).join(Order, Order.id == Payment.order_id).filter(Order.restaurant_id == restaurant_id)
    if status:
        query = query.filter(Payment.status == _validate_status(status))
    if method:
        query = query.filter(Payment.method == normalize_payment_method(method))
    if date_from:
        query = query.filter(Payment.created_at >= date_from)
    if date_to:
        query = query.filter(Payment.created_at <= date_to)
    return query.order_by(Payment.created_at.desc(), Payment.id.desc()).offset(offset).limit(limit).all()


def create_payment(
    db: Session,
    caller: CallerContext,
    order_id: int,
    *,
    amount,
    method: str,
    status: str = "pending",
    transaction_id: str | None = None,
) -> Payment:
    order = _get_order(db, caller, order_id)

    normalized_method = normalize_payment_method(method)
    if normalized_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment method: {method}")
    normalized_status = _validate_status(status)
    value = to_money(amount)
    if value <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    payment = Payment(
        order_id=order.id,
        amount=value,
        method=normalized_method,
        status=normalized_status,
        transaction_id=transaction_id,
        processed_at=utcnow() if normalized_status == "completed" else None,
    )
    db.add(payment)
    db.flush()
    logger.info(
        "payment recorded method=%s status=%s amount=%s",
        normalized_method,
        normalized_status,
        value,
        extra={"order_id": order.id},
    )
    return payment


def update_payment_status(
    db: Session,
    caller: CallerContext,
    payment_id: int,
    status: str,
    transaction_id: str | None = None,
) -> Payment:
    payment = get_payment(db, caller, payment_id)
    normalized_status = _validate_status(status)
    if normalized_status == "completed" and payment.status != "completed":
        payment.processed_at = utcnow()
    payment.status = normalized_status
    if transaction_id is not None:
        payment.transaction_id = transaction_id
    db.flush()
    return payment


def delete_payment(db: Session, caller: CallerContext, payment_id: int) -> None:
    payment = get_payment(db, caller, payment_id)
    db.delete(payment)
    db.flush()


def payment_stats(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
) -> dict:
    payments = list_payments(
        db,
        caller,
        restaurant_id,
        date_from=date_from,
        date_to=date_to,
        limit=100_000,
    )
    total_amount = sum((to_money(p.amount) for p in payments), ZERO)
    status_distribution: dict[str, int] = {}
    method_distribution: dict[str, Decimal] = {}
    completed_amount = ZERO
    pending_amount = ZERO
    for payment in payments:
        status_distribution[payment.status] = status_distribution.get(payment.status, 0) + 1
        amount = to_money(payment.amount)
        if payment.status == "completed":
            completed_amount += amount
            method_distribution[payment.method] = method_distribution.get(payment.method, ZERO) + amount
        elif payment.status == "pending":
            pending_amount += amount

    return {
        "total_payments": len(payments),
        "total_amount": total_amount,
        "completed_amount": completed_amount,
        "pending_amount": pending_amount,
        "status_distribution": status_distribution,
        "method_distribution": method_distribution,
    }


def pending_payments(db: Session, caller: CallerContext, restaurant_id: int) -> list[Payment]:
    return list_payments(db, caller, restaurant_id, status="pending")


def recent_payments(db: Session, caller: CallerContext, restaurant_id: int, limit: int = 10) -> list[Payment]:
    return list_payments(db, caller, restaurant_id, limit=limit)
