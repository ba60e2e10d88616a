from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.payment import Payment
from kitchen_pos.services import payments as payment_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.money import to_money

router = APIRouter(prefix="/api", tags=["payments"])


class PaymentCreate(BaseModel):
    amount: Decimal
    method: str
    status: str = "pending"
    transaction_id: Optional[str] = Field(default=None, max_length=255)


class PaymentStatusUpdate(BaseModel):
    status: str
    transaction_id: Optional[str] = Field(default=None, max_length=255)


def _payment_to_dict(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "order_id": payment.order_id,
        "amount": str(to_money(payment.amount)),
        "method": payment.method,
        "status": payment.status,
        "transaction_id": payment.transaction_id,
        "processed_at": payment.processed_at,
        "created_at": payment.created_at,
    }


@router.get("/restaurants/{restaurant_id}/payments")
def list_payments(
    restaurant_id: int,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    method: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    payments = payment_service.list_payments(
        db,
        caller,
        restaurant_id,
        status=status_filter,
        method=method,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [_payment_to_dict(payment) for payment in payments]


@router.get("/restaurants/{restaurant_id}/payments/pending")
def pending_payments(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_payment_to_dict(p) for p in payment_service.pending_payments(db, caller, restaurant_id)]


@router.get("/restaurants/{restaurant_id}/payments/recent")
def recent_payments(
    restaurant_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return [_payment_to_dict(p) for p in payment_service.recent_payments(db, caller, restaurant_id, limit)]


@router.get("/restaurants/{restaurant_id}/payments/stats")
def payment_stats(
    restaurant_id: int,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    stats = payment_service.payment_stats(db, caller, restaurant_id, date_from=date_from, date_to=date_to)
    for key in ("total_amount", "completed_amount", "pending_amount"):
        stats[key] = str(stats[key])
    stats["method_distribution"] = {method: str(value) for method, value in stats["method_distribution"].items()}
    return stats


@router.get("/orders/{order_id}/payments")
def list_order_payments(order_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [_payment_to_dict(p) for p in payment_service.list_order_payments(db, caller, order_id)]


@router.post("/orders/{order_id}/payments", status_code=status.HTTP_201_CREATED)
def create_payment(
    order_id: int,
    payload: PaymentCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        payment = payment_service.create_payment(
            db,
            caller,
            order_id,
            amount=payload.amount,
            method=payload.method,
            status=payload.status,
            transaction_id=payload.transaction_id,
        )
    db.refresh(payment)
    return _payment_to_dict(payment)


@router.get("/payments/{payment_id}")
def get_payment(payment_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _payment_to_dict(payment_service.get_payment(db, caller, payment_id))


@router.patch("/payments/{payment_id}/status")
def update_payment_status(
    payment_id: int,
    payload: PaymentStatusUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        payment = payment_service.update_payment_status(
            db, caller, payment_id, payload.status, transaction_id=payload.transaction_id
        )
    db.refresh(payment)
    return _payment_to_dict(payment)


@router.delete("/payments/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(payment_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        payment_service.delete_payment(db, caller, payment_id)
