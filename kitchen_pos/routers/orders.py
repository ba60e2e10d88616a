from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.order import Order
from kitchen_pos.models.order_item import OrderItem
from kitchen_pos.services import orders as order_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.money import to_money
from kitchen_pos.services.payments import order_payment_summary

router = APIRouter(prefix="/api", tags=["orders"])


class OrderItemCreate(BaseModel):
    revenue_center_id: int
    menu_item_id: Optional[int] = None
    combo_meal_id: Optional[int] = None
    quantity: int = 1
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderItemUpdate(BaseModel):
    revenue_center_id: Optional[int] = None
    menu_item_id: Optional[int] = None
    combo_meal_id: Optional[int] = None
    quantity: Optional[int] = None
    special_instructions: Optional[str] = Field(default=None, max_length=500)


class OrderCreate(BaseModel):
    type: str = "dine_in"
    customer_id: Optional[int] = None
    table_number: Optional[str] = Field(default=None, max_length=20)
    delivery_location: Optional[str] = None
    tax_amount: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")
    total_amount: Optional[Decimal] = None
    notes: Optional[str] = None
    items: List[OrderItemCreate] = Field(default_factory=list)


class OrderUpdate(BaseModel):
    type: Optional[str] = None
    customer_id: Optional[int] = None
    table_number: Optional[str] = Field(default=None, max_length=20)
    delivery_location: Optional[str] = None
    tax_amount: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    notes: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


def _money(value) -> str:
    return str(to_money(value))


def _item_to_dict(item: OrderItem) -> dict:
    return {
        "id": item.id,
        "order_id": item.order_id,
        "revenue_center_id": item.revenue_center_id,
        "menu_item_id": item.menu_item_id,
        "combo_meal_id": item.combo_meal_id,
        "item_name": item.item_name,
        "quantity": item.quantity,
        "unit_price": _money(item.unit_price),
        "total_price": _money(item.total_price),
        "special_instructions": item.special_instructions,
        "status": item.status,
    }


def order_to_dict(order: Order, include_items: bool = True) -> dict:
    summary = order_payment_summary(order)
    data = {
        "id": order.id,
        "restaurant_id": order.restaurant_id,
        "customer_id": order.customer_id,
        "order_number": order.order_number,
        "type": order.type,
        "status": order.status,
        "table_number": order.table_number,
        "delivery_location": order.delivery_location,
        "subtotal": _money(order.subtotal),
        "tax_amount": _money(order.tax_amount),
        "discount_amount": _money(order.discount_amount),
        "total_amount": _money(order.total_amount),
        "notes": order.notes,
        "payment_status": summary["payment_status"],
        "amount_paid": _money(summary["amount_paid"]),
        "balance_due": _money(summary["balance_due"]),
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }
    if include_items:
        data["items"] = [_item_to_dict(item) for item in order.items]
    return data


@router.get("/restaurants/{restaurant_id}/orders")
def list_orders(
    restaurant_id: int,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    order_type: Optional[str] = Query(default=None, alias="type"),
    revenue_center_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    orders = order_service.list_orders(
        db,
        caller,
        restaurant_id,
        status=status_filter,
        order_type=order_type,
        revenue_center_id=revenue_center_id,
        customer_id=customer_id,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
        offset=offset,
    )
    return [order_to_dict(order) for order in orders]


@router.get("/restaurants/{restaurant_id}/orders/recent")
def recent_orders(
    restaurant_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    return [order_to_dict(order, include_items=False) for order in order_service.recent_orders(db, caller, restaurant_id, limit)]


@router.get("/restaurants/{restaurant_id}/orders/stats")
def order_stats(
    restaurant_id: int,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    stats = order_service.order_stats(db, caller, restaurant_id, date_from=date_from, date_to=date_to)
    stats["total_sales"] = _money(stats["total_sales"])
    stats["average_order_value"] = _money(stats["average_order_value"])
    return stats


@router.post("/restaurants/{restaurant_id}/orders", status_code=status.HTTP_201_CREATED)
def create_order(
    restaurant_id: int,
    payload: OrderCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        order = order_service.create_order(
            db,
            caller,
            restaurant_id,
            order_type=payload.type,
            customer_id=payload.customer_id,
            table_number=payload.table_number,
            delivery_location=payload.delivery_location,
            tax_amount=payload.tax_amount,
            discount_amount=payload.discount_amount,
            notes=payload.notes,
            items=[item.model_dump() for item in payload.items],
            expected_total=payload.total_amount,
        )
    db.refresh(order)
    return order_to_dict(order)


@router.get("/orders/{order_id}")
def get_order(order_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return order_to_dict(order_service.get_order(db, caller, order_id))


@router.patch("/orders/{order_id}")
def update_order(
    order_id: int,
    payload: OrderUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        order = order_service.update_order(db, caller, order_id, payload.model_dump(exclude_unset=True))
    db.refresh(order)
    return order_to_dict(order)


@router.patch("/orders/{order_id}/status")
def update_order_status(
    order_id: int,
    payload: StatusUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        order = order_service.update_order_status(db, caller, order_id, payload.status)
    db.refresh(order)
    return order_to_dict(order)


@router.delete("/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_order(order_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        order_service.delete_order(db, caller, order_id)


@router.post("/orders/{order_id}/items", status_code=status.HTTP_201_CREATED)
def add_order_item(
    order_id: int,
    payload: OrderItemCreate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        item = order_service.add_order_item(db, caller, order_id, payload.model_dump())
    db.refresh(item)
    return _item_to_dict(item)


@router.patch("/orders/{order_id}/items/{item_id}")
def update_order_item(
    order_id: int,
    item_id: int,
    payload: OrderItemUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        item = order_service.update_order_item(db, caller, order_id, item_id, payload.model_dump(exclude_unset=True))
    db.refresh(item)
    return _item_to_dict(item)


@router.patch("/orders/{order_id}/items/{item_id}/status")
def update_order_item_status(
    order_id: int,
    item_id: int,
    payload: StatusUpdate,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        item = order_service.update_order_item_status(db, caller, order_id, item_id, payload.status)
    db.refresh(item)
    return _item_to_dict(item)


@router.delete("/orders/{order_id}/items/{item_id}")
def remove_order_item(
    order_id: int,
    item_id: int,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        order = order_service.remove_order_item(db, caller, order_id, item_id)
    db.refresh(order)
    return order_to_dict(order)
