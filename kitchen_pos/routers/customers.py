from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from kitchen_pos.core.database import commit_or_rollback, get_db
from kitchen_pos.deps import get_caller
from kitchen_pos.models.customer import Customer
from kitchen_pos.routers.orders import order_to_dict
from kitchen_pos.services import customers as customer_service
from kitchen_pos.services.access_control import CallerContext
from kitchen_pos.services.money import to_money

router = APIRouter(prefix="/api", tags=["customers"])


class CustomerPayload(BaseModel):
    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=20)


def _customer_to_dict(customer: Customer) -> dict:
    return {
        "id": customer.id,
        "restaurant_id": customer.restaurant_id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
        "total_orders": customer.total_orders or 0,
        "total_spent": str(to_money(customer.total_spent)),
        "last_order_at": customer.last_order_at,
        "created_at": customer.created_at,
    }


@router.get("/restaurants/{restaurant_id}/customers")
def list_customers(
    restaurant_id: int,
    search: Optional[str] = None,
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    customers = customer_service.list_customers(db, caller, restaurant_id, search=search, limit=limit, offset=offset)
    return [_customer_to_dict(customer) for customer in customers]


@router.get("/restaurants/{restaurant_id}/customers/stats")
def customer_stats(restaurant_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    stats = customer_service.customer_stats(db, caller, restaurant_id)
    for key in ("total_revenue", "average_order_value", "average_customer_value"):
        stats[key] = str(stats[key])
    stats["top_customers"] = [_customer_to_dict(customer) for customer in stats["top_customers"]]
    return stats


@router.post("/restaurants/{restaurant_id}/customers", status_code=status.HTTP_201_CREATED)
def create_customer(
    restaurant_id: int,
    payload: CustomerPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        customer = customer_service.create_customer(db, caller, restaurant_id, payload.model_dump(exclude_unset=True))
    db.refresh(customer)
    return _customer_to_dict(customer)


@router.post("/restaurants/{restaurant_id}/customers/find-or-create")
def find_or_create_customer(
    restaurant_id: int,
    payload: CustomerPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        customer = customer_service.find_or_create_customer(
            db, caller, restaurant_id, payload.model_dump(exclude_unset=True)
        )
    db.refresh(customer)
    return _customer_to_dict(customer)


@router.get("/customers/{customer_id}")
def get_customer(customer_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return _customer_to_dict(customer_service.get_customer(db, caller, customer_id))


@router.get("/customers/{customer_id}/orders")
def customer_orders(customer_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    return [order_to_dict(order, include_items=False) for order in customer_service.customer_orders(db, caller, customer_id)]


@router.patch("/customers/{customer_id}")
def update_customer(
    customer_id: int,
    payload: CustomerPayload,
    caller: CallerContext = Depends(get_caller),
    db: Session = Depends(get_db),
):
    with commit_or_rollback(db):
        customer = customer_service.update_customer(db, caller, customer_id, payload.model_dump(exclude_unset=True))
    db.refresh(customer)
    return _customer_to_dict(customer)


@router.delete("/customers/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_customer(customer_id: int, caller: CallerContext = Depends(get_caller), db: Session = Depends(get_db)):
    with commit_or_rollback(db):
        customer_service.delete_customer(db, caller, customer_id)
