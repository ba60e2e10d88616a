from __future__ import annotations

from decimal import Decimal

from sqlalchemy import or_
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import NotFoundError, ValidationError
from kitchen_pos.models.customer import Customer
from kitchen_pos.models.order import Order
from kitchen_pos.services.access_control import AuthorizationService, CallerContext
from kitchen_pos.services.money import ZERO, to_money

# total_orders / total_spent / last_order_at are owned by customer_stats.
PROFILE_FIELDS = ("name", "email", "phone")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def _profile(values: dict) -> dict:
    unknown = set(values) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationError(f"Customer fields not writable: {', '.join(sorted(unknown))}")
    profile = {field: _clean(values[field]) for field in PROFILE_FIELDS if field in values}
    if "email" in profile and profile["email"]:
        profile["email"] = profile["email"].lower()
    return profile


def get_customer(db: Session, caller: CallerContext, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found")
    AuthorizationService.ensure_tenant_access(caller, customer.restaurant_id)
    return customer


def list_customers(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Customer]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(Customer).filter(Customer.restaurant_id == restaurant_id)
    term = _clean(search)
    if term:
        pattern = f"%{term}%"
        query = query.filter(
            or_(Customer.name.ilike(pattern), Customer.email.ilike(pattern), Customer.phone.ilike(pattern))
        )
    return query.order_by(Customer.total_spent.desc(), Customer.id).offset(offset).limit(limit).all()


def find_customer(db: Session, restaurant_id: int, *, email: str | None = None, phone: str | None = None):
    if email:
        found = (
            db.query(Customer)
            .filter(Customer.restaurant_id == restaurant_id, Customer.email == email.strip().lower())
            .first()
        )
        if found is not None:
            return found
    if phone:
        return (
            db.query(Customer)
            .filter(Customer.restaurant_id == restaurant_id, Customer.phone == phone.strip())
            .first()
        )
    return None


def create_customer(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> Customer:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    customer = Customer(restaurant_id=restaurant_id, total_orders=0, total_spent=ZERO, **_profile(values))
    db.add(customer)
    db.flush()
    return customer


def update_customer(db: Session, caller: CallerContext, customer_id: int, values: dict) -> Customer:
    customer = get_customer(db, caller, customer_id)
    for field, value in _profile(values).items():
        setattr(customer, field, value)
    db.flush()
    return customer


def delete_customer(db: Session, caller: CallerContext, customer_id: int) -> None:
    customer = get_customer(db, caller, customer_id)
    db.delete(customer)
    db.flush()


def find_or_create_customer(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> Customer:
    """Match by email, then phone; fill in blanks on a match, create otherwise."""
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    profile = _profile(values)
    customer = find_customer(db, restaurant_id, email=profile.get("email"), phone=profile.get("phone"))
    if customer is None:
        return create_customer(db, caller, restaurant_id, profile)

    for field, value in profile.items():
        if value and not getattr(customer, field):
            setattr(customer, field, value)
    db.flush()
    return customer


def customer_orders(db: Session, caller: CallerContext, customer_id: int) -> list[Order]:
    customer = get_customer(db, caller, customer_id)
    return (
        db.query(Order)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def customer_stats(db: Session, caller: CallerContext, restaurant_id: int) -> dict:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    customers = db.query(Customer).filter(Customer.restaurant_id == restaurant_id).all()

    total_customers = len(customers)
    total_revenue = sum((to_money(c.total_spent) for c in customers), ZERO)
    total_orders = sum(int(c.total_orders or 0) for c in customers)
    cents = Decimal("0.01")
    top = sorted(customers, key=lambda c: (-to_money(c.total_spent), c.id))[:10]
    return {
        "total_customers": total_customers,
        "total_revenue": total_revenue,
        "total_orders": total_orders,
        "average_order_value": (total_revenue / total_orders).quantize(cents) if total_orders else ZERO,
        "average_customer_value": (total_revenue / total_customers).quantize(cents) if total_customers else ZERO,
        "top_customers": top,
    }
