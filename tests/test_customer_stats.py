from decimal import Decimal

import pytest

from kitchen_pos.models.customer import Customer
from kitchen_pos.services import orders as order_service
from kitchen_pos.services.customer_stats import transition_effect
from tests.fixtures_data import MONDAY_NOON, build_session_factory, owner_caller, seed_restaurant


@pytest.mark.parametrize(
    "previous,new,expected",
    [
        ("pending", "served", 1),
        ("ready", "served", 1),
        ("served", "served", 0),
        ("served", "cancelled", -1),
        ("pending", "cancelled", 0),
        ("served", "ready", 0),
        (None, "served", 1),
    ],
)
def test_transition_effect(previous, new, expected):
    assert transition_effect(previous, new) == expected


def _order_for_customer(db, seed, total="25.50"):
    return order_service.create_order(
        db,
        owner_caller(seed),
        seed.restaurant_id,
        customer_id=seed.customer_id,
        tax_amount=total,
        now=MONDAY_NOON,
    )


def _customer(db, seed) -> Customer:
    db.expire_all()
    return db.query(Customer).filter(Customer.id == seed.customer_id).one()


def test_serving_then_cancelling_moves_stats_up_and_back():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    order = _order_for_customer(db, seed)
    db.commit()
    assert order.total_amount == Decimal("25.50")

    order_service.update_order_status(db, owner_caller(seed), order.id, "served")
    db.commit()
    customer = _customer(db, seed)
    assert customer.total_orders == 1
    assert customer.total_spent == Decimal("25.50")
    assert customer.last_order_at is not None

    order_service.update_order_status(db, owner_caller(seed), order.id, "cancelled")
    db.commit()
    customer = _customer(db, seed)
    assert customer.total_orders == 0
    assert customer.total_spent == Decimal("0.00")


def test_non_served_transitions_leave_stats_alone():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    order = _order_for_customer(db, seed)
    db.commit()

    for status in ("preparing", "ready", "cancelled"):
        order_service.update_order_status(db, owner_caller(seed), order.id, status)
    db.commit()

    customer = _customer(db, seed)
    assert customer.total_orders == 0
    assert customer.total_spent == Decimal("0.00")


def test_decrement_is_clamped_at_zero():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    order = _order_for_customer(db, seed)
    db.commit()
    order_service.update_order_status(db, owner_caller(seed), order.id, "served")
    db.commit()

    # Out-of-band correction lowers the aggregate below the order amount.
    db.query(Customer).filter(Customer.id == seed.customer_id).update(
        {"total_orders": 0, "total_spent": Decimal("10.00")}
    )
    db.commit()

    order_service.update_order_status(db, owner_caller(seed), order.id, "cancelled")
    db.commit()
    customer = _customer(db, seed)
    assert customer.total_orders == 0
    assert customer.total_spent == Decimal("0.00")


def test_orders_without_customer_do_not_touch_aggregates():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    order = order_service.create_order(db, owner_caller(seed), seed.restaurant_id, tax_amount="5.00", now=MONDAY_NOON)
    db.commit()

    order_service.update_order_status(db, owner_caller(seed), order.id, "served")
    db.commit()

    assert _customer(db, seed).total_orders == 0
