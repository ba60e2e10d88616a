from decimal import Decimal
from types import SimpleNamespace

import pytest

from kitchen_pos.core.errors import AuthorizationError, ValidationError
from kitchen_pos.services import orders as order_service
from kitchen_pos.services import payments as payment_service
from tests.fixtures_data import MONDAY_NOON, build_session_factory, owner_caller, seed_restaurant


def _payment(amount, status):
    return SimpleNamespace(amount=Decimal(amount), status=status)


def test_derived_status_from_payment_rows():
    assert payment_service.derive_payment_status("100.00", []) == "pending"
    assert payment_service.derive_payment_status("100.00", [_payment("40", "pending")]) == "pending"
    assert payment_service.derive_payment_status("100.00", [_payment("40", "failed")]) == "pending"
    assert (
        payment_service.derive_payment_status("100.00", [_payment("40", "completed"), _payment("60", "pending")])
        == "partial"
    )
    assert (
        payment_service.derive_payment_status("100.00", [_payment("40", "completed"), _payment("60", "completed")])
        == "completed"
    )


def test_payment_method_aliases():
    assert payment_service.normalize_payment_method(" Credit_Card ") == "card"
    assert payment_service.normalize_payment_method("cash") == "cash"


def test_partial_then_completed_payment_flow():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    order = order_service.create_order(db, caller, seed.restaurant_id, tax_amount="100.00", now=MONDAY_NOON)
    db.commit()

    payment_service.create_payment(db, caller, order.id, amount="40", method="cash", status="completed")
    second = payment_service.create_payment(db, caller, order.id, amount="60", method="card")
    db.commit()
    db.refresh(order)

    summary = payment_service.order_payment_summary(order)
    assert summary["payment_status"] == "partial"
    assert summary["amount_paid"] == Decimal("40.00")
    assert summary["balance_due"] == Decimal("60.00")

    updated = payment_service.update_payment_status(db, caller, second.id, "completed")
    db.commit()
    db.refresh(order)

    assert updated.processed_at is not None
    assert payment_service.order_payment_summary(order)["payment_status"] == "completed"


def test_payment_validation_and_tenant_scope():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    other = seed_restaurant(db, "beta")
    order = order_service.create_order(db, owner_caller(seed), seed.restaurant_id, tax_amount="10.00", now=MONDAY_NOON)
    db.commit()

    with pytest.raises(ValidationError):
        payment_service.create_payment(db, owner_caller(seed), order.id, amount="0", method="cash")
    with pytest.raises(ValidationError):
        payment_service.create_payment(db, owner_caller(seed), order.id, amount="5", method="bitcoin")
    with pytest.raises(AuthorizationError):
        payment_service.create_payment(db, owner_caller(other), order.id, amount="5", method="cash")


def test_payment_stats_sum_completed_by_method():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    order = order_service.create_order(db, caller, seed.restaurant_id, tax_amount="50.00", now=MONDAY_NOON)
    payment_service.create_payment(db, caller, order.id, amount="20", method="cash", status="completed")
    payment_service.create_payment(db, caller, order.id, amount="30", method="card", status="pending")
    db.commit()

    stats = payment_service.payment_stats(db, caller, seed.restaurant_id)

    assert stats["total_payments"] == 2
    assert stats["completed_amount"] == Decimal("20.00")
    assert stats["pending_amount"] == Decimal("30.00")
    assert stats["method_distribution"] == {"cash": Decimal("20.00")}
    assert len(payment_service.pending_payments(db, caller, seed.restaurant_id)) == 1
