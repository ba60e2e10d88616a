import threading
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from kitchen_pos.core.database import Base, build_engine
from kitchen_pos.core.errors import ConflictError
from kitchen_pos.models.order import Order
from kitchen_pos.models.order_number_counter import OrderNumberCounter
from kitchen_pos.services import orders as order_service
from kitchen_pos.services.order_numbers import business_date_for, format_order_number
from tests.fixtures_data import MONDAY_NOON, build_session_factory, owner_caller, seed_restaurant


def _line(seed, quantity=1):
    return {"revenue_center_id": seed.dining_id, "menu_item_id": seed.menu_item_id, "quantity": quantity}


def test_format_order_number_pads_sequence():
    assert format_order_number(date(2024, 1, 15), 7) == "20240115-0007"
    assert format_order_number(date(2024, 1, 15), 12345) == "20240115-12345"


def test_business_date_uses_business_timezone():
    late_utc = datetime(2024, 1, 15, 23, 30, tzinfo=timezone.utc)

    assert business_date_for(late_utc, "UTC") == date(2024, 1, 15)
    assert business_date_for(late_utc, "Asia/Tokyo") == date(2024, 1, 16)


def test_sequential_orders_get_gapless_numbers():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    caller = owner_caller(seed)

    numbers = []
    for offset in range(5):
        order = order_service.create_order(
            db, caller, seed.restaurant_id, items=[_line(seed)], now=MONDAY_NOON + timedelta(minutes=offset)
        )
        numbers.append(order.order_number)
    db.commit()

    assert numbers == [f"20240115-000{n}" for n in range(1, 6)]
    counter = db.query(OrderNumberCounter).filter(OrderNumberCounter.restaurant_id == seed.restaurant_id).one()
    assert counter.last_value == 5


def test_numbers_restart_per_day_and_per_restaurant():
    db = build_session_factory()()
    alpha = seed_restaurant(db, "alpha")
    beta = seed_restaurant(db, "beta")

    first = order_service.create_order(db, owner_caller(alpha), alpha.restaurant_id, now=MONDAY_NOON)
    other_tenant = order_service.create_order(db, owner_caller(beta), beta.restaurant_id, now=MONDAY_NOON)
    next_day = order_service.create_order(
        db, owner_caller(alpha), alpha.restaurant_id, now=MONDAY_NOON + timedelta(days=1)
    )
    db.commit()

    assert first.order_number == "20240115-0001"
    assert other_tenant.order_number == "20240115-0001"
    assert next_day.order_number == "20240116-0001"


def test_collision_on_unique_number_is_retried():
    db = build_session_factory()()
    seed = seed_restaurant(db)
    # Written by another path without touching the counter.
    db.add(
        Order(
            restaurant_id=seed.restaurant_id,
            order_number="20240115-0002",
            business_date=date(2024, 1, 15),
            subtotal=Decimal("0"),
            tax_amount=Decimal("0"),
            discount_amount=Decimal("0"),
            total_amount=Decimal("0"),
        )
    )
    db.commit()

    order = order_service.create_order(db, owner_caller(seed), seed.restaurant_id, now=MONDAY_NOON)
    db.commit()

    assert order.order_number == "20240115-0003"
    assert db.query(Order).filter(Order.restaurant_id == seed.restaurant_id).count() == 2


def test_exhausted_retries_raise_conflict(monkeypatch):
    db = build_session_factory()()
    seed = seed_restaurant(db)
    order_service.create_order(db, owner_caller(seed), seed.restaurant_id, now=MONDAY_NOON)
    db.commit()

    monkeypatch.setattr(order_service, "next_order_number", lambda *_args: "20240115-0001")
    monkeypatch.setattr(order_service, "ORDER_NUMBER_MAX_ATTEMPTS", 3)

    with pytest.raises(ConflictError):
        order_service.create_order(db, owner_caller(seed), seed.restaurant_id, now=MONDAY_NOON)
    db.rollback()


def test_concurrent_orders_get_distinct_gapless_numbers(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'orders.sqlite'}")
    Base.metadata.create_all(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    with session_factory() as setup:
        seed = seed_restaurant(setup)
    caller = owner_caller(seed)

    workers = 6
    barrier = threading.Barrier(workers)
    numbers: list[str] = []
    errors: list[Exception] = []
    lock = threading.Lock()

    def place_order(offset: int) -> None:
        db = session_factory()
        try:
            barrier.wait()
            order = order_service.create_order(
                db, caller, seed.restaurant_id, items=[_line(seed)], now=MONDAY_NOON + timedelta(seconds=offset)
            )
            number = order.order_number
            db.commit()
            with lock:
                numbers.append(number)
        except Exception as exc:  # collected and asserted below
            db.rollback()
            with lock:
                errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=place_order, args=(offset,)) for offset in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    engine.dispose()

    assert errors == []
    assert sorted(numbers) == [f"20240115-000{n}" for n in range(1, workers + 1)]
