from datetime import time, timedelta, timezone

import pytest

from kitchen_pos.core.errors import AuthorizationError, ReferentialError, ValidationError
from kitchen_pos.services import business_hours as hours_service
from kitchen_pos.services import menu as menu_service
from tests.fixtures_data import MONDAY_NOON, build_session_factory, owner_caller, seed_restaurant, staff_caller


@pytest.fixture
def db():
    session = build_session_factory()()
    try:
        yield session
    finally:
        session.close()


def _deal(db, seed, **overrides):
    values = {
        "title": "Lunch special",
        "discount_percentage": "15",
        "applicable_items": [seed.menu_item_id],
        "valid_from": MONDAY_NOON - timedelta(hours=1),
        "valid_until": MONDAY_NOON + timedelta(hours=2),
    }
    values.update(overrides)
    return menu_service.create_deal(db, owner_caller(seed), seed.restaurant_id, values)


def test_active_deals_respect_window_and_flag(db):
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    lunch = _deal(db, seed)
    _deal(db, seed, title="Paused", is_active=False)
    _deal(
        db,
        seed,
        title="Next week",
        valid_from=MONDAY_NOON + timedelta(days=7),
        valid_until=MONDAY_NOON + timedelta(days=8),
    )
    db.commit()

    active = menu_service.list_active_deals(db, caller, seed.restaurant_id, at=MONDAY_NOON)
    assert [deal.id for deal in active] == [lunch.id]

    # Bounds are inclusive; other offsets resolve to the same instant.
    edge = (MONDAY_NOON + timedelta(hours=2)).astimezone(timezone(timedelta(hours=-3)))
    assert [deal.id for deal in menu_service.list_active_deals(db, caller, seed.restaurant_id, at=edge)] == [lunch.id]
    assert menu_service.list_active_deals(db, caller, seed.restaurant_id, at=MONDAY_NOON + timedelta(hours=3)) == []

    assert len(menu_service.list_deals(db, caller, seed.restaurant_id)) == 3


def test_deal_validation(db):
    alpha = seed_restaurant(db, "alpha")
    beta = seed_restaurant(db, "beta")

    with pytest.raises(ValidationError):
        _deal(db, alpha, title=" ")
    with pytest.raises(ValidationError):
        _deal(db, alpha, discount_percentage="120")
    with pytest.raises(ValidationError):
        _deal(db, alpha, discount_percentage=None, discount_amount="-2")
    with pytest.raises(ValidationError):
        _deal(db, alpha, valid_until=MONDAY_NOON - timedelta(days=1))
    with pytest.raises(ReferentialError):
        _deal(db, alpha, applicable_items=[beta.menu_item_id])
    with pytest.raises(AuthorizationError):
        menu_service.create_deal(
            db,
            staff_caller(alpha, alpha.bar_id),
            alpha.restaurant_id,
            {"title": "Sneaky", "valid_from": MONDAY_NOON, "valid_until": MONDAY_NOON},
        )


def test_update_deal_rechecks_window_against_stored_bounds(db):
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    deal = _deal(db, seed)
    db.commit()

    with pytest.raises(ValidationError):
        menu_service.update_deal(db, caller, deal.id, {"valid_until": MONDAY_NOON - timedelta(days=1)})

    updated = menu_service.update_deal(db, caller, deal.id, {"discount_amount": "3.50", "is_active": False})
    assert str(updated.discount_amount) == "3.50"
    assert menu_service.list_active_deals(db, caller, seed.restaurant_id, at=MONDAY_NOON) == []

    menu_service.delete_deal(db, caller, deal.id)
    assert menu_service.list_deals(db, caller, seed.restaurant_id) == []


def test_menu_stats_counts_catalog(db):
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    menu_service.create_item(
        db,
        caller,
        seed.restaurant_id,
        {"name": "Seasonal soup", "price": "6.00", "category_id": seed.category_id, "is_available": False},
    )
    _deal(db, seed)
    _deal(db, seed, title="Paused", is_active=False)

    assert menu_service.menu_stats(db, caller, seed.restaurant_id) == {
        "total_categories": 1,
        "total_items": 2,
        "available_items": 1,
        "unavailable_items": 1,
        "total_combos": 1,
        "total_deals": 2,
        "active_deals": 1,
    }


def test_business_hours_stats_groups_by_revenue_center(db):
    seed = seed_restaurant(db)
    caller = owner_caller(seed)
    hours_service.initialize_default_hours(db, caller, [seed.dining_id])
    hours_service.set_business_hours(
        db,
        caller,
        seed.bar_id,
        [
            {"day_of_week": 5, "open_time": time(18, 0), "close_time": time(2, 0), "is_closed": False},
            {"day_of_week": 0, "open_time": None, "close_time": None, "is_closed": True},
        ],
    )

    stats = hours_service.business_hours_stats(db, caller, seed.restaurant_id)

    assert stats["total_hours"] == 9
    assert stats["open_days"] == 8
    assert stats["closed_days"] == 1
    assert stats["center_stats"] == {"Main Dining": {"open": 7, "closed": 0}, "Bar": {"open": 1, "closed": 1}}
