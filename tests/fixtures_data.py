from datetime import datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import kitchen_pos.models  # noqa: F401
from kitchen_pos.core.database import Base, configure_sqlite_engine
from kitchen_pos.models.combo_meal import ComboMeal
from kitchen_pos.models.customer import Customer
from kitchen_pos.models.kitchen_owner import KitchenOwner
from kitchen_pos.models.menu_category import MenuCategory
from kitchen_pos.models.menu_item import MenuItem
from kitchen_pos.models.restaurant import Restaurant
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.models.user import User
from kitchen_pos.services.access_control import CallerContext

# Monday
MONDAY_NOON = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)

PROVISIONING_PAYLOAD = {
    "email": "owner@example.com",
    "full_name": "Olivia Owner",
    "subscription_plan": "premium",
    "payment_id": "pay_123",
    "subscription_amount": "49.90",
    "subscription_expires_at": "2030-01-01T00:00:00+00:00",
}


def build_session_factory() -> sessionmaker:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite_engine(engine)
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def seed_restaurant(db, slug: str = "alpha", item_price: str = "12.75") -> SimpleNamespace:
    """One tenant with an owner, two revenue centers, a menu item and a combo."""
    owner = KitchenOwner(
        email=f"{slug}-owner@example.com",
        full_name=f"{slug.title()} Owner",
        subscription_plan="basic",
        payment_id=f"pay_{slug}",
        subscription_amount=Decimal("29.00"),
        subscription_expires_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        is_setup_completed=True,
    )
    db.add(owner)
    db.flush()

    restaurant = Restaurant(owner_id=owner.id, name=f"{slug.title()} Bistro", domain_name=slug, status="active")
    db.add(restaurant)
    db.flush()

    user = User(
        email=f"{slug}-owner@example.com",
        full_name=owner.full_name,
        role="kitchen_owner",
        restaurant_id=restaurant.id,
        is_active=True,
    )
    db.add(user)
    db.flush()
    owner.user_id = user.id

    dining = RevenueCenter(restaurant_id=restaurant.id, name="Main Dining", type="restaurant", is_active=True)
    bar = RevenueCenter(restaurant_id=restaurant.id, name="Bar", type="bar", is_active=True)
    db.add_all([dining, bar])
    db.flush()

    category = MenuCategory(restaurant_id=restaurant.id, revenue_center_id=dining.id, name="Mains")
    db.add(category)
    db.flush()

    item = MenuItem(restaurant_id=restaurant.id, category_id=category.id, name="Burger", price=Decimal(item_price))
    db.add(item)
    db.flush()

    combo = ComboMeal(restaurant_id=restaurant.id, name="Burger Combo", price=Decimal("15.00"), items=[item.id])
    customer = Customer(restaurant_id=restaurant.id, name="Carla", email=f"carla@{slug}.example.com")
    db.add_all([combo, customer])
    db.commit()

    return SimpleNamespace(
        owner_id=owner.id,
        user_id=user.id,
        restaurant_id=restaurant.id,
        dining_id=dining.id,
        bar_id=bar.id,
        category_id=category.id,
        menu_item_id=item.id,
        combo_id=combo.id,
        customer_id=customer.id,
    )


def owner_caller(seed: SimpleNamespace) -> CallerContext:
    return CallerContext(user_id=seed.user_id, role="kitchen_owner", restaurant_id=seed.restaurant_id)


def staff_caller(seed: SimpleNamespace, *revenue_center_ids: int) -> CallerContext:
    return CallerContext(
        user_id=999,
        role="staff",
        restaurant_id=seed.restaurant_id,
        revenue_center_ids=frozenset(revenue_center_ids),
    )


SUPER_ADMIN_CALLER = CallerContext(user_id=1, role="super_admin")
