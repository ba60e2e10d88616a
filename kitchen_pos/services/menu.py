from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import func
from sqlalchemy.orm import Session

from kitchen_pos.core.errors import NotFoundError, ReferentialError, ValidationError
from kitchen_pos.models.combo_meal import ComboMeal
from kitchen_pos.models.daily_deal import DailyDeal
from kitchen_pos.models.menu_category import MenuCategory
from kitchen_pos.models.menu_item import MenuItem
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.services.access_control import CONFIG_ROLES, AuthorizationService, CallerContext
from kitchen_pos.services.money import to_money, utcnow

CATEGORY_FIELDS = ("name", "description", "is_active", "sort_order", "revenue_center_id")
ITEM_FIELDS = (
    "category_id",
    "name",
    "description",
    "price",
    "image_url",
    "is_available",
    "allergen_info",
    "preparation_time",
    "sort_order",
)
COMBO_FIELDS = ("name", "description", "price", "image_url", "items", "is_available")
DEAL_FIELDS = ("title", "description", "is_active")


def _require_name(values: dict, label: str) -> None:
    if "name" in values and not (values["name"] or "").strip():
        raise ValidationError(f"{label} name is required")


def _price(value) -> Decimal:
    price = to_money(value)
    if price < 0:
        raise ValidationError("Price cannot be negative")
    return price


def _ensure_center_in_restaurant(db: Session, restaurant_id: int, revenue_center_id: int) -> None:
    center = db.query(RevenueCenter).filter(RevenueCenter.id == revenue_center_id).first()
    if center is None or int(center.restaurant_id) != int(restaurant_id):
        raise ReferentialError(f"Revenue center {revenue_center_id} not found in this restaurant")


def _ensure_category_in_restaurant(db: Session, restaurant_id: int, category_id: int) -> MenuCategory:
    category = db.query(MenuCategory).filter(MenuCategory.id == category_id).first()
    if category is None or int(category.restaurant_id) != int(restaurant_id):
        raise ReferentialError(f"Menu category {category_id} not found in this restaurant")
    return category


def _ensure_combo_items(db: Session, restaurant_id: int, item_ids) -> list[int]:
    ids = [int(item_id) for item_id in (item_ids or [])]
    if not ids:
        raise ValidationError("Combo meal must contain at least one menu item")
    found = {
        int(row[0])
        for row in db.query(MenuItem.id).filter(MenuItem.id.in_(ids), MenuItem.restaurant_id == restaurant_id).all()
    }
    missing = sorted(set(ids) - found)
    if missing:
        raise ReferentialError(f"Menu items not found in this restaurant: {missing}")
    return ids


# Categories


def list_categories(db: Session, caller: CallerContext, restaurant_id: int, revenue_center_id: int | None = None):
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(MenuCategory).filter(MenuCategory.restaurant_id == restaurant_id)
    if revenue_center_id is not None:
        query = query.filter(MenuCategory.revenue_center_id == revenue_center_id)
    return query.order_by(MenuCategory.sort_order, MenuCategory.id).all()


def get_category(db: Session, caller: CallerContext, category_id: int) -> MenuCategory:
    category = db.query(MenuCategory).filter(MenuCategory.id == category_id).first()
    if category is None:
        raise NotFoundError("Menu category not found")
    AuthorizationService.ensure_tenant_access(caller, category.restaurant_id)
    return category


def create_category(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> MenuCategory:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    if not (values.get("name") or "").strip():
        raise ValidationError("Category name is required")
    if values.get("revenue_center_id") is None:
        raise ValidationError("Category requires a revenue center")
    _ensure_center_in_restaurant(db, restaurant_id, values["revenue_center_id"])
    category = MenuCategory(
        restaurant_id=restaurant_id,
        **{field: values[field] for field in CATEGORY_FIELDS if field in values},
    )
    db.add(category)
    db.flush()
    return category


def update_category(db: Session, caller: CallerContext, category_id: int, values: dict) -> MenuCategory:
    category = get_category(db, caller, category_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, category.restaurant_id)
    _require_name(values, "Category")
    if values.get("revenue_center_id") is not None:
        _ensure_center_in_restaurant(db, category.restaurant_id, values["revenue_center_id"])
    for field in CATEGORY_FIELDS:
        if field in values:
            setattr(category, field, values[field])
    db.flush()
    return category


def delete_category(db: Session, caller: CallerContext, category_id: int) -> None:
    category = get_category(db, caller, category_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, category.restaurant_id)
    db.delete(category)
    db.flush()


# Items


def list_items(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    *,
    category_id: int | None = None,
    revenue_center_id: int | None = None,
    available_only: bool = False,
) -> list[MenuItem]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(MenuItem).filter(MenuItem.restaurant_id == restaurant_id)
    if category_id is not None:
        query = query.filter(MenuItem.category_id == category_id)
    if revenue_center_id is not None:
        query = query.join(MenuCategory, MenuCategory.id == MenuItem.category_id).filter(
            MenuCategory.revenue_center_id == revenue_center_id
        )
    if available_only:
        query = query.filter(MenuItem.is_available.is_(True))
    return query.order_by(MenuItem.sort_order, MenuItem.name, MenuItem.id).all()


def get_item(db: Session, caller: CallerContext, item_id: int) -> MenuItem:
    item = db.query(MenuItem).filter(MenuItem.id == item_id).first()
    if item is None:
        raise NotFoundError("Menu item not found")
    AuthorizationService.ensure_tenant_access(caller, item.restaurant_id)
    return item


def create_item(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> MenuItem:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    if not (values.get("name") or "").strip():
        raise ValidationError("Menu item name is required")
    if values.get("category_id") is None:
        raise ValidationError("Menu item requires a category")
    _ensure_category_in_restaurant(db, restaurant_id, values["category_id"])
    fields = {field: values[field] for field in ITEM_FIELDS if field in values}
    fields["price"] = _price(values.get("price"))
    item = MenuItem(restaurant_id=restaurant_id, **fields)
    db.add(item)
    db.flush()
    return item


def update_item(db: Session, caller: CallerContext, item_id: int, values: dict) -> MenuItem:
    """Catalog edits never touch order lines; those carry their own price snapshot."""
    item = get_item(db, caller, item_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, item.restaurant_id)
    _require_name(values, "Menu item")
    if values.get("category_id") is not None:
        _ensure_category_in_restaurant(db, item.restaurant_id, values["category_id"])
    for field in ITEM_FIELDS:
        if field in values:
            setattr(item, field, _price(values[field]) if field == "price" else values[field])
    db.flush()
    return item


def delete_item(db: Session, caller: CallerContext, item_id: int) -> None:
    item = get_item(db, caller, item_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, item.restaurant_id)
    db.delete(item)
    db.flush()


# Combo meals


def list_combos(db: Session, caller: CallerContext, restaurant_id: int, available_only: bool = False):
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    query = db.query(ComboMeal).filter(ComboMeal.restaurant_id == restaurant_id)
    if available_only:
        query = query.filter(ComboMeal.is_available.is_(True))
    return query.order_by(ComboMeal.name, ComboMeal.id).all()


def get_combo(db: Session, caller: CallerContext, combo_id: int) -> ComboMeal:
    combo = db.query(ComboMeal).filter(ComboMeal.id == combo_id).first()
    if combo is None:
        raise NotFoundError("Combo meal not found")
    AuthorizationService.ensure_tenant_access(caller, combo.restaurant_id)
    return combo


def create_combo(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> ComboMeal:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    if not (values.get("name") or "").strip():
        raise ValidationError("Combo meal name is required")
    fields = {field: values[field] for field in COMBO_FIELDS if field in values}
    fields["price"] = _price(values.get("price"))
    fields["items"] = _ensure_combo_items(db, restaurant_id, values.get("items"))
    combo = ComboMeal(restaurant_id=restaurant_id, **fields)
    db.add(combo)
    db.flush()
    return combo


def update_combo(db: Session, caller: CallerContext, combo_id: int, values: dict) -> ComboMeal:
    combo = get_combo(db, caller, combo_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, combo.restaurant_id)
    _require_name(values, "Combo meal")
    for field in COMBO_FIELDS:
        if field not in values:
            continue
        value = values[field]
        if field == "price":
            value = _price(value)
        elif field == "items":
            value = _ensure_combo_items(db, combo.restaurant_id, value)
        setattr(combo, field, value)
    db.flush()
    return combo


def delete_combo(db: Session, caller: CallerContext, combo_id: int) -> None:
    combo = get_combo(db, caller, combo_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, combo.restaurant_id)
    db.delete(combo)
    db.flush()


# Daily deals


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; they were written as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _percentage(value) -> Decimal | None:
    if value is None:
        return None
    percentage = to_money(value)
    if not Decimal("0") <= percentage <= Decimal("100"):
        raise ValidationError("Discount percentage must be between 0 and 100")
    return percentage


def _discount_amount(value) -> Decimal | None:
    if value is None:
        return None
    amount = to_money(value)
    if amount < 0:
        raise ValidationError("Discount amount cannot be negative")
    return amount


def _deal_items(db: Session, restaurant_id: int, item_ids) -> list[int]:
    if not item_ids:
        return []
    return _ensure_combo_items(db, restaurant_id, item_ids)


def _apply_deal_window(deal: DailyDeal, values: dict) -> None:
    valid_from = values.get("valid_from", deal.valid_from)
    valid_until = values.get("valid_until", deal.valid_until)
    if valid_from is None or valid_until is None:
        raise ValidationError("Daily deal requires valid_from and valid_until")
    valid_from, valid_until = _as_utc(valid_from), _as_utc(valid_until)
    if valid_until < valid_from:
        raise ValidationError("valid_until must not be before valid_from")
    deal.valid_from = valid_from
    deal.valid_until = valid_until


def list_deals(db: Session, caller: CallerContext, restaurant_id: int) -> list[DailyDeal]:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    return (
        db.query(DailyDeal)
        .filter(DailyDeal.restaurant_id == restaurant_id)
        .order_by(DailyDeal.created_at.desc(), DailyDeal.id.desc())
        .all()
    )


def list_active_deals(
    db: Session,
    caller: CallerContext,
    restaurant_id: int,
    at: datetime | None = None,
) -> list[DailyDeal]:
    """Active deals whose window contains ``at`` (now by default), bounds inclusive."""
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)
    moment = _as_utc(at or utcnow())
    return (
        db.query(DailyDeal)
        .filter(
            DailyDeal.restaurant_id == restaurant_id,
            DailyDeal.is_active.is_(True),
            DailyDeal.valid_from <= moment,
            DailyDeal.valid_until >= moment,
        )
        .order_by(DailyDeal.valid_until, DailyDeal.id)
        .all()
    )


def get_deal(db: Session, caller: CallerContext, deal_id: int) -> DailyDeal:
    deal = db.query(DailyDeal).filter(DailyDeal.id == deal_id).first()
    if deal is None:
        raise NotFoundError("Daily deal not found")
    AuthorizationService.ensure_tenant_access(caller, deal.restaurant_id)
    return deal


def create_deal(db: Session, caller: CallerContext, restaurant_id: int, values: dict) -> DailyDeal:
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, restaurant_id)
    if not (values.get("title") or "").strip():
        raise ValidationError("Daily deal title is required")
    deal = DailyDeal(
        restaurant_id=restaurant_id,
        **{field: values[field] for field in DEAL_FIELDS if field in values},
    )
    deal.discount_percentage = _percentage(values.get("discount_percentage"))
    deal.discount_amount = _discount_amount(values.get("discount_amount"))
    deal.applicable_items = _deal_items(db, restaurant_id, values.get("applicable_items"))
    _apply_deal_window(deal, values)
    db.add(deal)
    db.flush()
    return deal


def update_deal(db: Session, caller: CallerContext, deal_id: int, values: dict) -> DailyDeal:
    deal = get_deal(db, caller, deal_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, deal.restaurant_id)
    if "title" in values and not (values["title"] or "").strip():
        raise ValidationError("Daily deal title is required")
    for field in DEAL_FIELDS:
        if field in values:
            setattr(deal, field, values[field])
    if "discount_percentage" in values:
        deal.discount_percentage = _percentage(values["discount_percentage"])
    if "discount_amount" in values:
        deal.discount_amount = _discount_amount(values["discount_amount"])
    if "applicable_items" in values:
        deal.applicable_items = _deal_items(db, deal.restaurant_id, values["applicable_items"])
    if "valid_from" in values or "valid_until" in values:
        _apply_deal_window(deal, values)
    db.flush()
    return deal


def delete_deal(db: Session, caller: CallerContext, deal_id: int) -> None:
    deal = get_deal(db, caller, deal_id)
    AuthorizationService.ensure_role(caller, CONFIG_ROLES, deal.restaurant_id)
    db.delete(deal)
    db.flush()


def menu_stats(db: Session, caller: CallerContext, restaurant_id: int) -> dict:
    AuthorizationService.ensure_tenant_access(caller, restaurant_id)

    def _count(model, *criteria) -> int:
        return int(db.query(func.count(model.id)).filter(model.restaurant_id == restaurant_id, *criteria).scalar() or 0)

    total_items = _count(MenuItem)
    available_items = _count(MenuItem, MenuItem.is_available.is_(True))
    return {
        "total_categories": _count(MenuCategory),
        "total_items": total_items,
        "available_items": available_items,
        "unavailable_items": total_items - available_items,
        "total_combos": _count(ComboMeal),
        "total_deals": _count(DailyDeal),
        "active_deals": _count(DailyDeal, DailyDeal.is_active.is_(True)),
    }
