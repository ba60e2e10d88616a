from __future__ import annotations

from sqlalchemy.orm import Session

from kitchen_pos.core.errors import ReferentialError, ValidationError
from kitchen_pos.models.combo_meal import ComboMeal
from kitchen_pos.models.menu_item import MenuItem
from kitchen_pos.models.order import Order
from kitchen_pos.models.order_item import OrderItem
from kitchen_pos.models.revenue_center import RevenueCenter
from kitchen_pos.services.money import to_money


def _check_reference_shape(menu_item_id: int | None, combo_meal_id: int | None) -> None:
    if menu_item_id is not None and combo_meal_id is not None:
        raise ValidationError("Order item must reference either a menu item or a combo meal, not both")
    if menu_item_id is None and combo_meal_id is None:
        raise ValidationError("Order item must reference a menu item or a combo meal")


def _resolve_revenue_center(db: Session, order: Order, revenue_center_id: int | None) -> RevenueCenter:
    if revenue_center_id is None:
        raise ValidationError("Order item requires a revenue center")
    center = db.query(RevenueCenter).filter(RevenueCenter.id == revenue_center_id).first()
    if center is None:
        raise ReferentialError(f"Revenue center {revenue_center_id} not found")
    if int(center.restaurant_id) != int(order.restaurant_id):
        raise ReferentialError("Revenue center belongs to a different restaurant than the order")
    return center


def _resolve_catalog_entry(
    db: Session,
    order: Order,
    menu_item_id: int | None,
    combo_meal_id: int | None,
) -> MenuItem | ComboMeal:
    if menu_item_id is not None:
        entry = db.query(MenuItem).filter(MenuItem.id == menu_item_id).first()
        label = f"Menu item {menu_item_id}"
    else:
        entry = db.query(ComboMeal).filter(ComboMeal.id == combo_meal_id).first()
        label = f"Combo meal {combo_meal_id}"

    if entry is None:
        raise ReferentialError(f"{label} not found")
    if int(entry.restaurant_id) != int(order.restaurant_id):
        raise ReferentialError(f"{label} belongs to a different restaurant than the order")
    return entry


def validate_order_item(
    db: Session,
    order: Order,
    *,
    revenue_center_id: int | None,
    menu_item_id: int | None,
    combo_meal_id: int | None,
    quantity: int | None,
) -> MenuItem | ComboMeal:
    """Accept or reject an order line before it is written.

    Exactly one catalog reference, a positive quantity, and every reference
    inside the order's restaurant. Returns the referenced catalog entry.
    """
    _check_reference_shape(menu_item_id, combo_meal_id)
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("Quantity must be greater than zero")
    _resolve_revenue_center(db, order, revenue_center_id)
    return _resolve_catalog_entry(db, order, menu_item_id, combo_meal_id)


def build_order_item(
    db: Session,
    order: Order,
    *,
    revenue_center_id: int | None,
    menu_item_id: int | None = None,
    combo_meal_id: int | None = None,
    quantity: int = 1,
    special_instructions: str | None = None,
) -> OrderItem:
    entry = validate_order_item(
        db,
        order,
        revenue_center_id=revenue_center_id,
        menu_item_id=menu_item_id,
        combo_meal_id=combo_meal_id,
        quantity=quantity,
    )
    unit_price = to_money(entry.price)
    return OrderItem(
        order_id=order.id,
        revenue_center_id=revenue_center_id,
        menu_item_id=menu_item_id,
        combo_meal_id=combo_meal_id,
        item_name=entry.name,
        quantity=int(quantity),
        unit_price=unit_price,
        total_price=to_money(unit_price * int(quantity)),
        special_instructions=special_instructions,
        status="pending",
    )


def apply_order_item_changes(db: Session, order: Order, item: OrderItem, changes: dict) -> OrderItem:
    """Re-validate a line with the requested changes merged in.

    A new catalog reference re-snapshots name and price; a quantity-only change
    keeps the price captured when the line was first written.
    """
    reference_changed = "menu_item_id" in changes or "combo_meal_id" in changes
    menu_item_id = changes.get("menu_item_id", item.menu_item_id if not reference_changed else None)
    combo_meal_id = changes.get("combo_meal_id", item.combo_meal_id if not reference_changed else None)
    revenue_center_id = changes.get("revenue_center_id", item.revenue_center_id)
    quantity = changes.get("quantity", item.quantity)

    if reference_changed or menu_item_id is not None or combo_meal_id is not None:
        entry = validate_order_item(
            db,
            order,
            revenue_center_id=revenue_center_id,
            menu_item_id=menu_item_id,
            combo_meal_id=combo_meal_id,
            quantity=quantity,
        )
        if reference_changed:
            item.menu_item_id = menu_item_id
            item.combo_meal_id = combo_meal_id
            item.item_name = entry.name
            item.unit_price = to_money(entry.price)
    else:
        # Catalog entry was deleted; the snapshot stays authoritative.
        if quantity is None or int(quantity) <= 0:
            raise ValidationError("Quantity must be greater than zero")
        if "revenue_center_id" in changes:
            _resolve_revenue_center(db, order, revenue_center_id)

    item.revenue_center_id = revenue_center_id
    item.quantity = int(quantity)
    item.total_price = to_money(to_money(item.unit_price) * int(quantity))
    if "special_instructions" in changes:
        item.special_instructions = changes["special_instructions"]
    return item
