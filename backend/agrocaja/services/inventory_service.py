# Overview: Farm supply inventory CRUD, valuation stats and low-stock alerts.

from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..errors import NoActiveFarmError, NotFoundError, ValidationError
from ..models import InventoryItem
from ..validation import ModelValidationPolicy, coerce_decimal, enforce_amount, enforce_quantity, validate_payload
from .concurrency import run_with_retry
from .pricing_service import line_total_cents


INVENTORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "category", "unit_price_cents", "stock_quantity", "volume_liters"},
    required_on_create={"name", "category", "unit_price_cents", "stock_quantity"},
)

DEFAULT_LOW_STOCK_THRESHOLD = Decimal("5")


def _check_item_fields(patch: dict) -> None:
    if "unit_price_cents" in patch:
        enforce_amount("unit_price_cents", patch["unit_price_cents"], allow_zero=False)
    if "stock_quantity" in patch:
        enforce_quantity("stock_quantity", patch["stock_quantity"], allow_zero=True)
    if patch.get("volume_liters") is not None:
        enforce_quantity("volume_liters", patch["volume_liters"], allow_zero=False)


def get_item(owner_id: int, farm: str, item_id: int) -> InventoryItem:
    item = (
        db.session.query(InventoryItem)
        .filter_by(id=item_id, owner_id=owner_id, farm=farm)
        .first()
    )
    if not item:
        raise NotFoundError("Inventory item not found")
    return item


def list_items(owner_id: int, farm: str) -> list[InventoryItem]:
    return (
        db.session.query(InventoryItem)
        .filter_by(owner_id=owner_id, farm=farm)
        .order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
        .all()
    )


def create_item(*, owner_id: int, farm: str | None, payload: dict) -> InventoryItem:
    if not farm:
        raise NoActiveFarmError()

    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=False)
    _check_item_fields(patch)

    item = InventoryItem(owner_id=owner_id, farm=farm, **patch)
    db.session.add(item)
    db.session.commit()
    return item


def update_item(*, owner_id: int, farm: str | None, item_id: int, payload: dict) -> InventoryItem:
    """
    Partial update. A unit price change affects every unsettled expense that
    consumes the item the next time it is priced; settled figures stay as
    they were snapshotted.
    """
    if not farm:
        raise NoActiveFarmError()

    patch = validate_payload(model=InventoryItem, payload=payload, policy=INVENTORY_POLICY, partial=True)
    _check_item_fields(patch)

    def _op() -> InventoryItem:
        item = get_item(owner_id, farm, item_id)
        for key, value in patch.items():
            setattr(item, key, value)
        db.session.commit()
        return item

    return run_with_retry(_op)


def delete_item(*, owner_id: int, farm: str | None, item_id: int) -> None:
    """Consumption lines keep their plain item reference and are skipped when priced."""
    if not farm:
        raise NoActiveFarmError()

    def _op() -> None:
        item = get_item(owner_id, farm, item_id)
        db.session.delete(item)
        db.session.commit()

    run_with_retry(_op)


def inventory_stats(owner_id: int, farm: str) -> dict:
    items = list_items(owner_id, farm)
    by_category: dict[str, int] = {}
    for item in items:
        by_category[item.category] = by_category.get(item.category, 0) + 1
    return {
        "item_count": len(items),
        "stock_value_cents": sum(line_total_cents(item.stock_quantity, item.unit_price_cents) for item in items),
        "by_category": by_category,
    }


def low_stock_items(owner_id: int, farm: str, threshold=None) -> tuple[list[InventoryItem], Decimal]:
    """Items at or below the threshold, lowest stock first."""
    if threshold in (None, ""):
        threshold = DEFAULT_LOW_STOCK_THRESHOLD
    else:
        threshold = coerce_decimal("threshold", threshold)
        if threshold < 0:
            raise ValidationError("threshold must be >= 0")

    items = (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.owner_id == owner_id,
            InventoryItem.farm == farm,
            InventoryItem.stock_quantity <= threshold,
        )
        .order_by(InventoryItem.stock_quantity, InventoryItem.id)
        .all()
    )
    return items, threshold
