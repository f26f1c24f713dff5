# Overview: Expense recording with inventory consumption, stock bookkeeping and deletion rules.

"""
Expense Service

WHY: An expense is the direct cash cost of something the farm paid for plus,
optionally, supplies taken from inventory. Recording the expense takes the
supplies out of stock immediately; their money value is only resolved when
the expense is settled (see pricing_service).

INVARIANTS:
- Stock never goes negative: every consumption line is checked against the
  item's stock before anything is written, and the decrement happens under
  the farm lock in the same transaction as the expense insert.
- Settled expenses are frozen. Updating or deleting an unsettled expense
  puts its previously consumed quantities back on items that still exist.
"""

from __future__ import annotations

from collections import OrderedDict
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NoActiveFarmError, NotFoundError, ValidationError
from ..models import Expense, ExpenseConsumptionLine, InventoryItem
from ..time_utils import parse_iso_date, today
from ..validation import coerce_decimal, coerce_int, enforce_amount, enforce_quantity, require_description
from .concurrency import acquire_farm_lock, lock_for_update, run_with_retry
from .pricing_service import load_items


MAX_LIST_LIMIT = 500

UPDATABLE_FIELDS = {"description", "value_cents", "expense_date", "consumption_lines"}


def _parse_consumption(raw) -> "OrderedDict[int, Decimal]":
    """Normalize request lines to {item_id: total quantity}; repeated items are summed."""
    if raw is None:
        return OrderedDict()
    if not isinstance(raw, list):
        raise ValidationError("consumption_lines must be a list")

    wanted: "OrderedDict[int, Decimal]" = OrderedDict()
    for idx, line in enumerate(raw):
        if not isinstance(line, dict):
            raise ValidationError(f"consumption_lines[{idx}] must be an object")
        if line.get("inventory_item_id") is None or line.get("quantity") is None:
            raise ValidationError(f"consumption_lines[{idx}] requires inventory_item_id and quantity")
        item_id = coerce_int("inventory_item_id", line["inventory_item_id"])
        quantity = coerce_decimal("quantity", line["quantity"])
        enforce_quantity("quantity", quantity, allow_zero=False)
        wanted[item_id] = wanted.get(item_id, Decimal("0")) + quantity
    return wanted


def _parse_value(raw, *, allow_zero: bool) -> int:
    if raw is None:
        raise ValidationError("value_cents is required")
    value_cents = coerce_int("value_cents", raw)
    # An expense made only of inventory consumption may have no direct cost
    enforce_amount("value_cents", value_cents, allow_zero=allow_zero)
    return value_cents


def _parse_expense_date(raw):
    try:
        expense_date = parse_iso_date(raw)
    except (TypeError, ValueError):
        raise ValidationError("expense_date must be an ISO-8601 date")
    if expense_date is None:
        raise ValidationError("expense_date must be an ISO-8601 date")
    if expense_date > today():
        raise ValidationError("expense_date cannot be in the future")
    return expense_date


def _lock_items(owner_id: int, farm: str, item_ids) -> dict[int, InventoryItem]:
    ids = list(item_ids)
    if not ids:
        return {}
    return {
        item.id: item
        for item in lock_for_update(
            db.session.query(InventoryItem).filter(
                InventoryItem.owner_id == owner_id,
                InventoryItem.farm == farm,
                InventoryItem.id.in_(ids),
            )
        ).all()
    }


def _check_stock(wanted, items: dict[int, InventoryItem], released=None) -> None:
    """released: quantities about to be returned to stock by the same operation."""
    released = released or {}
    for item_id, quantity in wanted.items():
        item = items.get(item_id)
        if item is None:
            raise ValidationError(f"Inventory item {item_id} does not exist", inventory_item_id=item_id)
        available = Decimal(item.stock_quantity) + released.get(item_id, Decimal("0"))
        if available < quantity:
            raise ValidationError(
                f"Insufficient stock for {item.name}",
                inventory_item_id=item_id,
                available=float(available),
                requested=float(quantity),
            )


def _consume(expense: Expense, wanted, items: dict[int, InventoryItem]) -> None:
    for item_id, quantity in wanted.items():
        item = items[item_id]
        expense.consumption_lines.append(ExpenseConsumptionLine(
            inventory_item_id=item.id,
            item_name=item.name,
            quantity=quantity,
        ))
        item.stock_quantity = Decimal(item.stock_quantity) - quantity


def _restore(expense: Expense, items: dict[int, InventoryItem]) -> None:
    """Put consumed quantities back on items that still exist."""
    for line in expense.consumption_lines:
        item = items.get(line.inventory_item_id)
        if item is not None:
            item.stock_quantity = Decimal(item.stock_quantity) + Decimal(line.quantity)


def get_expense(owner_id: int, farm: str, expense_id: int) -> Expense:
    expense = (
        db.session.query(Expense)
        .filter_by(id=expense_id, owner_id=owner_id, farm=farm)
        .first()
    )
    if not expense:
        raise NotFoundError("Expense not found")
    return expense


def create_expense(*, owner_id: int, farm: str | None, payload: dict, recorded_by: str | None = None) -> Expense:
    """
    Record an expense and decrement stock for its consumption lines.

    Request body:
    {
        "description": "Fumigación lote 3",
        "value_cents": 2000,
        "expense_date": "2026-03-01",      (optional, defaults to today)
        "consumption_lines": [{"inventory_item_id": 4, "quantity": 2.5}]
    }

    Raises:
        ValidationError: bad fields, unknown item, insufficient stock
    """
    if not farm:
        raise NoActiveFarmError()
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    description = require_description(payload.get("description"))
    wanted = _parse_consumption(payload.get("consumption_lines"))
    value_cents = _parse_value(payload.get("value_cents"), allow_zero=bool(wanted))

    expense_date = today()
    if payload.get("expense_date") is not None:
        expense_date = _parse_expense_date(payload["expense_date"])

    def _op() -> Expense:
        acquire_farm_lock(owner_id, farm)

        items = _lock_items(owner_id, farm, wanted)
        _check_stock(wanted, items)

        expense = Expense(
            owner_id=owner_id,
            farm=farm,
            recorded_by=recorded_by,
            expense_date=expense_date,
            description=description,
            value_cents=value_cents,
            settled=False,
        )
        _consume(expense, wanted, items)

        db.session.add(expense)
        db.session.commit()
        return expense

    return run_with_retry(_op)


def update_expense(*, owner_id: int, farm: str | None, expense_id: int, payload: dict) -> Expense:
    """
    Partial update of an unsettled expense.

    When consumption_lines is present it replaces the whole set: the old
    quantities go back to stock and the new ones are checked and taken out
    in the same transaction.

    Raises:
        ValidationError: bad fields, unknown item, insufficient stock
        ConflictError: the expense is already settled
    """
    if not farm:
        raise NoActiveFarmError()
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    for key in payload:
        if key not in UPDATABLE_FIELDS:
            raise ValidationError(f"Field not allowed: {key}")

    description = require_description(payload["description"]) if "description" in payload else None
    replace_lines = "consumption_lines" in payload
    wanted = _parse_consumption(payload.get("consumption_lines"))
    expense_date = _parse_expense_date(payload["expense_date"]) if "expense_date" in payload else None
    value_cents = None
    if "value_cents" in payload:
        if payload["value_cents"] is None:
            raise ValidationError("value_cents cannot be null")
        value_cents = coerce_int("value_cents", payload["value_cents"])

    def _op() -> Expense:
        acquire_farm_lock(owner_id, farm)
        expense = get_expense(owner_id, farm, expense_id)
        if expense.settled:
            raise ConflictError("Settled expenses cannot be modified")

        if replace_lines:
            released: dict[int, Decimal] = {}
            for line in expense.consumption_lines:
                released[line.inventory_item_id] = (
                    released.get(line.inventory_item_id, Decimal("0")) + Decimal(line.quantity)
                )

            items = _lock_items(owner_id, farm, set(released) | set(wanted))
            _check_stock(wanted, items, released)

            _restore(expense, items)
            expense.consumption_lines.clear()
            _consume(expense, wanted, items)

        has_lines = bool(wanted) if replace_lines else bool(expense.consumption_lines)
        final_value = value_cents if value_cents is not None else expense.value_cents
        enforce_amount("value_cents", final_value, allow_zero=has_lines)

        expense.value_cents = final_value
        if description is not None:
            expense.description = description
        if expense_date is not None:
            expense.expense_date = expense_date

        db.session.commit()
        return expense

    return run_with_retry(_op)


def delete_expense(*, owner_id: int, farm: str | None, expense_id: int) -> None:
    """Delete an unsettled expense and restore the stock it consumed."""
    if not farm:
        raise NoActiveFarmError()

    def _op() -> None:
        acquire_farm_lock(owner_id, farm)
        expense = get_expense(owner_id, farm, expense_id)
        if expense.settled:
            raise ConflictError("Settled expenses cannot be deleted")

        _restore(expense, load_items(owner_id, farm, [line.inventory_item_id for line in expense.consumption_lines]))

        db.session.delete(expense)
        db.session.commit()

    run_with_retry(_op)


def list_expenses(owner_id: int, farm: str, *, settled: bool | None = None, limit=None) -> list[Expense]:
    query = db.session.query(Expense).filter_by(owner_id=owner_id, farm=farm)
    if settled is not None:
        query = query.filter(Expense.settled.is_(settled))
    query = query.order_by(Expense.expense_date.desc(), Expense.created_at.desc(), Expense.id.desc())
    if limit not in (None, ""):
        query = query.limit(max(1, min(coerce_int("limit", limit), MAX_LIST_LIMIT)))
    return query.all()


def expense_stats(owner_id: int, farm: str) -> dict:
    """Count and direct cost (value_cents) of every expense of the farm."""
    count, total = (
        db.session.query(
            func.count(Expense.id),
            func.coalesce(func.sum(Expense.value_cents), 0),
        )
        .filter(Expense.owner_id == owner_id, Expense.farm == farm)
        .one()
    )
    count, total = int(count), int(total)
    return {
        "count": count,
        "total_cents": total,
        "avg_cents": total / count if count else 0.0,
    }
