# Overview: Prices inventory consumed by expenses against current unit prices.

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..extensions import db
from ..models import Expense, InventoryItem


@dataclass(frozen=True)
class PricedLine:
    expense_id: int
    inventory_item_id: int
    item_name: str
    quantity: Decimal
    unit_price_cents: int
    line_total_cents: int


@dataclass
class ExpenseCost:
    expense_id: int
    value_cents: int
    consumption_cents: int = 0
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def total_cents(self) -> int:
        return self.value_cents + self.consumption_cents


@dataclass
class CostBreakdown:
    expenses: list[ExpenseCost] = field(default_factory=list)
    by_expense: dict[int, ExpenseCost] = field(init=False, repr=False)

    def __post_init__(self):
        self.by_expense = {cost.expense_id: cost for cost in self.expenses}

    @property
    def direct_cents(self) -> int:
        return sum(e.value_cents for e in self.expenses)

    @property
    def consumption_cents(self) -> int:
        return sum(e.consumption_cents for e in self.expenses)

    @property
    def total_egress_cents(self) -> int:
        return self.direct_cents + self.consumption_cents

    @property
    def priced_lines(self) -> list[PricedLine]:
        return [line for e in self.expenses for line in e.lines]

    def for_expense(self, expense_id: int) -> ExpenseCost | None:
        return self.by_expense.get(expense_id)


def line_total_cents(quantity: Decimal, unit_price_cents: int) -> int:
    """quantity x unit price, rounded half-up to whole cents."""
    total = Decimal(quantity) * Decimal(unit_price_cents)
    return int(total.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def load_items(owner_id: int, farm: str, item_ids: Iterable[int]) -> dict[int, InventoryItem]:
    """Current inventory items by id, restricted to the (owner, farm) book."""
    ids = {i for i in item_ids if i is not None}
    if not ids:
        return {}
    items = (
        db.session.query(InventoryItem)
        .filter(
            InventoryItem.owner_id == owner_id,
            InventoryItem.farm == farm,
            InventoryItem.id.in_(ids),
        )
        .all()
    )
    return {item.id: item for item in items}


def price_expense(expense: Expense, items_by_id: dict[int, InventoryItem]) -> ExpenseCost:
    """
    Price one expense.

    Lines whose inventory item no longer resolves (deleted, or not in this
    farm) are skipped: the consumption stays unpriced rather than failing
    the whole computation.
    """
    cost = ExpenseCost(expense_id=expense.id, value_cents=expense.value_cents)
    for line in expense.consumption_lines:
        item = items_by_id.get(line.inventory_item_id)
        if item is None:
            continue
        total = line_total_cents(line.quantity, item.unit_price_cents)
        cost.consumption_cents += total
        cost.lines.append(
            PricedLine(
                expense_id=expense.id,
                inventory_item_id=item.id,
                item_name=line.item_name,
                quantity=Decimal(line.quantity),
                unit_price_cents=item.unit_price_cents,
                line_total_cents=total,
            )
        )
    return cost


def aggregate_expense_costs(owner_id: int, farm: str, expenses: list[Expense]) -> CostBreakdown:
    """
    Total egress of a set of expenses already scoped to (owner, farm).

    Used both by the pending-expense preview and by the settlement
    processor, so the preview always matches what a settlement would book.
    """
    item_ids = [line.inventory_item_id for e in expenses for line in e.consumption_lines]
    items_by_id = load_items(owner_id, farm, item_ids)
    return CostBreakdown(expenses=[price_expense(e, items_by_id) for e in expenses])
