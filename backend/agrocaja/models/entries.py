from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow
from .inventory import quantity_out


class IncomeEntry(db.Model):
    """
    Money received on a date (harvest sale, subsidy, etc.).

    LIFECYCLE:
    - Created unsettled by the income routes
    - Editable/deletable only while unsettled
    - Settled exactly once by the settlement processor, which sets
      settled=True, settled_at and settlement_id. Never un-settled.
    """
    __tablename__ = "income_entries"
    __table_args__ = (
        db.Index("ix_income_entries_owner_farm_date", "owner_id", "farm", "entry_date"),
        db.Index("ix_income_entries_owner_farm_settled", "owner_id", "farm", "settled"),
        db.CheckConstraint("value_cents >= 0", name="ck_income_entries_value_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm = db.Column(db.String(120), nullable=False)
    recorded_by = db.Column(db.String(120), nullable=True)

    entry_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(200), nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)

    settled = db.Column(db.Boolean, nullable=False, default=False)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<IncomeEntry id={self.id} value_cents={self.value_cents} settled={self.settled}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "farm": self.farm,
            "recorded_by": self.recorded_by,
            "entry_date": to_iso_date(self.entry_date),
            "description": self.description,
            "value_cents": self.value_cents,
            "settled": self.settled,
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
            "settlement_id": self.settlement_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Expense(db.Model):
    """
    Cost incurred by the farm.

    value_cents is the direct cash cost. Consumption lines record supplies
    taken from inventory; their cost is NOT stored here. It is resolved at
    settlement time against the item's current unit price:

        total cost = value_cents + sum(quantity_i * unit_price_cents_i)

    Same lifecycle as IncomeEntry: settled once, then frozen.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.Index("ix_expenses_owner_farm_date", "owner_id", "farm", "expense_date"),
        db.Index("ix_expenses_owner_farm_settled", "owner_id", "farm", "settled"),
        db.CheckConstraint("value_cents >= 0", name="ck_expenses_value_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm = db.Column(db.String(120), nullable=False)
    recorded_by = db.Column(db.String(120), nullable=True)

    expense_date = db.Column(db.Date, nullable=False)
    description = db.Column(db.String(200), nullable=False)
    value_cents = db.Column(db.Integer, nullable=False, default=0)

    settled = db.Column(db.Boolean, nullable=False, default=False)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    consumption_lines = db.relationship(
        "ExpenseConsumptionLine",
        backref="expense",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ExpenseConsumptionLine.id",
    )

    def __repr__(self) -> str:
        return f"<Expense id={self.id} value_cents={self.value_cents} settled={self.settled}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "farm": self.farm,
            "recorded_by": self.recorded_by,
            "expense_date": to_iso_date(self.expense_date),
            "description": self.description,
            "value_cents": self.value_cents,
            "consumption_lines": [line.to_dict() for line in self.consumption_lines],
            "settled": self.settled,
            "settled_at": to_utc_z(self.settled_at) if self.settled_at else None,
            "settlement_id": self.settlement_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ExpenseConsumptionLine(db.Model):
    """
    Inventory consumed by an expense.

    inventory_item_id is a plain reference (no FK): deleting the item leaves
    the line in place, and the settlement engine skips lines whose item no
    longer resolves. item_name is a snapshot taken at expense creation.
    """
    __tablename__ = "expense_consumption_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_expense_consumption_qty_pos"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    expense_id = db.Column(db.Integer, db.ForeignKey("expenses.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, nullable=False, index=True)
    item_name = db.Column(db.String(120), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "expense_id": self.expense_id,
            "inventory_item_id": self.inventory_item_id,
            "item_name": self.item_name,
            "quantity": quantity_out(self.quantity),
        }
