from __future__ import annotations

from ..extensions import db
from ..time_utils import to_iso_date, to_utc_z, utcnow
from .inventory import quantity_out


SETTLEMENT_COMPLETED = "COMPLETED"
SETTLEMENT_CANCELLED = "CANCELLED"


class Settlement(db.Model):
    """
    Settlement (liquidación): frozen snapshot of a farm's books.

    INVARIANTS:
    - closing_balance_cents = opening_balance_cents + total_income_cents
      - total_egress_cents, computed once at creation and never recalculated.
    - Snapshot lines are copies (ids, descriptions, values, dates, prices at
      settlement time), never live joins, so later edits to inventory prices
      or deletions of source rows do not alter the record.
    - The closing balance may be negative (real overdraft); it is not clamped.

    LIFECYCLE:
    - COMPLETED: created by the settlement processor
    - CANCELLED: status flip only. Balances, snapshot lines and the settled
      flags of source entries are left untouched.
    """
    __tablename__ = "settlements"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "farm", "settlement_number", name="uq_settlements_owner_farm_number"),
        db.Index("ix_settlements_owner_farm_settled_at", "owner_id", "farm", "settled_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm = db.Column(db.String(120), nullable=False)
    settled_by = db.Column(db.String(120), nullable=True)

    settlement_number = db.Column(db.String(32), nullable=False)
    settled_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    opening_balance_cents = db.Column(db.Integer, nullable=False, default=0)
    total_income_cents = db.Column(db.Integer, nullable=False, default=0)
    total_egress_cents = db.Column(db.Integer, nullable=False, default=0)
    closing_balance_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=SETTLEMENT_COMPLETED, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    income_lines = db.relationship(
        "SettlementIncomeLine", backref="settlement", lazy=True,
        cascade="all, delete-orphan", order_by="SettlementIncomeLine.id",
    )
    expense_lines = db.relationship(
        "SettlementExpenseLine", backref="settlement", lazy=True,
        cascade="all, delete-orphan", order_by="SettlementExpenseLine.id",
    )
    inventory_lines = db.relationship(
        "SettlementInventoryLine", backref="settlement", lazy=True,
        cascade="all, delete-orphan", order_by="SettlementInventoryLine.id",
    )

    def __repr__(self) -> str:
        return f"<Settlement id={self.id} number={self.settlement_number!r} farm={self.farm!r}>"

    def to_dict(self, *, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "owner_id": self.owner_id,
            "farm": self.farm,
            "settled_by": self.settled_by,
            "settlement_number": self.settlement_number,
            "settled_at": to_utc_z(self.settled_at),
            "opening_balance_cents": self.opening_balance_cents,
            "total_income_cents": self.total_income_cents,
            "total_egress_cents": self.total_egress_cents,
            "closing_balance_cents": self.closing_balance_cents,
            "notes": self.notes,
            "status": self.status,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["income_entries"] = [line.to_dict() for line in self.income_lines]
            data["expenses"] = [line.to_dict() for line in self.expense_lines]
            data["inventory_used"] = [line.to_dict() for line in self.inventory_lines]
        return data


class SettlementIncomeLine(db.Model):
    """Snapshot of an income entry consumed by a settlement."""
    __tablename__ = "settlement_income_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False, index=True)

    # Source reference kept as a plain id: the snapshot outlives the source row
    income_entry_id = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.String(200), nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)
    entry_date = db.Column(db.Date, nullable=False)

    def to_dict(self) -> dict:
        return {
            "income_entry_id": self.income_entry_id,
            "description": self.description,
            "value_cents": self.value_cents,
            "entry_date": to_iso_date(self.entry_date),
        }


class SettlementExpenseLine(db.Model):
    """Snapshot of an expense consumed by a settlement, with its priced total."""
    __tablename__ = "settlement_expense_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False, index=True)

    expense_id = db.Column(db.Integer, nullable=False, index=True)
    description = db.Column(db.String(200), nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)
    consumption_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.Date, nullable=False)

    def to_dict(self) -> dict:
        return {
            "expense_id": self.expense_id,
            "description": self.description,
            "value_cents": self.value_cents,
            "consumption_cents": self.consumption_cents,
            "total_cents": self.total_cents,
            "expense_date": to_iso_date(self.expense_date),
        }


class SettlementInventoryLine(db.Model):
    """Inventory consumption priced at settlement time (unit price frozen here)."""
    __tablename__ = "settlement_inventory_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    settlement_id = db.Column(db.Integer, db.ForeignKey("settlements.id"), nullable=False, index=True)

    expense_id = db.Column(db.Integer, nullable=False)
    inventory_item_id = db.Column(db.Integer, nullable=False)
    item_name = db.Column(db.String(120), nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "expense_id": self.expense_id,
            "inventory_item_id": self.inventory_item_id,
            "item_name": self.item_name,
            "quantity": quantity_out(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
