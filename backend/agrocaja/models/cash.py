from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


MOVEMENT_DEPOSIT = "deposit"
MOVEMENT_WITHDRAWAL = "withdrawal"
MOVEMENT_TYPES = (MOVEMENT_DEPOSIT, MOVEMENT_WITHDRAWAL)


class CashMovement(db.Model):
    """
    Manual cash movement (append-only ledger).

    INVARIANTS:
    - balance_after_cents = balance_before_cents + value_cents (deposit)
      balance_after_cents = balance_before_cents - value_cents (withdrawal)
    - A withdrawal never takes the balance below zero; it is rejected before
      the row is written.
    - Rows are never updated or deleted.
    - occurred_at is assigned by the server while the farm lock is held, so
      it orders movements against settlements of the same farm.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.Index("ix_cash_movements_owner_farm_occurred", "owner_id", "farm", "occurred_at"),
        db.CheckConstraint("value_cents > 0", name="ck_cash_movements_value_pos"),
        db.CheckConstraint(
            "movement_type IN ('deposit', 'withdrawal')", name="ck_cash_movements_type"
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    farm = db.Column(db.String(120), nullable=False)
    recorded_by = db.Column(db.String(120), nullable=True)

    movement_type = db.Column(db.String(16), nullable=False)
    value_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(200), nullable=False)

    balance_before_cents = db.Column(db.Integer, nullable=False)
    balance_after_cents = db.Column(db.Integer, nullable=False)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def signed_value_cents(self) -> int:
        return self.value_cents if self.movement_type == MOVEMENT_DEPOSIT else -self.value_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "farm": self.farm,
            "recorded_by": self.recorded_by,
            "type": self.movement_type,
            "value_cents": self.value_cents,
            "description": self.description,
            "balance_before_cents": self.balance_before_cents,
            "balance_after_cents": self.balance_after_cents,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class FarmLock(db.Model):
    """
    Serialization point for one (owner_id, farm) book.

    Cash movements and settlements bump lock_version as the FIRST statement of
    their transaction. The UPDATE takes a row lock (PostgreSQL) or the
    database write lock (SQLite), so a concurrent writer for the same farm
    waits until the first one commits and then reads its results.
    """
    __tablename__ = "farm_locks"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "farm", name="uq_farm_locks_owner_farm"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    farm = db.Column(db.String(120), nullable=False)
    lock_version = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class FarmSequence(db.Model):
    """
    Atomic per-farm document sequences.

    WHY: Human-readable settlement numbers (LIQ-0001, LIQ-0002...) that never
    repeat within a farm's books.
    """
    __tablename__ = "farm_sequences"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "farm", "document_type", name="uq_farm_sequences_owner_farm_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    farm = db.Column(db.String(120), nullable=False)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
