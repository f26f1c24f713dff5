"""
Cash Ledger Service

WHY: The farm's spendable cash is never stored as a mutable counter. It is
reconstructed from two immutable sources:

    balance = closing balance of the latest settlement (0 if none)
            + deposits - withdrawals recorded after that settlement

DESIGN PRINCIPLES:
- Cash movements are append-only (no update, no delete)
- Every movement captures the balance before and after it
- Withdrawals that would overdraw the cash box are rejected before writing
- Writers of the same (owner, farm) book are serialized by the farm lock,
  so two movements can never compute their "before" from the same state
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..errors import InsufficientFundsError, NoActiveFarmError, ValidationError
from ..models import CashMovement, Settlement
from ..models.cash import MOVEMENT_DEPOSIT, MOVEMENT_TYPES, MOVEMENT_WITHDRAWAL
from ..time_utils import to_utc_z, utcnow
from ..validation import coerce_int, enforce_amount, require_description
from .concurrency import acquire_farm_lock, run_with_retry


DEFAULT_MOVEMENT_LIMIT = 50
MAX_MOVEMENT_LIMIT = 500


@dataclass
class CashBalance:
    balance_cents: int
    last_settlement: Settlement | None
    movements_folded: int

    def to_dict(self) -> dict:
        last = None
        if self.last_settlement is not None:
            last = {
                "id": self.last_settlement.id,
                "settlement_number": self.last_settlement.settlement_number,
                "settled_at": to_utc_z(self.last_settlement.settled_at),
                "closing_balance_cents": self.last_settlement.closing_balance_cents,
            }
        return {
            "balance_cents": self.balance_cents,
            "last_settlement": last,
        }


def get_last_settlement(owner_id: int, farm: str) -> Settlement | None:
    """Most recent settlement of the farm, whatever its status."""
    return (
        db.session.query(Settlement)
        .filter_by(owner_id=owner_id, farm=farm)
        .order_by(Settlement.settled_at.desc(), Settlement.id.desc())
        .first()
    )


def get_cash_balance(owner_id: int, farm: str | None) -> CashBalance:
    """
    Reconstruct the current cash balance of (owner, farm).

    Pure read. Movements recorded strictly after the latest settlement are
    folded in (occurred_at, id) order on top of its closing balance.
    An owner with no farm selected has an empty cash box.
    """
    if not farm:
        return CashBalance(balance_cents=0, last_settlement=None, movements_folded=0)

    last = get_last_settlement(owner_id, farm)
    balance = last.closing_balance_cents if last else 0

    query = db.session.query(CashMovement).filter(
        CashMovement.owner_id == owner_id,
        CashMovement.farm == farm,
    )
    if last is not None:
        query = query.filter(CashMovement.occurred_at > last.settled_at)

    movements = query.order_by(CashMovement.occurred_at, CashMovement.id).all()
    for movement in movements:
        balance += movement.signed_value_cents

    return CashBalance(balance_cents=balance, last_settlement=last, movements_folded=len(movements))


def register_cash_movement(
    *,
    owner_id: int,
    farm: str | None,
    movement_type,
    value_cents,
    description,
    recorded_by: str | None = None,
) -> tuple[CashMovement, int]:
    """
    Record a deposit or withdrawal and return (movement, new_balance_cents).

    Raises:
        NoActiveFarmError: farm not selected
        ValidationError: bad type, value or description
        InsufficientFundsError: withdrawal larger than the current balance;
            nothing is written
    """
    if not farm:
        raise NoActiveFarmError()

    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(MOVEMENT_TYPES)}")

    if value_cents is None:
        raise ValidationError("value_cents is required")
    value_cents = coerce_int("value_cents", value_cents)
    enforce_amount("value_cents", value_cents, allow_zero=False)

    description = require_description(description)

    def _op() -> tuple[CashMovement, int]:
        acquire_farm_lock(owner_id, farm)

        before = get_cash_balance(owner_id, farm).balance_cents
        if movement_type == MOVEMENT_DEPOSIT:
            after = before + value_cents
        else:
            after = before - value_cents

        if movement_type == MOVEMENT_WITHDRAWAL and after < 0:
            raise InsufficientFundsError(
                "Not enough cash for this withdrawal",
                balance_cents=before,
                requested_cents=value_cents,
            )

        movement = CashMovement(
            owner_id=owner_id,
            farm=farm,
            recorded_by=recorded_by,
            movement_type=movement_type,
            value_cents=value_cents,
            description=description,
            balance_before_cents=before,
            balance_after_cents=after,
            occurred_at=utcnow(),
        )
        db.session.add(movement)
        db.session.commit()
        return movement, after

    return run_with_retry(_op)


def list_cash_movements(owner_id: int, farm: str | None, limit: int = DEFAULT_MOVEMENT_LIMIT) -> list[CashMovement]:
    """Newest first. No farm selected means no movements."""
    if not farm:
        return []
    limit = max(1, min(limit, MAX_MOVEMENT_LIMIT))
    return (
        db.session.query(CashMovement)
        .filter_by(owner_id=owner_id, farm=farm)
        .order_by(CashMovement.occurred_at.desc(), CashMovement.id.desc())
        .limit(limit)
        .all()
    )
