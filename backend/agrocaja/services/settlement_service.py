"""
Settlement (Liquidación) Processing Service

WHY: A settlement closes a period of a farm's books. It books the selected
income entries and expenses (with inventory consumption priced at current
unit prices), carries the cash balance forward and freezes the result as an
immutable record.

STATE MACHINE (one request):
    Requested -> Validated -> Computed -> Persisted -> Applied
Any failure aborts the whole transaction; nothing is written.

DESIGN PRINCIPLES:
- Scope is always explicit: (owner_id, farm) are parameters, never ambient
- Tolerant selection: ids that are unknown, already settled or in another
  farm are dropped and reported through the summary counts, not rejected
- Serialized per farm: the farm lock is taken before anything is read
- Claim-then-book: source rows are claimed with a conditional UPDATE
  (settled = false -> true). A claim that comes up short means another
  writer got there first and the request fails with ConflictError
- Persist and apply commit together; reconcile_settlement_flags repairs
  books written by a crash between the two in older deployments
- Snapshot-copy-on-write: settlement lines copy descriptions, values and
  unit prices; history never re-joins live rows
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import update

from ..extensions import db
from ..errors import ConflictError, NoActiveFarmError, NotFoundError, ValidationError
from ..models import (
    Expense,
    IncomeEntry,
    Settlement,
    SettlementExpenseLine,
    SettlementIncomeLine,
    SettlementInventoryLine,
)
from ..models.settlements import SETTLEMENT_CANCELLED, SETTLEMENT_COMPLETED
from ..time_utils import utcnow
from .cash_service import get_cash_balance
from .concurrency import acquire_farm_lock, next_farm_number, run_with_retry
from .pending_service import unsettled_expense_query, unsettled_income_query
from .pricing_service import aggregate_expense_costs
from ..validation import require_id_list


SETTLEMENT_DOCUMENT_TYPE = "settlement"
SETTLEMENT_PREFIX = "LIQ"
MAX_NOTES_LENGTH = 1000


class SettlementError(ConflictError):
    """Raised for settlement lifecycle violations (e.g., cancelling twice)."""
    pass


@dataclass
class SettlementResult:
    settlement: Settlement
    income_requested: int
    income_found: int
    expense_requested: int
    expense_found: int

    @property
    def has_drift(self) -> bool:
        return (
            self.income_found != self.income_requested
            or self.expense_found != self.expense_requested
        )

    def summary(self) -> dict:
        s = self.settlement
        return {
            "income_requested": self.income_requested,
            "income_found": self.income_found,
            "expense_requested": self.expense_requested,
            "expense_found": self.expense_found,
            "opening_balance_cents": s.opening_balance_cents,
            "income_total_cents": s.total_income_cents,
            "egress_total_cents": s.total_egress_cents,
            "closing_balance_cents": s.closing_balance_cents,
        }


def _claim(model, ids: list[int], *, owner_id: int, farm: str, settlement_id: int, settled_at) -> int:
    """Conditionally flag rows as settled; returns how many rows this call claimed."""
    if not ids:
        return 0
    stmt = (
        update(model)
        .where(
            model.id.in_(ids),
            model.owner_id == owner_id,
            model.farm == farm,
            model.settled.is_(False),
        )
        .values(settled=True, settlement_id=settlement_id, settled_at=settled_at)
        .execution_options(synchronize_session=False)
    )
    return db.session.execute(stmt).rowcount


def process_settlement(
    *,
    owner_id: int,
    farm: str | None,
    income_entry_ids,
    expense_ids,
    notes: str | None = None,
    settled_by: str | None = None,
) -> SettlementResult:
    """
    Settle the selected income entries and expenses of (owner, farm).

    Args:
        owner_id: Owner of the books
        farm: Active farm label
        income_entry_ids: Income entry ids to book (list)
        expense_ids: Expense ids to book (list)
        notes: Free-text notes stored on the settlement
        settled_by: Display name recorded on the settlement

    Raises:
        NoActiveFarmError: farm not selected
        ValidationError: id lists malformed, notes too long
        ConflictError: a selected entry was claimed concurrently
    """
    # 1. Requested
    if not farm:
        raise NoActiveFarmError()

    income_ids = require_id_list(income_entry_ids, "income_entry_ids")
    expense_id_list = require_id_list(expense_ids, "expense_ids")

    if notes is not None:
        if not isinstance(notes, str):
            raise ValidationError("notes must be a string")
        notes = notes.strip()
        if len(notes) > MAX_NOTES_LENGTH:
            raise ValidationError(f"notes exceeds max length {MAX_NOTES_LENGTH}")

    def _op() -> SettlementResult:
        acquire_farm_lock(owner_id, farm)
        reconcile_settlement_flags(owner_id, farm)

        # 2. Validated
        incomes = []
        if income_ids:
            incomes = (
                unsettled_income_query(owner_id, farm)
                .filter(IncomeEntry.id.in_(income_ids))
                .order_by(IncomeEntry.entry_date, IncomeEntry.id)
                .all()
            )
        expenses = []
        if expense_id_list:
            expenses = (
                unsettled_expense_query(owner_id, farm)
                .filter(Expense.id.in_(expense_id_list))
                .order_by(Expense.expense_date, Expense.id)
                .all()
            )

        # 3. Computed (opening balance reflects the books before this settlement)
        opening = get_cash_balance(owner_id, farm).balance_cents
        income_total = sum(e.value_cents for e in incomes)
        breakdown = aggregate_expense_costs(owner_id, farm, expenses)
        egress_total = breakdown.total_egress_cents
        closing = opening + income_total - egress_total

        # 4. Persisted
        settled_at = utcnow()
        settlement = Settlement(
            owner_id=owner_id,
            farm=farm,
            settled_by=settled_by,
            settlement_number=next_farm_number(
                owner_id=owner_id,
                farm=farm,
                document_type=SETTLEMENT_DOCUMENT_TYPE,
                prefix=SETTLEMENT_PREFIX,
            ),
            settled_at=settled_at,
            opening_balance_cents=opening,
            total_income_cents=income_total,
            total_egress_cents=egress_total,
            closing_balance_cents=closing,
            notes=notes or None,
            status=SETTLEMENT_COMPLETED,
            created_at=settled_at,
        )

        for entry in incomes:
            settlement.income_lines.append(SettlementIncomeLine(
                income_entry_id=entry.id,
                description=entry.description,
                value_cents=entry.value_cents,
                entry_date=entry.entry_date,
            ))

        for expense in expenses:
            cost = breakdown.for_expense(expense.id)
            settlement.expense_lines.append(SettlementExpenseLine(
                expense_id=expense.id,
                description=expense.description,
                value_cents=expense.value_cents,
                consumption_cents=cost.consumption_cents,
                total_cents=cost.total_cents,
                expense_date=expense.expense_date,
            ))

        for line in breakdown.priced_lines:
            settlement.inventory_lines.append(SettlementInventoryLine(
                expense_id=line.expense_id,
                inventory_item_id=line.inventory_item_id,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                line_total_cents=line.line_total_cents,
            ))

        db.session.add(settlement)
        db.session.flush()

        # 5. Applied
        claim_args = dict(owner_id=owner_id, farm=farm, settlement_id=settlement.id, settled_at=settled_at)
        claimed_income = _claim(IncomeEntry, [e.id for e in incomes], **claim_args)
        claimed_expenses = _claim(Expense, [e.id for e in expenses], **claim_args)

        if claimed_income != len(incomes) or claimed_expenses != len(expenses):
            raise ConflictError(
                "Some selected entries were settled by a concurrent request",
                income_claimed=claimed_income,
                income_expected=len(incomes),
                expense_claimed=claimed_expenses,
                expense_expected=len(expenses),
            )

        db.session.commit()

        for row in incomes + expenses:
            db.session.refresh(row)

        return SettlementResult(
            settlement=settlement,
            income_requested=len(income_ids),
            income_found=len(incomes),
            expense_requested=len(expense_id_list),
            expense_found=len(expenses),
        )

    return run_with_retry(_op)


def _stranded_rows(model, line_model, source_column, owner_id: int, farm: str):
    """(source id, settlement id, settled_at) for snapshot lines whose source row is still unsettled."""
    return (
        db.session.query(source_column, Settlement.id, Settlement.settled_at)
        .select_from(line_model)
        .join(Settlement, Settlement.id == line_model.settlement_id)
        .join(model, model.id == source_column)
        .filter(
            Settlement.owner_id == owner_id,
            Settlement.farm == farm,
            Settlement.status == SETTLEMENT_COMPLETED,
            model.owner_id == owner_id,
            model.farm == farm,
            model.settled.is_(False),
        )
        .all()
    )


def reconcile_settlement_flags(owner_id: int, farm: str) -> int:
    """
    Re-apply settled flags for entries captured by a COMPLETED settlement.

    Idempotent. Runs inside the caller's transaction (no commit) and returns
    the number of source rows repaired. Only source rows still flagged
    unsettled are read; an entry already flagged by a different settlement
    is left alone.
    """
    repaired = 0
    sources = (
        (IncomeEntry, SettlementIncomeLine, SettlementIncomeLine.income_entry_id),
        (Expense, SettlementExpenseLine, SettlementExpenseLine.expense_id),
    )
    for model, line_model, source_column in sources:
        by_settlement: dict[tuple, list[int]] = {}
        for source_id, settlement_id, settled_at in _stranded_rows(model, line_model, source_column, owner_id, farm):
            by_settlement.setdefault((settlement_id, settled_at), []).append(source_id)
        for (settlement_id, settled_at), ids in by_settlement.items():
            repaired += _claim(
                model, ids, owner_id=owner_id, farm=farm, settlement_id=settlement_id, settled_at=settled_at
            )
    return repaired


def reconcile_farm(owner_id: int, farm: str) -> int:
    """Standalone recovery pass (CLI): lock the farm, repair, commit."""
    def _op() -> int:
        acquire_farm_lock(owner_id, farm)
        repaired = reconcile_settlement_flags(owner_id, farm)
        db.session.commit()
        return repaired

    return run_with_retry(_op)


def get_settlement(owner_id: int, settlement_id: int) -> Settlement:
    """Owner-scoped lookup; another owner's settlement is reported as missing."""
    settlement = (
        db.session.query(Settlement)
        .filter_by(id=settlement_id, owner_id=owner_id)
        .first()
    )
    if not settlement:
        raise NotFoundError("Settlement not found")
    return settlement


def cancel_settlement(owner_id: int, settlement_id: int, reason: str | None = None) -> Settlement:
    """
    Mark a settlement CANCELLED.

    Status flip only: stored balances stay as they were, the record still
    anchors the cash balance if it is the latest one, and its income
    entries and expenses stay settled.
    """
    if reason is not None and not isinstance(reason, str):
        raise ValidationError("reason must be a string")
    reason = (reason or "").strip() or None
    if reason and len(reason) > 255:
        raise ValidationError("reason exceeds max length 255")

    def _op() -> Settlement:
        settlement = get_settlement(owner_id, settlement_id)
        acquire_farm_lock(owner_id, settlement.farm)
        if settlement.status == SETTLEMENT_CANCELLED:
            raise SettlementError("Settlement already cancelled")

        settlement.status = SETTLEMENT_CANCELLED
        settlement.cancelled_at = utcnow()
        settlement.cancel_reason = reason
        db.session.commit()
        return settlement

    return run_with_retry(_op)
