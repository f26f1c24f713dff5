# Overview: Read-only selectors for income entries and expenses not yet settled.

from __future__ import annotations

from sqlalchemy.orm import selectinload

from ..extensions import db
from ..models import Expense, IncomeEntry
from .pricing_service import aggregate_expense_costs


def unsettled_income_query(owner_id: int, farm: str):
    return db.session.query(IncomeEntry).filter(
        IncomeEntry.owner_id == owner_id,
        IncomeEntry.farm == farm,
        IncomeEntry.settled.is_(False),
    )


def unsettled_expense_query(owner_id: int, farm: str):
    return (
        db.session.query(Expense)
        .options(selectinload(Expense.consumption_lines))
        .filter(
            Expense.owner_id == owner_id,
            Expense.farm == farm,
            Expense.settled.is_(False),
        )
    )


def list_pending_income(owner_id: int, farm: str | None) -> list[IncomeEntry]:
    if not farm:
        return []
    return (
        unsettled_income_query(owner_id, farm)
        .order_by(IncomeEntry.entry_date.desc(), IncomeEntry.id.desc())
        .all()
    )


def list_pending_expenses(owner_id: int, farm: str | None) -> list[dict]:
    """
    Unsettled expenses annotated with their live inventory cost.

    consumption_value_cents is priced with the same function the settlement
    processor uses, so it previews exactly what settling now would book.
    """
    if not farm:
        return []

    expenses = (
        unsettled_expense_query(owner_id, farm)
        .order_by(Expense.expense_date.desc(), Expense.id.desc())
        .all()
    )
    breakdown = aggregate_expense_costs(owner_id, farm, expenses)

    result = []
    for expense in expenses:
        cost = breakdown.for_expense(expense.id)
        data = expense.to_dict()
        data["consumption_value_cents"] = cost.consumption_cents
        data["total_cents"] = cost.total_cents
        result.append(data)
    return result


def pending_totals(owner_id: int, farm: str | None) -> dict:
    income = list_pending_income(owner_id, farm)
    expenses = unsettled_expense_query(owner_id, farm).all() if farm else []
    breakdown = aggregate_expense_costs(owner_id, farm, expenses)
    return {
        "income_count": len(income),
        "income_total_cents": sum(e.value_cents for e in income),
        "expense_count": len(expenses),
        "egress_total_cents": breakdown.total_egress_cents,
    }
