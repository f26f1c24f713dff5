# Overview: Pytest coverage for settlement processing, recovery, cancellation and history.

"""
Settlement Processor Tests

Verifies:
1. closing = opening + income - egress, stored on the record
2. Inventory consumption priced at settlement time and snapshotted
3. Source entries flagged settled with the settlement's id
4. Ineligible ids are dropped and counted, not rejected
5. A short claim raises ConflictError and writes nothing
6. Recovery pass re-applies lost flags and is idempotent
7. Cancel flips status only
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from agrocaja.errors import ConflictError, NoActiveFarmError, NotFoundError, ValidationError
from agrocaja.extensions import db
from agrocaja.models import Expense, IncomeEntry, Settlement
from agrocaja.services import settlement_service
from agrocaja.services.cash_service import get_cash_balance, register_cash_movement
from agrocaja.services.reporting_service import list_settlements, settlement_stats
from agrocaja.services.settlement_service import (
    cancel_settlement,
    get_settlement,
    process_settlement,
    reconcile_farm,
)

from conftest import FARM, add_expense, add_income, add_item


def _settle(owner, income_ids=(), expense_ids=(), farm=FARM, **kwargs):
    return process_settlement(
        owner_id=owner.id,
        farm=farm,
        income_entry_ids=list(income_ids),
        expense_ids=list(expense_ids),
        **kwargs,
    )


class TestSettlementArithmetic:

    def test_reference_scenario(self, db_session, owner):
        """Opening 100, income 50, expense 20 plus 2 units at 5: closing 120."""
        register_cash_movement(
            owner_id=owner.id, farm=FARM, movement_type="deposit", value_cents=100, description="Caja inicial"
        )
        income = add_income(owner.id, 50)
        item = add_item(owner.id, unit_price_cents=5)
        expense = add_expense(owner.id, 20, lines=[(item, Decimal("2"))])

        result = _settle(owner, [income.id], [expense.id], notes="Cierre", settled_by="Ana")
        settlement = result.settlement

        assert settlement.opening_balance_cents == 100
        assert settlement.total_income_cents == 50
        assert settlement.total_egress_cents == 30
        assert settlement.closing_balance_cents == 120
        assert settlement.settlement_number == "LIQ-0001"
        assert settlement.status == "COMPLETED"
        assert settlement.notes == "Cierre"
        assert result.summary() == {
            "income_requested": 1,
            "income_found": 1,
            "expense_requested": 1,
            "expense_found": 1,
            "opening_balance_cents": 100,
            "income_total_cents": 50,
            "egress_total_cents": 30,
            "closing_balance_cents": 120,
        }

        assert get_cash_balance(owner.id, FARM).balance_cents == 120

    def test_balance_continues_after_settlement(self, db_session, owner):
        income = add_income(owner.id, 500)
        _settle(owner, [income.id])
        register_cash_movement(
            owner_id=owner.id, farm=FARM, movement_type="withdrawal", value_cents=200, description="Pago"
        )
        assert get_cash_balance(owner.id, FARM).balance_cents == 300

    def test_closing_may_be_negative(self, db_session, owner):
        expense = add_expense(owner.id, 80)
        result = _settle(owner, expense_ids=[expense.id])
        assert result.settlement.closing_balance_cents == -80

    def test_empty_settlement(self, db_session, owner):
        result = _settle(owner)
        assert result.settlement.closing_balance_cents == 0
        assert result.summary()["income_found"] == 0

    def test_numbers_increase_per_farm(self, db_session, owner):
        assert _settle(owner).settlement.settlement_number == "LIQ-0001"
        assert _settle(owner).settlement.settlement_number == "LIQ-0002"
        assert _settle(owner, farm="El Roble").settlement.settlement_number == "LIQ-0001"


class TestSettlementFlagsAndSnapshots:

    def test_sources_flagged(self, db_session, owner):
        income = add_income(owner.id, 50)
        expense = add_expense(owner.id, 20)

        settlement = _settle(owner, [income.id], [expense.id]).settlement

        for row in (db.session.get(IncomeEntry, income.id), db.session.get(Expense, expense.id)):
            assert row.settled is True
            assert row.settlement_id == settlement.id
            assert row.settled_at == settlement.settled_at

    def test_price_frozen_in_snapshot(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, name="Urea")
        expense = add_expense(owner.id, 20, lines=[(item, Decimal("2"))])

        settlement = _settle(owner, expense_ids=[expense.id]).settlement

        item.unit_price_cents = 999
        db.session.commit()

        snapshot = get_settlement(owner.id, settlement.id).to_dict()
        assert snapshot["inventory_used"] == [{
            "expense_id": expense.id,
            "inventory_item_id": item.id,
            "item_name": "Urea",
            "quantity": 2.0,
            "unit_price_cents": 5,
            "line_total_cents": 10,
        }]
        assert snapshot["expenses"][0]["total_cents"] == 30
        assert snapshot["total_egress_cents"] == 30

    def test_snapshot_survives_source_edits(self, db_session, owner):
        income = add_income(owner.id, 50, description="Venta café")
        settlement = _settle(owner, [income.id]).settlement

        # Direct edit bypassing the services
        db.session.get(IncomeEntry, income.id).description = "Edited"
        db.session.commit()

        lines = get_settlement(owner.id, settlement.id).to_dict()["income_entries"]
        assert lines[0]["description"] == "Venta café"


class TestSettlementSelection:

    def test_ineligible_ids_dropped_and_counted(self, db_session, owner, other_owner):
        mine = add_income(owner.id, 50)
        foreign_farm = add_income(owner.id, 70, farm="El Roble")
        foreign_owner = add_income(other_owner.id, 90)

        result = _settle(owner, [mine.id, foreign_farm.id, foreign_owner.id, 99999])
        summary = result.summary()

        assert result.has_drift
        assert summary["income_requested"] == 4
        assert summary["income_found"] == 1
        assert summary["income_total_cents"] == 50
        assert db.session.get(IncomeEntry, foreign_owner.id).settled is False
        assert db.session.get(IncomeEntry, foreign_farm.id).settled is False

    def test_already_settled_entry_not_settled_twice(self, db_session, owner):
        income = add_income(owner.id, 50)
        first = _settle(owner, [income.id]).settlement
        second = _settle(owner, [income.id])

        assert second.summary()["income_found"] == 0
        assert second.settlement.total_income_cents == 0
        assert db.session.get(IncomeEntry, income.id).settlement_id == first.id

    def test_duplicate_ids_collapsed(self, db_session, owner):
        income = add_income(owner.id, 50)
        result = _settle(owner, [income.id, income.id, str(income.id)])
        assert result.summary()["income_requested"] == 1
        assert result.settlement.total_income_cents == 50

    def test_requires_farm(self, db_session, owner):
        with pytest.raises(NoActiveFarmError):
            _settle(owner, farm=None)

    @pytest.mark.parametrize("ids", ["1,2", None, [1.5], ["abc"], {"id": 1}])
    def test_malformed_id_lists(self, db_session, owner, ids):
        with pytest.raises(ValidationError):
            process_settlement(owner_id=owner.id, farm=FARM, income_entry_ids=ids, expense_ids=[])

    def test_notes_too_long(self, db_session, owner):
        with pytest.raises(ValidationError):
            _settle(owner, notes="x" * 1001)


class TestConflictDetection:

    def test_short_claim_raises_and_rolls_back(self, db_session, owner, monkeypatch):
        """Simulate a selector that saw an entry a concurrent settlement already claimed."""
        income = add_income(owner.id, 50)
        _settle(owner, [income.id])

        def stale_selector(owner_id, farm):
            return db.session.query(IncomeEntry).filter(
                IncomeEntry.owner_id == owner_id,
                IncomeEntry.farm == farm,
            )

        monkeypatch.setattr(settlement_service, "unsettled_income_query", stale_selector)

        with pytest.raises(ConflictError):
            _settle(owner, [income.id])

        assert db.session.query(Settlement).count() == 1


class TestReconcile:

    def test_restores_lost_flags_idempotently(self, db_session, owner):
        income = add_income(owner.id, 50)
        expense = add_expense(owner.id, 20)
        settlement = _settle(owner, [income.id], [expense.id]).settlement

        # Simulate a crash that left the sources unflagged
        for row in (db.session.get(IncomeEntry, income.id), db.session.get(Expense, expense.id)):
            row.settled = False
            row.settlement_id = None
            row.settled_at = None
        db.session.commit()

        assert reconcile_farm(owner.id, FARM) == 2
        assert reconcile_farm(owner.id, FARM) == 0

        db.session.expire_all()
        restored = db.session.get(IncomeEntry, income.id)
        assert restored.settled is True
        assert restored.settlement_id == settlement.id

    def test_settlement_runs_recovery_first(self, db_session, owner):
        income = add_income(owner.id, 50)
        _settle(owner, [income.id])

        entry = db.session.get(IncomeEntry, income.id)
        entry.settled = False
        db.session.commit()

        # The lost flag is repaired before selection, so the entry is not booked again
        result = _settle(owner, [income.id])
        assert result.summary()["income_found"] == 0

    def test_repairs_only_unflagged_rows_of_completed_settlements(self, db_session, owner):
        kept = add_income(owner.id, 10)
        lost = add_income(owner.id, 20)
        voided = add_income(owner.id, 30)
        first = _settle(owner, [kept.id, lost.id]).settlement
        second = _settle(owner, [voided.id]).settlement
        cancel_settlement(owner.id, second.id, "Duplicado")

        for entry_id in (lost.id, voided.id):
            row = db.session.get(IncomeEntry, entry_id)
            row.settled = False
            row.settlement_id = None
            row.settled_at = None
        db.session.commit()

        assert settlement_service.reconcile_settlement_flags(owner.id, FARM) == 1
        db.session.commit()
        db.session.expire_all()

        repaired = db.session.get(IncomeEntry, lost.id)
        assert repaired.settled is True
        assert repaired.settlement_id == first.id
        assert repaired.settled_at == db.session.get(Settlement, first.id).settled_at
        assert db.session.get(IncomeEntry, voided.id).settled is False
        assert db.session.get(IncomeEntry, kept.id).settlement_id == first.id


class TestCancelAndHistory:

    def test_cancel_flips_status_only(self, db_session, owner):
        income = add_income(owner.id, 50)
        settlement = _settle(owner, [income.id]).settlement

        cancelled = cancel_settlement(owner.id, settlement.id, "Duplicado")
        assert cancelled.status == "CANCELLED"
        assert cancelled.cancel_reason == "Duplicado"
        assert cancelled.cancelled_at is not None
        assert cancelled.closing_balance_cents == 50
        assert db.session.get(IncomeEntry, income.id).settled is True
        assert get_cash_balance(owner.id, FARM).balance_cents == 50

    def test_cancel_twice_conflicts(self, db_session, owner):
        settlement = _settle(owner).settlement
        cancel_settlement(owner.id, settlement.id)
        with pytest.raises(ConflictError):
            cancel_settlement(owner.id, settlement.id)

    def test_other_owner_cannot_see_settlement(self, db_session, owner, other_owner):
        settlement = _settle(owner).settlement
        with pytest.raises(NotFoundError):
            get_settlement(other_owner.id, settlement.id)
        with pytest.raises(NotFoundError):
            cancel_settlement(other_owner.id, settlement.id)

    def test_history_newest_first_and_date_bounds(self, db_session, owner):
        first = _settle(owner).settlement
        second = _settle(owner).settlement

        first.settled_at = first.settled_at - timedelta(days=10)
        db.session.commit()

        history = list_settlements(owner.id, FARM)
        assert [s.id for s in history] == [second.id, first.id]

        day = second.settled_at.date().isoformat()
        bounded = list_settlements(owner.id, FARM, start=day, end=day)
        assert [s.id for s in bounded] == [second.id]

    def test_history_rejects_inverted_range(self, db_session, owner):
        with pytest.raises(ValidationError):
            list_settlements(owner.id, FARM, start="2024-03-10", end="2024-03-01")

    def test_stats(self, db_session, owner):
        assert settlement_stats(owner.id, FARM) == {
            "count": 0,
            "income_total_cents": 0,
            "egress_total_cents": 0,
            "avg_income_cents": 0.0,
            "avg_egress_cents": 0.0,
        }

        _settle(owner, [add_income(owner.id, 100).id])
        _settle(owner, [add_income(owner.id, 51).id], [add_expense(owner.id, 10).id])

        stats = settlement_stats(owner.id, FARM)
        assert stats["count"] == 2
        assert stats["income_total_cents"] == 151
        assert stats["egress_total_cents"] == 10
        assert stats["avg_income_cents"] == 75.5
        assert stats["avg_egress_cents"] == 5.0
