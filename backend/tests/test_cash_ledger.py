# Overview: Pytest coverage for cash balance reconstruction and manual cash movements.

"""
Cash Ledger Tests

Verifies:
1. An empty farm has balance 0 and no last settlement
2. Deposits and withdrawals fold on top of the latest settlement
3. Movements before the latest settlement are not counted twice
4. Withdrawals that would overdraw are rejected and nothing is written
5. Each movement records balance before/after
"""

from datetime import timedelta

import pytest

from agrocaja.errors import InsufficientFundsError, NoActiveFarmError, ValidationError
from agrocaja.extensions import db
from agrocaja.models import CashMovement, Settlement
from agrocaja.services.cash_service import get_cash_balance, list_cash_movements, register_cash_movement
from agrocaja.time_utils import utcnow

from conftest import FARM


def _deposit(owner, cents, farm=FARM):
    return register_cash_movement(
        owner_id=owner.id, farm=farm, movement_type="deposit", value_cents=cents, description="Aporte"
    )


def _withdraw(owner, cents, farm=FARM):
    return register_cash_movement(
        owner_id=owner.id, farm=farm, movement_type="withdrawal", value_cents=cents, description="Retiro"
    )


def _settlement(owner, closing, settled_at, number="LIQ-0001"):
    settlement = Settlement(
        owner_id=owner.id,
        farm=FARM,
        settlement_number=number,
        settled_at=settled_at,
        opening_balance_cents=0,
        total_income_cents=closing,
        total_egress_cents=0,
        closing_balance_cents=closing,
    )
    db.session.add(settlement)
    db.session.commit()
    return settlement


class TestCashBalance:

    def test_empty_farm_balance_is_zero(self, db_session, owner):
        balance = get_cash_balance(owner.id, FARM)
        assert balance.balance_cents == 0
        assert balance.last_settlement is None
        assert balance.to_dict() == {"balance_cents": 0, "last_settlement": None}

    def test_no_farm_selected_is_empty(self, db_session, owner):
        _deposit(owner, 500)
        balance = get_cash_balance(owner.id, None)
        assert balance.to_dict() == {"balance_cents": 0, "last_settlement": None}
        assert list_cash_movements(owner.id, None) == []

    def test_movements_fold_without_settlement(self, db_session, owner):
        _deposit(owner, 1000)
        _withdraw(owner, 300)
        _deposit(owner, 50)
        assert get_cash_balance(owner.id, FARM).balance_cents == 750

    def test_balance_starts_from_latest_settlement(self, db_session, owner):
        _deposit(owner, 999)  # before the settlement: already inside its closing balance
        _settlement(owner, closing=5000, settled_at=utcnow())
        _deposit(owner, 200)
        _withdraw(owner, 700)

        balance = get_cash_balance(owner.id, FARM)
        assert balance.balance_cents == 4500
        assert balance.movements_folded == 2
        assert balance.to_dict()["last_settlement"]["closing_balance_cents"] == 5000

    def test_latest_settlement_wins(self, db_session, owner):
        now = utcnow()
        _settlement(owner, closing=100, settled_at=now - timedelta(days=2), number="LIQ-0001")
        _settlement(owner, closing=900, settled_at=now - timedelta(days=1), number="LIQ-0002")
        assert get_cash_balance(owner.id, FARM).balance_cents == 900

    def test_other_farm_and_owner_ignored(self, db_session, owner, other_owner):
        _deposit(owner, 100)
        _deposit(owner, 5000, farm="El Roble")
        _deposit(other_owner, 7000)
        assert get_cash_balance(owner.id, FARM).balance_cents == 100


class TestCashMovements:

    def test_deposit_records_before_and_after(self, db_session, owner):
        _deposit(owner, 100)
        movement, new_balance = _deposit(owner, 250)
        assert new_balance == 350
        assert movement.balance_before_cents == 100
        assert movement.balance_after_cents == 350
        assert movement.movement_type == "deposit"

    def test_withdrawal_to_exactly_zero_allowed(self, db_session, owner):
        _deposit(owner, 100)
        _, new_balance = _withdraw(owner, 100)
        assert new_balance == 0

    def test_overdraw_rejected_and_nothing_written(self, db_session, owner):
        _deposit(owner, 30)
        with pytest.raises(InsufficientFundsError) as exc_info:
            _withdraw(owner, 50)

        assert exc_info.value.details == {"balance_cents": 30, "requested_cents": 50}
        assert db.session.query(CashMovement).count() == 1
        assert get_cash_balance(owner.id, FARM).balance_cents == 30

    @pytest.mark.parametrize("value", [0, -5, "12.5", 1.5, True, None, 10**12])
    def test_invalid_values_rejected(self, db_session, owner, value):
        with pytest.raises(ValidationError):
            register_cash_movement(
                owner_id=owner.id, farm=FARM, movement_type="deposit", value_cents=value, description="x"
            )

    def test_unknown_type_rejected(self, db_session, owner):
        with pytest.raises(ValidationError):
            register_cash_movement(
                owner_id=owner.id, farm=FARM, movement_type="transfer", value_cents=10, description="x"
            )

    def test_blank_description_rejected(self, db_session, owner):
        with pytest.raises(ValidationError):
            register_cash_movement(
                owner_id=owner.id, farm=FARM, movement_type="deposit", value_cents=10, description="  "
            )

    def test_requires_active_farm(self, db_session, owner):
        with pytest.raises(NoActiveFarmError):
            register_cash_movement(
                owner_id=owner.id, farm=None, movement_type="deposit", value_cents=10, description="x"
            )

    def test_list_newest_first_with_limit(self, db_session, owner):
        for cents in (10, 20, 30):
            _deposit(owner, cents)
        movements = list_cash_movements(owner.id, FARM, limit=2)
        assert [m.value_cents for m in movements] == [30, 20]
