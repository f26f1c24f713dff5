# Overview: Pytest coverage for income entries, expenses with stock consumption, and inventory.

from datetime import date, timedelta
from decimal import Decimal

import pytest

from agrocaja.errors import ConflictError, NotFoundError, ValidationError
from agrocaja.extensions import db
from agrocaja.models import Expense, InventoryItem
from agrocaja.services import entry_service, expense_service, inventory_service
from agrocaja.services.settlement_service import process_settlement
from agrocaja.time_utils import today

from conftest import FARM, add_expense, add_income, add_item


def _settle_income(owner, entry):
    process_settlement(owner_id=owner.id, farm=FARM, income_entry_ids=[entry.id], expense_ids=[])


class TestIncomeEntries:

    def test_create(self, db_session, owner):
        entry = entry_service.create_income_entry(
            owner_id=owner.id,
            farm=FARM,
            payload={"entry_date": "2024-03-01", "description": "  Venta de plátano ", "value_cents": 12000},
            recorded_by="Ana",
        )
        assert entry.id is not None
        assert entry.description == "Venta de plátano"
        assert entry.settled is False

    def test_future_date_rejected(self, db_session, owner):
        tomorrow = (today() + timedelta(days=1)).isoformat()
        with pytest.raises(ValidationError):
            entry_service.create_income_entry(
                owner_id=owner.id, farm=FARM,
                payload={"entry_date": tomorrow, "description": "x", "value_cents": 10},
            )

    @pytest.mark.parametrize(
        "payload",
        [
            {"description": "x", "value_cents": 10},
            {"entry_date": "2024-03-01", "description": "", "value_cents": 10},
            {"entry_date": "2024-03-01", "description": "x", "value_cents": 0},
            {"entry_date": "2024-03-01", "description": "x" * 201, "value_cents": 10},
            {"entry_date": "2024-03-01", "description": "x", "value_cents": 10, "settled": True},
            {"entry_date": "   ", "description": "x", "value_cents": 10},
            {"entry_date": "marzo", "description": "x", "value_cents": 10},
        ],
    )
    def test_invalid_payloads(self, db_session, owner, payload):
        with pytest.raises(ValidationError):
            entry_service.create_income_entry(owner_id=owner.id, farm=FARM, payload=payload)

    def test_settled_entry_is_frozen(self, db_session, owner):
        entry = add_income(owner.id, 100)
        _settle_income(owner, entry)

        with pytest.raises(ConflictError):
            entry_service.update_income_entry(
                owner_id=owner.id, farm=FARM, entry_id=entry.id, payload={"value_cents": 5}
            )
        with pytest.raises(ConflictError):
            entry_service.delete_income_entry(owner_id=owner.id, farm=FARM, entry_id=entry.id)

    def test_update_and_delete_unsettled(self, db_session, owner):
        entry = add_income(owner.id, 100)
        updated = entry_service.update_income_entry(
            owner_id=owner.id, farm=FARM, entry_id=entry.id, payload={"value_cents": 150}
        )
        assert updated.value_cents == 150

        entry_service.delete_income_entry(owner_id=owner.id, farm=FARM, entry_id=entry.id)
        with pytest.raises(NotFoundError):
            entry_service.get_income_entry(owner.id, FARM, entry.id)

    def test_blank_date_on_update_rejected(self, db_session, owner):
        entry = add_income(owner.id, 100)
        with pytest.raises(ValidationError):
            entry_service.update_income_entry(
                owner_id=owner.id, farm=FARM, entry_id=entry.id, payload={"entry_date": "  "}
            )

    def test_list_filters(self, db_session, owner):
        add_income(owner.id, 100, description="Venta café", entry_date=date(2024, 1, 10))
        add_income(owner.id, 500, description="Venta CAFÉ pergamino", entry_date=date(2024, 2, 10))
        add_income(owner.id, 900, description="Subsidio", entry_date=date(2024, 3, 10))

        entries = entry_service.list_income_entries(owner.id, FARM, description="venta")
        assert len(entries) == 2

        entries = entry_service.list_income_entries(owner.id, FARM, start_date="2024-02-01", end_date="2024-03-10")
        assert [e.value_cents for e in entries] == [900, 500]

        entries = entry_service.list_income_entries(owner.id, FARM, min_value_cents="200", max_value_cents="600")
        assert [e.value_cents for e in entries] == [500]

        entries = entry_service.list_income_entries(owner.id, FARM, limit="1")
        assert [e.value_cents for e in entries] == [900]

        assert entry_service.summarize(entries) == {"count": 1, "total_cents": 900, "avg_cents": 900.0}

    def test_stats(self, db_session, owner):
        add_income(owner.id, 100, entry_date=today())
        add_income(owner.id, 300, entry_date=today() - timedelta(days=400))

        stats = entry_service.income_stats(owner.id, FARM)
        assert stats["count"] == 2
        assert stats["total_cents"] == 400
        assert stats["highest_cents"] == 300
        assert stats["month_count"] == 1
        assert stats["week_total_cents"] == 100


class TestExpenses:

    def test_consumption_decrements_stock(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, stock=Decimal("10"))
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM,
            payload={
                "description": "Abonada",
                "value_cents": 2000,
                "consumption_lines": [
                    {"inventory_item_id": item.id, "quantity": 2},
                    {"inventory_item_id": item.id, "quantity": "0.5"},
                ],
            },
        )
        assert len(expense.consumption_lines) == 1
        assert expense.consumption_lines[0].quantity == Decimal("2.5")
        assert expense.expense_date == today()

        db.session.expire_all()
        assert db.session.get(InventoryItem, item.id).stock_quantity == Decimal("7.5")

    def test_insufficient_stock_rejected(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, stock=Decimal("1"))
        with pytest.raises(ValidationError):
            expense_service.create_expense(
                owner_id=owner.id, farm=FARM,
                payload={
                    "description": "Abonada",
                    "value_cents": 10,
                    "consumption_lines": [{"inventory_item_id": item.id, "quantity": 2}],
                },
            )
        assert db.session.query(Expense).count() == 0

    def test_item_from_other_farm_rejected(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, farm="El Roble")
        with pytest.raises(ValidationError):
            expense_service.create_expense(
                owner_id=owner.id, farm=FARM,
                payload={
                    "description": "Abonada",
                    "value_cents": 10,
                    "consumption_lines": [{"inventory_item_id": item.id, "quantity": 1}],
                },
            )

    def test_zero_direct_cost_needs_consumption(self, db_session, owner):
        with pytest.raises(ValidationError):
            expense_service.create_expense(
                owner_id=owner.id, farm=FARM, payload={"description": "Nada", "value_cents": 0}
            )

    def test_delete_restores_stock(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, stock=Decimal("10"))
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM,
            payload={
                "description": "Abonada",
                "value_cents": 0,
                "consumption_lines": [{"inventory_item_id": item.id, "quantity": 4}],
            },
        )
        expense_service.delete_expense(owner_id=owner.id, farm=FARM, expense_id=expense.id)

        db.session.expire_all()
        assert db.session.get(InventoryItem, item.id).stock_quantity == Decimal("10")
        assert db.session.query(Expense).count() == 0

    def test_settled_expense_cannot_be_deleted(self, db_session, owner):
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM, payload={"description": "Jornales", "value_cents": 100}
        )
        process_settlement(owner_id=owner.id, farm=FARM, income_entry_ids=[], expense_ids=[expense.id])

        with pytest.raises(ConflictError):
            expense_service.delete_expense(owner_id=owner.id, farm=FARM, expense_id=expense.id)

    def test_blank_date_rejected(self, db_session, owner):
        for raw in ("   ", ""):
            with pytest.raises(ValidationError):
                expense_service.create_expense(
                    owner_id=owner.id, farm=FARM,
                    payload={"description": "Jornales", "value_cents": 100, "expense_date": raw},
                )
        assert db.session.query(Expense).count() == 0

    def test_update_fields(self, db_session, owner):
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM, payload={"description": "Jornales", "value_cents": 100}
        )
        updated = expense_service.update_expense(
            owner_id=owner.id, farm=FARM, expense_id=expense.id,
            payload={"description": " Jornales cosecha ", "value_cents": 250, "expense_date": "2024-03-02"},
        )
        assert updated.description == "Jornales cosecha"
        assert updated.value_cents == 250
        assert updated.expense_date == date(2024, 3, 2)

    def test_update_replaces_lines_and_rebalances_stock(self, db_session, owner):
        urea = add_item(owner.id, unit_price_cents=5, stock=Decimal("10"), name="Urea")
        dap = add_item(owner.id, unit_price_cents=8, stock=Decimal("5"), name="DAP")
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM,
            payload={
                "description": "Abonada",
                "value_cents": 0,
                "consumption_lines": [{"inventory_item_id": urea.id, "quantity": 4}],
            },
        )

        # 6 left in stock plus the 4 already held by this expense
        expense_service.update_expense(
            owner_id=owner.id, farm=FARM, expense_id=expense.id,
            payload={"consumption_lines": [{"inventory_item_id": urea.id, "quantity": 7}]},
        )
        db.session.expire_all()
        assert db.session.get(InventoryItem, urea.id).stock_quantity == Decimal("3")

        expense_service.update_expense(
            owner_id=owner.id, farm=FARM, expense_id=expense.id,
            payload={"consumption_lines": [{"inventory_item_id": dap.id, "quantity": 2}]},
        )
        db.session.expire_all()
        assert db.session.get(InventoryItem, urea.id).stock_quantity == Decimal("10")
        assert db.session.get(InventoryItem, dap.id).stock_quantity == Decimal("3")
        lines = db.session.get(Expense, expense.id).consumption_lines
        assert [(line.inventory_item_id, line.quantity) for line in lines] == [(dap.id, Decimal("2"))]

    def test_update_insufficient_stock_changes_nothing(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5, stock=Decimal("10"))
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM,
            payload={
                "description": "Abonada",
                "value_cents": 50,
                "consumption_lines": [{"inventory_item_id": item.id, "quantity": 4}],
            },
        )
        with pytest.raises(ValidationError):
            expense_service.update_expense(
                owner_id=owner.id, farm=FARM, expense_id=expense.id,
                payload={"value_cents": 80, "consumption_lines": [{"inventory_item_id": item.id, "quantity": 11}]},
            )

        db.session.expire_all()
        assert db.session.get(InventoryItem, item.id).stock_quantity == Decimal("6")
        unchanged = db.session.get(Expense, expense.id)
        assert unchanged.value_cents == 50
        assert [line.quantity for line in unchanged.consumption_lines] == [Decimal("4")]

    @pytest.mark.parametrize(
        "payload",
        [
            {"settled": True},
            {"value_cents": None},
            {"value_cents": -1},
            {"description": "  "},
            {"expense_date": " "},
            {"consumption_lines": "urea"},
        ],
    )
    def test_update_invalid_payloads(self, db_session, owner, payload):
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM, payload={"description": "Jornales", "value_cents": 100}
        )
        with pytest.raises(ValidationError):
            expense_service.update_expense(owner_id=owner.id, farm=FARM, expense_id=expense.id, payload=payload)

    def test_update_dropping_lines_needs_direct_cost(self, db_session, owner):
        item = add_item(owner.id, unit_price_cents=5)
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM,
            payload={
                "description": "Abonada",
                "value_cents": 0,
                "consumption_lines": [{"inventory_item_id": item.id, "quantity": 1}],
            },
        )
        with pytest.raises(ValidationError):
            expense_service.update_expense(
                owner_id=owner.id, farm=FARM, expense_id=expense.id, payload={"consumption_lines": []}
            )

        updated = expense_service.update_expense(
            owner_id=owner.id, farm=FARM, expense_id=expense.id, payload={"consumption_lines": [], "value_cents": 30}
        )
        assert updated.consumption_lines == []
        db.session.expire_all()
        assert db.session.get(InventoryItem, item.id).stock_quantity == Decimal("10")

    def test_settled_expense_cannot_be_updated(self, db_session, owner):
        expense = expense_service.create_expense(
            owner_id=owner.id, farm=FARM, payload={"description": "Jornales", "value_cents": 100}
        )
        process_settlement(owner_id=owner.id, farm=FARM, income_entry_ids=[], expense_ids=[expense.id])

        with pytest.raises(ConflictError):
            expense_service.update_expense(
                owner_id=owner.id, farm=FARM, expense_id=expense.id, payload={"value_cents": 5}
            )
        db.session.expire_all()
        assert db.session.get(Expense, expense.id).value_cents == 100

    def test_stats(self, db_session, owner, other_owner):
        assert expense_service.expense_stats(owner.id, FARM) == {"count": 0, "total_cents": 0, "avg_cents": 0.0}

        add_expense(owner.id, 100)
        add_expense(owner.id, 300)
        add_expense(owner.id, 999, farm="El Roble")
        add_expense(other_owner.id, 999)

        assert expense_service.expense_stats(owner.id, FARM) == {"count": 2, "total_cents": 400, "avg_cents": 200.0}

    def test_update_and_stats_routes(self, client, owner_headers):
        created = client.post("/api/expenses", headers=owner_headers, json={
            "description": "Jornales", "value_cents": 100,
        }).json["expense"]

        resp = client.put(f"/api/expenses/{created['id']}", headers=owner_headers, json={"value_cents": 400})
        assert resp.status_code == 200
        assert resp.json["expense"]["value_cents"] == 400

        resp = client.put(f"/api/expenses/{created['id']}", headers=owner_headers, json={"expense_date": " "})
        assert resp.status_code == 400
        assert resp.json["error"] == "validation_error"

        resp = client.put("/api/expenses/99999", headers=owner_headers, json={"value_cents": 1})
        assert resp.status_code == 404

        resp = client.get("/api/expenses/stats", headers=owner_headers)
        assert resp.status_code == 200
        assert resp.json["stats"] == {"count": 1, "total_cents": 400, "avg_cents": 400.0}


class TestInventory:

    def test_create_and_update(self, db_session, owner):
        item = inventory_service.create_item(
            owner_id=owner.id, farm=FARM,
            payload={"name": "Urea", "category": "fertilizante", "unit_price_cents": 500, "stock_quantity": "12.5"},
        )
        assert item.stock_quantity == Decimal("12.5")

        updated = inventory_service.update_item(
            owner_id=owner.id, farm=FARM, item_id=item.id, payload={"unit_price_cents": 550}
        )
        assert updated.unit_price_cents == 550

    @pytest.mark.parametrize(
        "payload",
        [
            {"name": "Urea", "category": "f", "unit_price_cents": 0, "stock_quantity": 1},
            {"name": "Urea", "category": "f", "unit_price_cents": 10, "stock_quantity": -1},
            {"name": "Urea", "category": "f", "unit_price_cents": 10, "stock_quantity": "1.2345"},
            {"name": "Urea", "category": "f", "unit_price_cents": 10},
        ],
    )
    def test_invalid_items(self, db_session, owner, payload):
        with pytest.raises(ValidationError):
            inventory_service.create_item(owner_id=owner.id, farm=FARM, payload=payload)

    def test_stats_and_low_stock(self, db_session, owner):
        add_item(owner.id, unit_price_cents=100, stock=Decimal("2"), name="Urea", category="fertilizante")
        add_item(owner.id, unit_price_cents=50, stock=Decimal("20"), name="DAP", category="fertilizante")
        add_item(owner.id, unit_price_cents=10, stock=Decimal("5"), name="Diesel", category="combustible")

        stats = inventory_service.inventory_stats(owner.id, FARM)
        assert stats["item_count"] == 3
        assert stats["stock_value_cents"] == 200 + 1000 + 50
        assert stats["by_category"] == {"fertilizante": 2, "combustible": 1}

        items, threshold = inventory_service.low_stock_items(owner.id, FARM)
        assert threshold == Decimal("5")
        assert [i.name for i in items] == ["Urea", "Diesel"]

        items, _ = inventory_service.low_stock_items(owner.id, FARM, "1")
        assert items == []

    def test_routes(self, client, owner_headers):
        resp = client.post("/api/inventory", headers=owner_headers, json={
            "name": "Glifosato", "category": "agroquímico", "unit_price_cents": 1200, "stock_quantity": 3,
        })
        assert resp.status_code == 201
        item_id = resp.json["item"]["id"]

        resp = client.get("/api/inventory/low-stock?threshold=5", headers=owner_headers)
        assert resp.json["count"] == 1
        assert resp.json["threshold"] == 5.0

        resp = client.delete(f"/api/inventory/{item_id}", headers=owner_headers)
        assert resp.status_code == 200
        assert client.get(f"/api/inventory/{item_id}", headers=owner_headers).status_code == 404
