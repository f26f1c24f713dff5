"""
Pytest fixtures for AgroCaja backend tests.

Provides the app on an in-memory database, per-test table truncation, two
owners with separate books, and auth helpers.
"""

from datetime import date
from decimal import Decimal

import pytest

from agrocaja import create_app
from agrocaja.extensions import db
from agrocaja.models import Expense, ExpenseConsumptionLine, IncomeEntry, InventoryItem
from agrocaja.services.auth_service import create_user


FARM = "La Esperanza"
PASSWORD = "Password123!"
ENTRY_DATE = date(2024, 3, 1)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'BCRYPT_ROUNDS': 4,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def owner(db_session):
    """Owner A, working on FARM."""
    return create_user(
        username="ana",
        email="ana@esperanza.local",
        password=PASSWORD,
        display_name="Ana Gómez",
        active_farm=FARM,
    )


@pytest.fixture(scope='function')
def other_owner(db_session):
    """Owner B, same farm label but separate books."""
    return create_user(
        username="beto",
        email="beto@roble.local",
        password=PASSWORD,
        active_farm=FARM,
    )


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def owner_headers(client, owner):
    return auth_headers(get_auth_token(client, owner.username))


@pytest.fixture(scope='function')
def other_headers(client, other_owner):
    return auth_headers(get_auth_token(client, other_owner.username))


# =============================================================================
# Direct row builders (bypass the services to set up exact book states)
# =============================================================================


def add_income(owner_id: int, value_cents: int, *, farm: str = FARM, description: str = "Venta de café",
               entry_date: date = ENTRY_DATE) -> IncomeEntry:
    entry = IncomeEntry(
        owner_id=owner_id,
        farm=farm,
        entry_date=entry_date,
        description=description,
        value_cents=value_cents,
        settled=False,
    )
    db.session.add(entry)
    db.session.commit()
    return entry


def add_item(owner_id: int, unit_price_cents: int, *, stock=Decimal("10"), farm: str = FARM,
             name: str = "Urea", category: str = "fertilizante") -> InventoryItem:
    item = InventoryItem(
        owner_id=owner_id,
        farm=farm,
        name=name,
        category=category,
        unit_price_cents=unit_price_cents,
        stock_quantity=stock,
    )
    db.session.add(item)
    db.session.commit()
    return item


def add_expense(owner_id: int, value_cents: int, *, lines=(), farm: str = FARM,
                description: str = "Jornales", expense_date: date = ENTRY_DATE) -> Expense:
    """lines: iterable of (item, quantity). Stock is not touched."""
    expense = Expense(
        owner_id=owner_id,
        farm=farm,
        expense_date=expense_date,
        description=description,
        value_cents=value_cents,
        settled=False,
    )
    for item, quantity in lines:
        expense.consumption_lines.append(ExpenseConsumptionLine(
            inventory_item_id=item.id,
            item_name=item.name,
            quantity=quantity,
        ))
    db.session.add(expense)
    db.session.commit()
    return expense
