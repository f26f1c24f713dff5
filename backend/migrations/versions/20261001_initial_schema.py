"""Initial schema: owners, sessions, inventory, entries, cash box, settlements

Revision ID: 20261001_initial
Revises:
Create Date: 2026-10-01

This migration creates:
1. users and session_tokens (bearer-token auth)
2. inventory_items (farm supply stock, optimistic version_id)
3. income_entries, expenses, expense_consumption_lines
4. cash_movements (append-only), farm_locks, farm_sequences
5. settlements and their snapshot lines (income, expense, inventory)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. USERS & SESSIONS
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('display_name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('active_farm', sa.String(length=120), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table('session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])

    # ==========================================================================
    # 2. INVENTORY
    # ==========================================================================
    op.create_table('inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('stock_quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('volume_liters', sa.Numeric(12, 3), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_inventory_items_stock_nonneg'),
        sa.CheckConstraint('unit_price_cents >= 0', name='ck_inventory_items_price_nonneg'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_items_owner_id', 'inventory_items', ['owner_id'])
    op.create_index('ix_inventory_items_owner_farm', 'inventory_items', ['owner_id', 'farm'])

    # ==========================================================================
    # 3. SETTLEMENTS (referenced by entries)
    # ==========================================================================
    op.create_table('settlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('settled_by', sa.String(length=120), nullable=True),
        sa.Column('settlement_number', sa.String(length=32), nullable=False),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('opening_balance_cents', sa.Integer(), nullable=False),
        sa.Column('total_income_cents', sa.Integer(), nullable=False),
        sa.Column('total_egress_cents', sa.Integer(), nullable=False),
        sa.Column('closing_balance_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancel_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'farm', 'settlement_number', name='uq_settlements_owner_farm_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_settlements_owner_id', 'settlements', ['owner_id'])
    op.create_index('ix_settlements_status', 'settlements', ['status'])
    op.create_index('ix_settlements_owner_farm_settled_at', 'settlements', ['owner_id', 'farm', 'settled_at'])

    # ==========================================================================
    # 4. INCOME ENTRIES & EXPENSES
    # ==========================================================================
    op.create_table('income_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('settled', sa.Boolean(), nullable=False),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settlement_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('value_cents >= 0', name='ck_income_entries_value_nonneg'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_income_entries_owner_id', 'income_entries', ['owner_id'])
    op.create_index('ix_income_entries_settlement_id', 'income_entries', ['settlement_id'])
    op.create_index('ix_income_entries_created_at', 'income_entries', ['created_at'])
    op.create_index('ix_income_entries_owner_farm_date', 'income_entries', ['owner_id', 'farm', 'entry_date'])
    op.create_index('ix_income_entries_owner_farm_settled', 'income_entries', ['owner_id', 'farm', 'settled'])

    op.create_table('expenses',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('settled', sa.Boolean(), nullable=False),
        sa.Column('settled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('settlement_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('value_cents >= 0', name='ck_expenses_value_nonneg'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expenses_owner_id', 'expenses', ['owner_id'])
    op.create_index('ix_expenses_settlement_id', 'expenses', ['settlement_id'])
    op.create_index('ix_expenses_created_at', 'expenses', ['created_at'])
    op.create_index('ix_expenses_owner_farm_date', 'expenses', ['owner_id', 'farm', 'expense_date'])
    op.create_index('ix_expenses_owner_farm_settled', 'expenses', ['owner_id', 'farm', 'settled'])

    op.create_table('expense_consumption_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('expense_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=120), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_expense_consumption_qty_pos'),
        sa.ForeignKeyConstraint(['expense_id'], ['expenses.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_expense_consumption_lines_expense_id', 'expense_consumption_lines', ['expense_id'])
    op.create_index('ix_expense_consumption_lines_inventory_item_id', 'expense_consumption_lines', ['inventory_item_id'])

    # ==========================================================================
    # 5. CASH BOX
    # ==========================================================================
    op.create_table('cash_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('balance_before_cents', sa.Integer(), nullable=False),
        sa.Column('balance_after_cents', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('value_cents > 0', name='ck_cash_movements_value_pos'),
        sa.CheckConstraint("movement_type IN ('deposit', 'withdrawal')", name='ck_cash_movements_type'),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_cash_movements_owner_id', 'cash_movements', ['owner_id'])
    op.create_index('ix_cash_movements_owner_farm_occurred', 'cash_movements', ['owner_id', 'farm', 'occurred_at'])

    op.create_table('farm_locks',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('lock_version', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'farm', name='uq_farm_locks_owner_farm'),
        sqlite_autoincrement=True
    )

    op.create_table('farm_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_id', sa.Integer(), nullable=False),
        sa.Column('farm', sa.String(length=120), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['owner_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'farm', 'document_type', name='uq_farm_sequences_owner_farm_type'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 6. SETTLEMENT SNAPSHOT LINES
    # ==========================================================================
    op.create_table('settlement_income_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('income_entry_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('entry_date', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_settlement_income_lines_settlement_id', 'settlement_income_lines', ['settlement_id'])
    op.create_index('ix_settlement_income_lines_income_entry_id', 'settlement_income_lines', ['income_entry_id'])

    op.create_table('settlement_expense_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('expense_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=200), nullable=False),
        sa.Column('value_cents', sa.Integer(), nullable=False),
        sa.Column('consumption_cents', sa.Integer(), nullable=False),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('expense_date', sa.Date(), nullable=False),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_settlement_expense_lines_settlement_id', 'settlement_expense_lines', ['settlement_id'])
    op.create_index('ix_settlement_expense_lines_expense_id', 'settlement_expense_lines', ['expense_id'])

    op.create_table('settlement_inventory_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('settlement_id', sa.Integer(), nullable=False),
        sa.Column('expense_id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=120), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('line_total_cents', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['settlement_id'], ['settlements.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_settlement_inventory_lines_settlement_id', 'settlement_inventory_lines', ['settlement_id'])


def downgrade():
    op.drop_table('settlement_inventory_lines')
    op.drop_table('settlement_expense_lines')
    op.drop_table('settlement_income_lines')
    op.drop_table('farm_sequences')
    op.drop_table('farm_locks')
    op.drop_table('cash_movements')
    op.drop_table('expense_consumption_lines')
    op.drop_table('expenses')
    op.drop_table('income_entries')
    op.drop_table('settlements')
    op.drop_table('inventory_items')
    op.drop_table('session_tokens')
    op.drop_table('users')
