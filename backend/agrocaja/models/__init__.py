from .auth import User, SessionToken
from .inventory import InventoryItem
from .entries import IncomeEntry, Expense, ExpenseConsumptionLine
from .cash import CashMovement, FarmLock, FarmSequence
from .settlements import Settlement, SettlementIncomeLine, SettlementExpenseLine, SettlementInventoryLine

__all__ = [
    'User', 'SessionToken',
    'InventoryItem',
    'IncomeEntry', 'Expense', 'ExpenseConsumptionLine',
    'CashMovement', 'FarmLock', 'FarmSequence',
    'Settlement', 'SettlementIncomeLine', 'SettlementExpenseLine', 'SettlementInventoryLine',
]
