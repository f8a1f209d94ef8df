"""Per-entity remote ports backing the record stores."""

from budgetsync.remote.bank_accounts import BankAccountsPort
from budgetsync.remote.categories import CategoriesPort
from budgetsync.remote.transactions import TransactionsPort

__all__ = ["BankAccountsPort", "CategoriesPort", "TransactionsPort"]
