from .bank_account import BankAccount
from .category import Category
from .transaction import Transaction

__all__ = [
    "BankAccount",
    "Category",
    "Transaction",
]
