"""Persistence layer for batch records, approval items, alerts and audit entries."""

from cash_clearing.repository.base import CashClearingRepository
from cash_clearing.repository.in_memory import InMemoryCashClearingRepository
from cash_clearing.repository.dynamodb import DynamoDBCashClearingRepository

__all__ = [
    "CashClearingRepository",
    "InMemoryCashClearingRepository",
    "DynamoDBCashClearingRepository",
]
