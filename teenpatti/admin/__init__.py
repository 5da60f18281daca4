"""Settlement and ledger."""
from .ledger import Ledger, Transaction, TransactionType, ledger
from .settlement import SettlementInstruction, SettlementResult, settle

__all__ = [
    "Ledger",
    "Transaction",
    "TransactionType",
    "ledger",
    "SettlementInstruction",
    "SettlementResult",
    "settle",
]
