"""Ledger module for VaultGate - Append-only audit ledger with hash-chaining."""

from vaultgate.ledger.ledger import AuditLedger
from vaultgate.ledger.models import LedgerEntry, EventType, ChainValidationResult

__all__ = [
    "AuditLedger",
    "LedgerEntry",
    "EventType",
    "ChainValidationResult",
]
