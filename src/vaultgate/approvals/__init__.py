"""Approvals module for VaultGate - transaction and policy-change quorums."""

from vaultgate.approvals.models import (
    ApprovalOutcome,
    ChangeApprovalResult,
    TransactionApprovalResult,
)
from vaultgate.approvals.transactions import TransactionApprovalLifecycle, TransactionStore
from vaultgate.approvals.changes import ChangeApprovalLifecycle

__all__ = [
    "ApprovalOutcome",
    "ChangeApprovalResult",
    "TransactionApprovalResult",
    "TransactionApprovalLifecycle",
    "TransactionStore",
    "ChangeApprovalLifecycle",
]
