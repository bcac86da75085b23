"""Schema module for VaultGate policies, transfers and transactions."""

from vaultgate.schema.models import (
    AmountComparison,
    AmountCondition,
    ApprovalRecord,
    AssetCondition,
    AssetType,
    ConditionLogic,
    Decision,
    DestinationCondition,
    DestinationType,
    InitiatorCondition,
    InitiatorType,
    Policy,
    PolicyAction,
    PolicyContent,
    PolicyCreate,
    PolicyDiff,
    PolicyStatus,
    SourceWalletCondition,
    SourceWalletType,
    Transaction,
    TransactionStatus,
    TransferRequest,
)
from vaultgate.schema.validator import PolicyValidator

__all__ = [
    "AmountComparison",
    "AmountCondition",
    "ApprovalRecord",
    "AssetCondition",
    "AssetType",
    "ConditionLogic",
    "Decision",
    "DestinationCondition",
    "DestinationType",
    "InitiatorCondition",
    "InitiatorType",
    "Policy",
    "PolicyAction",
    "PolicyContent",
    "PolicyCreate",
    "PolicyDiff",
    "PolicyStatus",
    "SourceWalletCondition",
    "SourceWalletType",
    "Transaction",
    "TransactionStatus",
    "TransferRequest",
    "PolicyValidator",
]
