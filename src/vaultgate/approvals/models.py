"""Approval outcome models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from vaultgate.schema.models import Policy, Transaction


class ApprovalOutcome(str, Enum):
    """What a single approval call did."""

    RECORDED = "RECORDED"              # Counted, quorum not yet reached
    QUORUM_REACHED = "QUORUM_REACHED"  # Counted and committed
    DUPLICATE = "DUPLICATE"            # Already signed; nothing changed


class TransactionApprovalResult(BaseModel):
    """Result of approving a transaction."""

    transaction: Transaction
    outcome: ApprovalOutcome

    @property
    def is_duplicate(self) -> bool:
        return self.outcome == ApprovalOutcome.DUPLICATE


class ChangeApprovalResult(BaseModel):
    """Result of approving a pending policy change."""

    policy: Policy = Field(description="Policy after the approval (last state if deleted)")
    outcome: ApprovalOutcome
    deleted: bool = Field(default=False, description="Quorum committed a deletion")
    remaining: int = Field(default=0, description="Approvals still needed")
    message: Optional[str] = Field(default=None)

    @property
    def is_duplicate(self) -> bool:
        return self.outcome == ApprovalOutcome.DUPLICATE
