"""
Policy, transfer and transaction models.

These are the authoritative shapes for everything VaultGate evaluates or
mutates. Condition groups are structured and independently nullable: a group
left as ``None`` is unset, a group whose ``type`` is ``any`` is set but matches
everything. Amounts are always carried as decimal strings.
"""

from datetime import datetime, UTC
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class PolicyAction(str, Enum):
    """Verdicts a policy can emit."""

    ALLOW = "allow"
    DENY = "deny"
    REQUIRE_APPROVAL = "require_approval"


class ConditionLogic(str, Enum):
    """Combinator across the condition groups of one policy."""

    AND = "AND"
    OR = "OR"


class PolicyStatus(str, Enum):
    """Governance state of a policy."""

    ACTIVE = "active"
    PENDING_APPROVAL = "pending_approval"
    DRAFT = "draft"


class InitiatorType(str, Enum):
    ANY = "any"
    USER = "user"
    GROUP = "group"


class SourceWalletType(str, Enum):
    ANY = "any"
    SPECIFIC = "specific"


class DestinationType(str, Enum):
    ANY = "any"
    INTERNAL = "internal"
    EXTERNAL = "external"
    WHITELIST = "whitelist"


class AmountComparison(str, Enum):
    ANY = "any"
    ABOVE = "above"
    BELOW = "below"
    BETWEEN = "between"


class AssetType(str, Enum):
    ANY = "any"
    SPECIFIC = "specific"


def _decimal_to_str(v: Any) -> Any:
    """Accept numeric input but keep it as a string."""
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float, Decimal)):
        return str(v)
    return v


# ---------------------------------------------------------------------------
# Condition groups
# ---------------------------------------------------------------------------

class InitiatorCondition(BaseModel):
    """Who started the transfer: a named user or a member of a group."""

    type: InitiatorType = Field(default=InitiatorType.ANY)
    values: List[str] = Field(default_factory=list)


class SourceWalletCondition(BaseModel):
    """Which custodial wallet the funds leave from."""

    type: SourceWalletType = Field(default=SourceWalletType.ANY)
    wallets: List[str] = Field(default_factory=list)


class DestinationCondition(BaseModel):
    """Where the funds go. internal/external is decided by the caller."""

    type: DestinationType = Field(default=DestinationType.ANY)
    values: List[str] = Field(default_factory=list)


class AmountCondition(BaseModel):
    """USD threshold. Bounds stay strings so comparisons never drift."""

    condition: AmountComparison = Field(default=AmountComparison.ANY)
    min: Optional[str] = Field(default=None, description="Lower bound (USD)")
    max: Optional[str] = Field(default=None, description="Upper bound (USD)")

    @field_validator("min", "max", mode="before")
    @classmethod
    def coerce_bounds(cls, v: Any) -> Any:
        return _decimal_to_str(v)


class AssetCondition(BaseModel):
    """Which asset symbol is being moved."""

    type: AssetType = Field(default=AssetType.ANY)
    values: List[str] = Field(default_factory=list)


class ApprovalRecord(BaseModel):
    """One entry of an append-only approval log."""

    approver: str = Field(description="Display identity of the signer")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

class PolicyContent(BaseModel):
    """Administrator-editable fields of a policy."""

    name: str = Field(min_length=1, description="Display name")
    description: Optional[str] = Field(default=None)
    action: PolicyAction = Field(description="Verdict emitted on match")
    condition_logic: ConditionLogic = Field(default=ConditionLogic.AND)

    initiator: Optional[InitiatorCondition] = Field(default=None)
    source_wallet: Optional[SourceWalletCondition] = Field(default=None)
    destination: Optional[DestinationCondition] = Field(default=None)
    amount: Optional[AmountCondition] = Field(default=None)
    asset: Optional[AssetCondition] = Field(default=None)

    # Transaction approval, only meaningful for require_approval
    approvers: List[str] = Field(default_factory=list)
    quorum_required: int = Field(default=1, ge=1)

    # Change governance
    change_approvers_list: List[str] = Field(min_length=1)
    change_approvals_required: int = Field(default=1, ge=1)


class PolicyCreate(PolicyContent):
    """Payload accepted by create_policy."""

    priority: Optional[int] = Field(
        default=None,
        description="Explicit priority; appended after the last policy when omitted",
    )
    is_active: bool = Field(default=True)
    status: PolicyStatus = Field(default=PolicyStatus.ACTIVE)

    @field_validator("status")
    @classmethod
    def validate_initial_status(cls, v: PolicyStatus) -> PolicyStatus:
        if v == PolicyStatus.PENDING_APPROVAL:
            raise ValueError("A new policy cannot start in pending_approval")
        return v


class PolicyDiff(BaseModel):
    """
    Proposed partial change to a policy.

    Same shape as PolicyContent with every field optional. Only the fields the
    caller actually set are applied on commit; an explicit ``None`` on a
    condition group clears it. ``is_deletion`` turns the diff into a deletion
    request and the content fields are ignored.
    """

    name: Optional[str] = None
    description: Optional[str] = None
    action: Optional[PolicyAction] = None
    condition_logic: Optional[ConditionLogic] = None

    initiator: Optional[InitiatorCondition] = None
    source_wallet: Optional[SourceWalletCondition] = None
    destination: Optional[DestinationCondition] = None
    amount: Optional[AmountCondition] = None
    asset: Optional[AssetCondition] = None

    approvers: Optional[List[str]] = None
    quorum_required: Optional[int] = None

    change_approvers_list: Optional[List[str]] = None
    change_approvals_required: Optional[int] = None

    is_deletion: bool = Field(default=False)

    model_config = {"extra": "forbid"}

    @classmethod
    def deletion(cls) -> "PolicyDiff":
        return cls(is_deletion=True)

    def changed_fields(self) -> Dict[str, Any]:
        """Fields explicitly present in the diff, as plain data."""
        return self.model_dump(
            mode="json", exclude_unset=True, exclude={"is_deletion"}
        )


class Policy(PolicyContent):
    """A named, prioritized rule as stored in the repository."""

    id: int = Field(description="Repository-assigned identifier")
    priority: int = Field(description="Lower evaluates first")
    is_active: bool = Field(default=True)
    status: PolicyStatus = Field(default=PolicyStatus.ACTIVE)

    pending_changes: Optional[PolicyDiff] = Field(default=None)
    change_approvers: List[str] = Field(default_factory=list)
    change_initiator: Optional[str] = Field(default=None)
    change_approval_log: List[ApprovalRecord] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_pending(self) -> bool:
        return self.status == PolicyStatus.PENDING_APPROVAL

    @property
    def is_pending_deletion(self) -> bool:
        return (
            self.is_pending
            and self.pending_changes is not None
            and self.pending_changes.is_deletion
        )

    @property
    def change_progress(self) -> str:
        """Render change approval progress, e.g. "2 of 3 approved"."""
        return f"{len(self.change_approvers)} of {self.change_approvals_required} approved"

    def content(self) -> Dict[str, Any]:
        """Live editable fields, used as the base of a diff merge."""
        return self.model_dump(mode="json", include=set(PolicyContent.model_fields))


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

class TransferRequest(BaseModel):
    """Attributes of a proposed outbound transfer."""

    initiator: str = Field(default="", description="Display identity of the requester")
    initiator_groups: List[str] = Field(default_factory=list)
    source_wallet: str = Field(default="")
    destination: str = Field(default="", description="Destination address or label")
    destination_is_internal: bool = Field(default=False)
    amount_usd: str = Field(description="USD value as a decimal string")
    asset: str = Field(default="")

    @field_validator("amount_usd", mode="before")
    @classmethod
    def coerce_amount(cls, v: Any) -> Any:
        return _decimal_to_str(v)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "initiator": "Meir",
                    "source_wallet": "Treasury",
                    "destination": "0xDef01a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F",
                    "destination_is_internal": False,
                    "amount_usd": "15000",
                    "asset": "ETH",
                }
            ]
        }
    }


class Decision(BaseModel):
    """Outcome of evaluating a transfer against the active policy set."""

    action: PolicyAction = Field(description="Final verdict")
    matched_policy: Optional[Policy] = Field(default=None)
    reason: str = Field(description="Audit-friendly explanation")

    @property
    def is_allowed(self) -> bool:
        return self.action == PolicyAction.ALLOW

    @property
    def is_denied(self) -> bool:
        return self.action == PolicyAction.DENY

    @property
    def requires_approval(self) -> bool:
        return self.action == PolicyAction.REQUIRE_APPROVAL


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------

class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class Transaction(BaseModel):
    """A transfer under multi-party authorization."""

    id: int
    user_id: str = Field(description="Initiator of the transfer")
    type: str = Field(default="transfer")
    amount: str = Field(description='Decimal amount and symbol, e.g. "0.5 ETH"')
    status: TransactionStatus = Field(default=TransactionStatus.PENDING)
    tx_hash: Optional[str] = Field(default=None)

    policy_id: Optional[int] = Field(default=None, description="Policy that required approval")
    approvals: List[str] = Field(default_factory=list)
    approval_log: List[ApprovalRecord] = Field(default_factory=list)
    quorum_required: int = Field(ge=1, description="Frozen at creation time")
    failure_reason: Optional[str] = Field(default=None)

    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    completed_at: Optional[datetime] = Field(default=None)

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def approval_progress(self) -> str:
        return f"{len(self.approvals)}/{self.quorum_required}"
