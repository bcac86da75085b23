"""
VaultGate Service

Single entry point wiring the policy repository, decision engine, approval
lifecycles, directory and audit ledger together. The HTTP layer is a thin
translation of these methods.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from vaultgate.approvals import (
    ChangeApprovalLifecycle,
    ChangeApprovalResult,
    TransactionApprovalLifecycle,
    TransactionApprovalResult,
)
from vaultgate.config import VaultGateSettings
from vaultgate.directory import Directory, demo_directory
from vaultgate.errors import ValidationError
from vaultgate.ledger import AuditLedger, EventType, LedgerEntry
from vaultgate.policy import PolicyDecisionEngine, PolicyRepository
from vaultgate.schema import (
    Decision,
    Policy,
    PolicyAction,
    PolicyCreate,
    PolicyDiff,
    PolicyStatus,
    PolicyValidator,
    Transaction,
    TransferRequest,
)


logger = logging.getLogger(__name__)

# Restrictive ordering: deny first, then require_approval, then allow
ACTION_RANK = {
    PolicyAction.DENY: 0,
    PolicyAction.REQUIRE_APPROVAL: 1,
    PolicyAction.ALLOW: 2,
}


class VaultGateService:
    """
    Core-facing contract for policy governance and transfer authorization.

    Content edits and deletions are gated by change approval. Reordering and
    toggling are direct: they can change decision outcomes without review.
    That asymmetry is intentional and still an open product question.
    """

    def __init__(
        self,
        repository: Optional[PolicyRepository] = None,
        ledger: Optional[AuditLedger] = None,
        directory: Optional[Directory] = None,
        enforce_change_approvers: bool = False,
    ):
        self.repository = repository or PolicyRepository()
        self.ledger = ledger or AuditLedger()
        self.directory = directory
        self.validator = PolicyValidator(directory)

        self.engine = PolicyDecisionEngine(self.repository)
        self.transactions = TransactionApprovalLifecycle(ledger=self.ledger)
        self.changes = ChangeApprovalLifecycle(
            self.repository,
            validator=self.validator,
            ledger=self.ledger,
            enforce_approvers=enforce_change_approvers,
        )

        logger.info("VaultGate service initialized")

    @classmethod
    def from_settings(cls, settings: VaultGateSettings) -> "VaultGateService":
        service = cls(
            ledger=AuditLedger(settings.ledger_path),
            directory=demo_directory() if settings.validate_identities else None,
            enforce_change_approvers=settings.enforce_change_approvers,
        )
        if settings.seed_demo_data:
            service.seed_demo_policies()
        return service

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def simulate(self, request: Union[TransferRequest, Dict[str, Any]]) -> Decision:
        """Evaluate a transfer. Read-only."""
        return self.engine.simulate(self.validator.validate_transfer(request))

    def authorize_transfer(
        self,
        request: Union[TransferRequest, Dict[str, Any]],
        amount: str,
    ) -> Tuple[Decision, Optional[Transaction]]:
        """
        Simulate a transfer and, if it requires approval, open a transaction.

        Args:
            request: Transfer attributes used for policy matching
            amount: Amount of request.asset being moved

        Returns:
            (decision, transaction). transaction is None unless the decision
            is require_approval.
        """
        request = self.validator.validate_transfer(request)
        decision = self.engine.simulate(request)
        if not decision.requires_approval:
            return decision, None
        transaction = self.create_transaction(
            amount, request.asset, request.initiator, decision.matched_policy
        )
        return decision, transaction

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def create_transaction(
        self,
        amount: str,
        asset: str,
        initiator: str,
        matched_policy: Optional[Policy],
    ) -> Transaction:
        return self.transactions.create(amount, asset, initiator, matched_policy)

    def approve_transaction(self, transaction_id: int, approver: str) -> Transaction:
        return self.approve_transaction_detailed(transaction_id, approver).transaction

    def approve_transaction_detailed(
        self, transaction_id: int, approver: str
    ) -> TransactionApprovalResult:
        return self.transactions.approve(transaction_id, approver)

    def fail_transaction(self, transaction_id: int, reason: str) -> Transaction:
        return self.transactions.fail(transaction_id, reason)

    def get_transaction(self, transaction_id: int) -> Transaction:
        return self.transactions.get(transaction_id)

    def list_transactions(self) -> List[Transaction]:
        return self.transactions.list()

    def list_pending_transactions(self) -> List[Transaction]:
        return self.transactions.list_pending()

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------

    def list_policies(self) -> List[Policy]:
        return self.repository.list()

    def get_policy(self, policy_id: int) -> Policy:
        return self.repository.get(policy_id)

    def create_policy(
        self,
        payload: Union[PolicyCreate, Dict[str, Any], str],
        creator: Optional[str] = None,
    ) -> Policy:
        """Create a policy directly; creation is not gated by change approval."""
        def audit(policy: Policy) -> None:
            self.ledger.log_event(
                event_type=EventType.POLICY_CREATED,
                payload={
                    "policy_name": policy.name,
                    "action": policy.action.value,
                    "priority": policy.priority,
                },
                actor=creator,
                policy_id=policy.id,
            )

        return self.repository.add(self.validator.validate_create(payload), before_store=audit)

    def submit_policy_change(
        self,
        policy_id: int,
        diff: Union[PolicyDiff, Dict[str, Any]],
        submitter: str,
    ) -> Policy:
        return self.changes.submit_change(policy_id, diff, submitter)

    def request_policy_deletion(self, policy_id: int, submitter: str) -> Policy:
        """
        Delete a policy.

        Drafts were never live, so they are removed directly. Anything else
        goes through change approval as a deletion diff.

        Returns:
            The removed draft, or the policy now pending deletion
        """
        with self.repository.locked():
            policy = self.repository.get(policy_id)
            if policy.status == PolicyStatus.DRAFT:
                self.ledger.log_event(
                    event_type=EventType.POLICY_DELETED,
                    payload={"policy_name": policy.name, "draft": True},
                    actor=submitter,
                    policy_id=policy_id,
                )
                return self.repository.remove(policy_id)
        return self.changes.request_deletion(policy_id, submitter)

    def approve_policy_change(self, policy_id: int, approver: str) -> Policy:
        return self.approve_policy_change_detailed(policy_id, approver).policy

    def approve_policy_change_detailed(self, policy_id: int, approver: str) -> ChangeApprovalResult:
        return self.changes.approve_change(policy_id, approver)

    def cancel_policy_change(self, policy_id: int, canceler: str) -> Policy:
        return self.changes.cancel_change(policy_id, canceler)

    def reorder_policies(self, ordered_ids: List[int], actor: Optional[str] = None) -> List[Policy]:
        """Direct, ungated reordering. All-or-nothing."""
        if not isinstance(ordered_ids, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in ordered_ids
        ):
            raise ValidationError("orderedIds must be a list of integers", field="orderedIds")

        def audit(ids: List[int]) -> None:
            self.ledger.log_event(
                event_type=EventType.POLICIES_REORDERED,
                payload={"ordered_ids": ids},
                actor=actor,
            )

        return self.repository.reorder(ordered_ids, before_store=audit)

    def apply_restrictive_order(self, actor: Optional[str] = None) -> List[Policy]:
        """Reorder so deny < require_approval < allow, oldest first within each."""
        with self.repository.locked():
            ordered = sorted(
                self.repository.list(),
                key=lambda p: (ACTION_RANK.get(p.action, len(ACTION_RANK)), p.id),
            )
            return self.reorder_policies([p.id for p in ordered], actor=actor)

    def toggle_policy(self, policy_id: int, actor: Optional[str] = None) -> Policy:
        """Direct, ungated activation flip."""
        def audit(policy: Policy) -> None:
            self.ledger.log_event(
                event_type=EventType.POLICY_TOGGLED,
                payload={"policy_name": policy.name, "is_active": policy.is_active},
                actor=actor,
                policy_id=policy_id,
            )

        return self.repository.toggle(policy_id, before_store=audit)

    def policy_history(self, limit: int = 50) -> List[LedgerEntry]:
        return self.ledger.get_policy_history(limit)

    # ------------------------------------------------------------------
    # Demo data
    # ------------------------------------------------------------------

    def seed_demo_policies(self) -> List[Policy]:
        """Load the starter policies of the demo workspace."""
        starters = [
            {
                "name": "Block USDT to external wallets",
                "action": "deny",
                "destination": {"type": "external"},
                "asset": {"type": "specific", "values": ["USDT"]},
                "change_approvers_list": ["Meir", "Ishai", "Lena"],
                "change_approvals_required": 2,
            },
            {
                "name": "Large transfers need approval",
                "action": "require_approval",
                "amount": {"condition": "above", "min": "10000"},
                "approvers": ["Meir", "Lena"],
                "quorum_required": 2,
                "change_approvers_list": ["Meir", "Ishai", "Lena"],
                "change_approvals_required": 2,
            },
            {
                "name": "Internal transfers auto-approved",
                "action": "allow",
                "destination": {"type": "internal"},
                "change_approvers_list": ["Meir", "Ishai"],
                "change_approvals_required": 1,
            },
        ]
        return [self.create_policy(data, creator="system") for data in starters]
