"""Change Approval Lifecycle - quorum-gated edits and deletions of policies.

A content edit never touches the live policy directly. It is parked as a
PolicyDiff on the policy (status pending_approval) while the old rules keep
applying, and merged only when change_approvals_required distinct approvers
have signed. A deletion is the same pipeline with an is_deletion diff.

Reordering and toggling are not routed through here; they are direct
repository operations.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from vaultgate.approvals.models import ApprovalOutcome, ChangeApprovalResult
from vaultgate.errors import InvalidStateError, ValidationError
from vaultgate.ledger import AuditLedger, EventType
from vaultgate.policy.repository import PolicyRepository
from vaultgate.schema.models import (
    ApprovalRecord,
    Policy,
    PolicyContent,
    PolicyDiff,
    PolicyStatus,
)
from vaultgate.schema.validator import PolicyValidator


logger = logging.getLogger(__name__)


class ChangeApprovalLifecycle:
    """
    Manages pending changes to policies.

    Args:
        repository: Policy store the changes are committed to
        validator: Validates diffs and merged results
        ledger: Optional audit ledger
        enforce_approvers: When True, only members of change_approvers_list
            other than the change initiator may sign, and only members or the
            initiator may cancel
    """

    def __init__(
        self,
        repository: PolicyRepository,
        validator: Optional[PolicyValidator] = None,
        ledger: Optional[AuditLedger] = None,
        enforce_approvers: bool = False,
    ):
        self.repository = repository
        self.validator = validator or PolicyValidator()
        self.ledger = ledger
        self.enforce_approvers = enforce_approvers

    def submit_change(
        self,
        policy_id: int,
        diff: Union[PolicyDiff, Dict[str, Any]],
        submitter: str,
    ) -> Policy:
        """
        Park a proposed change on a policy.

        The merged result is validated now so that a commit at quorum cannot
        fail on content.

        Returns:
            The policy in pending_approval, live fields unchanged

        Raises:
            NotFoundError: Unknown policy
            InvalidStateError: A change is already pending
            ValidationError: Empty diff or invalid merged policy
            InternalError: The ledger write failed
        """
        # Unknown ids are reported before anything about the diff
        self.repository.get(policy_id)

        diff = self.validator.validate_diff(diff)
        if not diff.is_deletion and not diff.changed_fields():
            raise ValidationError("Change contains no fields", field="diff")

        def apply(policy: Policy) -> None:
            if policy.status == PolicyStatus.PENDING_APPROVAL:
                raise InvalidStateError(f"Policy {policy_id} already has a pending change")
            if not diff.is_deletion:
                self.validator.merge(policy, diff)

            policy.status = PolicyStatus.PENDING_APPROVAL
            policy.pending_changes = diff.model_copy(deep=True)
            policy.change_approvers = []
            policy.change_approval_log = []
            policy.change_initiator = submitter
            self._audit([{
                "event_type": EventType.DELETION_SUBMITTED if diff.is_deletion else EventType.CHANGE_SUBMITTED,
                "payload": {
                    "policy_name": policy.name,
                    "changes": diff.changed_fields(),
                },
                "actor": submitter,
                "policy_id": policy_id,
            }])

        policy = self.repository.update(policy_id, apply)

        kind = "deletion" if diff.is_deletion else "change"
        logger.info(
            f"Policy #{policy_id} {kind} submitted by {submitter} "
            f"({policy.change_approvals_required} approval(s) required)"
        )
        return policy

    def request_deletion(self, policy_id: int, submitter: str) -> Policy:
        """Submit a deletion through the same approval machinery as edits."""
        return self.submit_change(policy_id, PolicyDiff.deletion(), submitter)

    def approve_change(self, policy_id: int, approver: str) -> ChangeApprovalResult:
        """
        Sign a pending change.

        At quorum the diff is merged into the live policy (or the policy is
        removed for a deletion) in the same critical section as the approval
        that reached it.

        Raises:
            NotFoundError: Unknown policy
            InvalidStateError: Nothing pending on the policy
            ValidationError: Approver not allowed (enforce_approvers only)
        """
        if not approver:
            raise ValidationError("Approver is required", field="approver")

        outcome = ApprovalOutcome.RECORDED
        deleting = False

        def apply(policy: Policy) -> None:
            nonlocal outcome, deleting
            if policy.status != PolicyStatus.PENDING_APPROVAL or policy.pending_changes is None:
                raise InvalidStateError(f"Policy {policy_id} has no pending change")
            if self.enforce_approvers:
                self._check_signer(policy, approver)
            if approver in policy.change_approvers:
                outcome = ApprovalOutcome.DUPLICATE
                return

            policy.change_approvers.append(approver)
            policy.change_approval_log.append(ApprovalRecord(approver=approver))
            events = [{
                "event_type": EventType.CHANGE_APPROVED,
                "payload": {"policy_name": policy.name, "approvers": list(policy.change_approvers)},
                "actor": approver,
                "policy_id": policy_id,
            }]

            if len(policy.change_approvers) >= policy.change_approvals_required:
                outcome = ApprovalOutcome.QUORUM_REACHED
                if policy.pending_changes.is_deletion:
                    deleting = True
                else:
                    content = self.validator.merge(policy, policy.pending_changes)
                    for name in PolicyContent.model_fields:
                        setattr(policy, name, getattr(content, name))
                    self._clear_pending(policy)
                events.append({
                    "event_type": EventType.POLICY_DELETED if deleting else EventType.CHANGE_APPLIED,
                    "payload": {"policy_name": policy.name},
                    "policy_id": policy_id,
                })
            self._audit(events)

        with self.repository.locked():
            policy = self.repository.update(policy_id, apply)
            if deleting:
                self.repository.remove(policy_id)

        if outcome == ApprovalOutcome.DUPLICATE:
            logger.info(f"Policy #{policy_id}: {approver} already approved the pending change")
            return ChangeApprovalResult(
                policy=policy,
                outcome=outcome,
                remaining=self._remaining(policy),
                message=f"{approver} has already approved this change",
            )

        if outcome == ApprovalOutcome.QUORUM_REACHED:
            result = "deleted" if deleting else "applied"
            logger.info(f"Policy #{policy_id} change approved by {approver}: quorum reached, {result}")
        else:
            logger.info(f"Policy #{policy_id} change approved by {approver} ({policy.change_progress})")
        return ChangeApprovalResult(
            policy=policy,
            outcome=outcome,
            deleted=deleting,
            remaining=0 if outcome == ApprovalOutcome.QUORUM_REACHED else self._remaining(policy),
            message=self._message(policy, outcome, deleting),
        )

    def cancel_change(self, policy_id: int, canceler: str) -> Policy:
        """
        Discard a pending change and return the policy to active.

        Raises:
            NotFoundError: Unknown policy
            InvalidStateError: Nothing pending on the policy
            ValidationError: Canceler not allowed (enforce_approvers only)
        """

        def apply(policy: Policy) -> None:
            if policy.status != PolicyStatus.PENDING_APPROVAL:
                raise InvalidStateError(f"Policy {policy_id} has no pending change")
            if self.enforce_approvers and canceler != policy.change_initiator \
                    and canceler not in policy.change_approvers_list:
                raise ValidationError(
                    f"{canceler} is not authorized to cancel changes to this policy",
                    field="canceler",
                )
            discarded: Dict[str, Any] = {}
            if policy.pending_changes is not None:
                discarded.update(
                    policy.pending_changes.changed_fields(),
                    is_deletion=policy.pending_changes.is_deletion,
                )
            self._clear_pending(policy)
            self._audit([{
                "event_type": EventType.CHANGE_CANCELLED,
                "payload": {"policy_name": policy.name, "changes": discarded},
                "actor": canceler,
                "policy_id": policy_id,
            }])

        policy = self.repository.update(policy_id, apply)

        logger.info(f"Policy #{policy_id} pending change cancelled by {canceler}")
        return policy

    def _check_signer(self, policy: Policy, approver: str) -> None:
        if approver not in policy.change_approvers_list:
            raise ValidationError(
                f"{approver} is not authorized to approve changes to this policy",
                field="approver",
            )
        if approver == policy.change_initiator:
            raise ValidationError(
                f"{approver} initiated this change and cannot approve it",
                field="approver",
            )

    def _audit(self, events: List[Dict[str, Any]]) -> None:
        """Write ledger entries; raising here aborts the surrounding update."""
        if self.ledger:
            self.ledger.log_events(events)

    @staticmethod
    def _clear_pending(policy: Policy) -> None:
        policy.status = PolicyStatus.ACTIVE
        policy.pending_changes = None
        policy.change_approvers = []
        policy.change_approval_log = []
        policy.change_initiator = None

    @staticmethod
    def _remaining(policy: Policy) -> int:
        return max(0, policy.change_approvals_required - len(policy.change_approvers))

    @staticmethod
    def _message(policy: Policy, outcome: ApprovalOutcome, deleting: bool) -> str:
        if outcome != ApprovalOutcome.QUORUM_REACHED:
            return policy.change_progress
        return "Policy deleted" if deleting else "Change applied"
