"""Tests for the Transaction Approval Lifecycle."""

import pytest

from vaultgate.approvals import ApprovalOutcome, TransactionApprovalLifecycle
from vaultgate.errors import InternalError, InvalidStateError, NotFoundError, ValidationError
from vaultgate.ledger import AuditLedger, EventType
from vaultgate.schema import Policy, TransactionStatus


def make_policy(**fields) -> Policy:
    base = {
        "id": 7,
        "priority": 1,
        "name": "Large transfers",
        "action": "require_approval",
        "amount": {"condition": "above", "min": "10000"},
        "approvers": ["Meir", "Lena"],
        "quorum_required": 2,
        "change_approvers_list": ["Meir"],
    }
    base.update(fields)
    return Policy(**base)


class TestTransactionCreation:
    """Creating pending transactions."""

    def setup_method(self):
        self.lifecycle = TransactionApprovalLifecycle()

    def test_create_freezes_quorum(self):
        policy = make_policy()
        transaction = self.lifecycle.create("0.5", "ETH", "Omer", policy)

        assert transaction.status == TransactionStatus.PENDING
        assert transaction.amount == "0.5 ETH"
        assert transaction.user_id == "Omer"
        assert transaction.policy_id == policy.id
        assert transaction.quorum_required == 2
        assert transaction.approvals == []

    def test_ids_increase(self):
        first = self.lifecycle.create("1", "ETH", "Omer", make_policy())
        second = self.lifecycle.create("2", "ETH", "Omer", make_policy())
        assert second.id == first.id + 1
        assert [t.id for t in self.lifecycle.list()] == [second.id, first.id]

    def test_rejects_non_approval_policy(self):
        with pytest.raises(ValidationError):
            self.lifecycle.create("1", "ETH", "Omer", make_policy(action="allow"))
        with pytest.raises(ValidationError):
            self.lifecycle.create("1", "ETH", "Omer", None)

    @pytest.mark.parametrize("amount", ["", "abc", "0", "-1", "NaN"])
    def test_rejects_invalid_amount(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            self.lifecycle.create(amount, "ETH", "Omer", make_policy())
        assert exc_info.value.field == "amount"


class TestTransactionApproval:
    """Quorum counting."""

    def setup_method(self):
        self.ledger = AuditLedger()
        self.lifecycle = TransactionApprovalLifecycle(ledger=self.ledger)
        self.policy = make_policy()
        self.transaction = self.lifecycle.create("15000", "USDC", "Omer", self.policy)

    def teardown_method(self):
        self.ledger.close()

    def test_completes_at_quorum(self):
        """Meir then Lena complete a 2-of-2 transaction."""
        first = self.lifecycle.approve(self.transaction.id, "Meir")
        assert first.outcome == ApprovalOutcome.RECORDED
        assert first.transaction.status == TransactionStatus.PENDING
        assert first.transaction.approval_progress == "1/2"

        second = self.lifecycle.approve(self.transaction.id, "Lena")
        assert second.outcome == ApprovalOutcome.QUORUM_REACHED
        assert second.transaction.status == TransactionStatus.COMPLETED
        assert second.transaction.completed_at is not None
        assert second.transaction.approvals == ["Meir", "Lena"]

    def test_duplicate_approval_is_a_no_op(self):
        """The same approver signing twice counts once."""
        self.lifecycle.approve(self.transaction.id, "Meir")
        result = self.lifecycle.approve(self.transaction.id, "Meir")

        assert result.is_duplicate
        assert result.transaction.approvals == ["Meir"]
        assert result.transaction.status == TransactionStatus.PENDING

    def test_approvals_never_exceed_quorum(self):
        """Once completed, further approvals are rejected."""
        self.lifecycle.approve(self.transaction.id, "Meir")
        self.lifecycle.approve(self.transaction.id, "Lena")

        with pytest.raises(InvalidStateError):
            self.lifecycle.approve(self.transaction.id, "Ishai")

        transaction = self.lifecycle.get(self.transaction.id)
        assert len(transaction.approvals) == transaction.quorum_required

    def test_quorum_is_not_reread_from_policy(self):
        """Raising the policy quorum later does not affect the transaction."""
        self.policy.quorum_required = 5
        result = self.lifecycle.approve(self.transaction.id, "Meir")
        result = self.lifecycle.approve(self.transaction.id, "Lena")
        assert result.transaction.status == TransactionStatus.COMPLETED

    def test_fail_pending(self):
        transaction = self.lifecycle.fail(self.transaction.id, "Rejected by compliance")

        assert transaction.status == TransactionStatus.FAILED
        assert transaction.failure_reason == "Rejected by compliance"
        assert self.lifecycle.list_pending() == []

    def test_fail_completed_raises(self):
        self.lifecycle.approve(self.transaction.id, "Meir")
        self.lifecycle.approve(self.transaction.id, "Lena")
        with pytest.raises(InvalidStateError):
            self.lifecycle.fail(self.transaction.id, "too late")

    def test_approve_failed_raises(self):
        self.lifecycle.fail(self.transaction.id, "cancelled")
        with pytest.raises(InvalidStateError):
            self.lifecycle.approve(self.transaction.id, "Meir")

    def test_unknown_transaction(self):
        with pytest.raises(NotFoundError):
            self.lifecycle.approve(999, "Meir")
        with pytest.raises(NotFoundError):
            self.lifecycle.get(999)

    def test_empty_approver_rejected(self):
        with pytest.raises(ValidationError):
            self.lifecycle.approve(self.transaction.id, "")

    def test_ledger_records_lifecycle(self):
        self.lifecycle.approve(self.transaction.id, "Meir")
        self.lifecycle.approve(self.transaction.id, "Meir")
        self.lifecycle.approve(self.transaction.id, "Lena")

        events = [e.event_type for e in self.ledger.get_entries_by_transaction(self.transaction.id)]
        assert events == [
            EventType.TRANSACTION_CREATED,
            EventType.TRANSACTION_APPROVED,
            EventType.TRANSACTION_APPROVED,
            EventType.TRANSACTION_COMPLETED,
        ]
        assert self.ledger.validate_chain().is_valid

    def test_ledger_failure_leaves_approval_unapplied(self):
        """A quorum-reaching approval whose ledger write fails is not stored."""
        self.lifecycle.approve(self.transaction.id, "Meir")
        self.ledger.close()

        with pytest.raises(InternalError):
            self.lifecycle.approve(self.transaction.id, "Lena")

        transaction = self.lifecycle.get(self.transaction.id)
        assert transaction.status == TransactionStatus.PENDING
        assert transaction.approvals == ["Meir"]
        assert transaction.completed_at is None

    def test_ledger_failure_leaves_fail_unapplied(self):
        self.ledger.close()

        with pytest.raises(InternalError):
            self.lifecycle.fail(self.transaction.id, "Rejected by compliance")

        assert self.lifecycle.get(self.transaction.id).status == TransactionStatus.PENDING

    def test_ledger_failure_stores_no_transaction(self):
        self.ledger.close()

        with pytest.raises(InternalError):
            self.lifecycle.create("1", "ETH", "Omer", self.policy)

        assert [t.id for t in self.lifecycle.list()] == [self.transaction.id]
