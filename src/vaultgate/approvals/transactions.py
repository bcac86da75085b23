"""Transaction Approval Lifecycle - multi-party sign-off for transfers.

State machine per transaction::

    pending --(approvals reach quorum)--> completed
    pending --(fail)--------------------> failed

Approvers are display identities matched by string. Nothing checks that an
approver is on the matched policy's approvers list; that is a known hardening
gap, kept so the observable behavior stays the same.
"""

import logging
import threading
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional

from vaultgate.approvals.models import ApprovalOutcome, TransactionApprovalResult
from vaultgate.errors import InvalidStateError, NotFoundError, ValidationError
from vaultgate.ledger import AuditLedger, EventType
from vaultgate.policy.matcher import parse_decimal
from vaultgate.schema.models import (
    ApprovalRecord,
    Policy,
    PolicyAction,
    Transaction,
    TransactionStatus,
)


logger = logging.getLogger(__name__)


class TransactionStore:
    """In-memory transaction store with atomic per-record updates."""

    def __init__(self):
        self._transactions: Dict[int, Transaction] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def add(self, build: Callable[[int], Transaction]) -> Transaction:
        """Assign the next id, build the record with it and store it."""
        with self._lock:
            transaction = build(self._next_id)
            self._transactions[transaction.id] = transaction
            self._next_id += 1
            return transaction.model_copy(deep=True)

    def get(self, transaction_id: int) -> Transaction:
        with self._lock:
            transaction = self._transactions.get(transaction_id)
            if transaction is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            return transaction.model_copy(deep=True)

    def list(self) -> List[Transaction]:
        """All transactions, newest first."""
        with self._lock:
            ordered = sorted(self._transactions.values(), key=lambda t: t.id, reverse=True)
            return [t.model_copy(deep=True) for t in ordered]

    def update(self, transaction_id: int, mutator: Callable[[Transaction], None]) -> Transaction:
        """Apply mutator to a private copy; store it only if it did not raise."""
        with self._lock:
            current = self._transactions.get(transaction_id)
            if current is None:
                raise NotFoundError(f"Transaction not found: {transaction_id}")
            working = current.model_copy(deep=True)
            mutator(working)
            self._transactions[transaction_id] = working
            return working.model_copy(deep=True)


class TransactionApprovalLifecycle:
    """
    Drives transactions from pending to completed once enough distinct
    approvers have signed.

    quorum_required is copied from the matched policy when the transaction is
    created and never re-read, so later policy edits do not change the rules a
    pending transfer is held to.
    """

    def __init__(
        self,
        store: Optional[TransactionStore] = None,
        ledger: Optional[AuditLedger] = None,
    ):
        self.store = store or TransactionStore()
        self.ledger = ledger

    def create(
        self,
        amount: str,
        asset: str,
        initiator: str,
        matched_policy: Optional[Policy],
    ) -> Transaction:
        """
        Create a pending transaction for a require_approval decision.

        Args:
            amount: Decimal amount of the asset being moved
            asset: Asset symbol, e.g. "ETH"
            initiator: Who requested the transfer
            matched_policy: Policy from the Decision that required approval

        Returns:
            The pending Transaction

        Raises:
            ValidationError: If the policy does not require approval or the
                amount is not a decimal
        """
        if matched_policy is None or matched_policy.action != PolicyAction.REQUIRE_APPROVAL:
            raise ValidationError(
                "Transactions are only created for require_approval decisions",
                field="matched_policy",
            )
        value = parse_decimal(str(amount))
        if value is None or value <= 0:
            raise ValidationError(f"Invalid amount: {amount!r}", field="amount")
        if not asset:
            raise ValidationError("Asset is required", field="asset")
        if not initiator:
            raise ValidationError("Initiator is required", field="initiator")

        def build(tx_id: int) -> Transaction:
            transaction = Transaction(
                id=tx_id,
                user_id=initiator,
                amount=f"{amount} {asset}",
                policy_id=matched_policy.id,
                quorum_required=matched_policy.quorum_required,
            )
            self._audit([{
                "event_type": EventType.TRANSACTION_CREATED,
                "payload": {
                    "amount": transaction.amount,
                    "quorum_required": transaction.quorum_required,
                },
                "actor": initiator,
                "policy_id": matched_policy.id,
                "transaction_id": tx_id,
            }])
            return transaction

        transaction = self.store.add(build)

        logger.info(
            f"Transaction #{transaction.id} created: {transaction.amount} by {initiator} "
            f"(policy #{matched_policy.id}, quorum {transaction.quorum_required})"
        )
        return transaction

    def approve(self, transaction_id: int, approver: str) -> TransactionApprovalResult:
        """
        Record one approval.

        The ledger entries are written before the new state is stored, so a
        failed ledger write leaves the transaction as it was.

        Args:
            transaction_id: Transaction to approve
            approver: Display identity of the signer

        Returns:
            TransactionApprovalResult. A repeat approval by the same identity
            is reported as DUPLICATE and changes nothing.

        Raises:
            NotFoundError: Unknown transaction
            InvalidStateError: Transaction is no longer pending
            InternalError: The ledger write failed
        """
        if not approver:
            raise ValidationError("Approver is required", field="approver")

        outcome = ApprovalOutcome.RECORDED

        def apply(transaction: Transaction) -> None:
            nonlocal outcome
            if transaction.status != TransactionStatus.PENDING:
                raise InvalidStateError(
                    f"Transaction {transaction_id} is {transaction.status.value}, not pending"
                )
            if approver in transaction.approvals:
                outcome = ApprovalOutcome.DUPLICATE
                return

            transaction.approvals.append(approver)
            transaction.approval_log.append(ApprovalRecord(approver=approver))
            events = [{
                "event_type": EventType.TRANSACTION_APPROVED,
                "payload": {"approvals": list(transaction.approvals)},
                "actor": approver,
                "policy_id": transaction.policy_id,
                "transaction_id": transaction_id,
            }]
            if len(transaction.approvals) >= transaction.quorum_required:
                transaction.status = TransactionStatus.COMPLETED
                transaction.completed_at = datetime.now(UTC)
                outcome = ApprovalOutcome.QUORUM_REACHED
                events.append({
                    "event_type": EventType.TRANSACTION_COMPLETED,
                    "payload": {"approvals": list(transaction.approvals)},
                    "policy_id": transaction.policy_id,
                    "transaction_id": transaction_id,
                })
            self._audit(events)

        transaction = self.store.update(transaction_id, apply)

        if outcome == ApprovalOutcome.DUPLICATE:
            logger.info(f"Transaction #{transaction_id}: {approver} already approved")
        else:
            logger.info(
                f"Transaction #{transaction_id} approved by {approver} "
                f"({transaction.approval_progress})"
            )
        return TransactionApprovalResult(transaction=transaction, outcome=outcome)

    def fail(self, transaction_id: int, reason: str) -> Transaction:
        """Move a pending transaction to failed."""

        def apply(transaction: Transaction) -> None:
            if transaction.status != TransactionStatus.PENDING:
                raise InvalidStateError(
                    f"Transaction {transaction_id} is {transaction.status.value}, not pending"
                )
            transaction.status = TransactionStatus.FAILED
            transaction.failure_reason = reason
            self._audit([{
                "event_type": EventType.TRANSACTION_FAILED,
                "payload": {"reason": reason},
                "policy_id": transaction.policy_id,
                "transaction_id": transaction_id,
            }])

        transaction = self.store.update(transaction_id, apply)
        logger.warning(f"Transaction #{transaction_id} failed: {reason}")
        return transaction

    def get(self, transaction_id: int) -> Transaction:
        return self.store.get(transaction_id)

    def list(self) -> List[Transaction]:
        return self.store.list()

    def list_pending(self) -> List[Transaction]:
        return [t for t in self.store.list() if t.is_pending]

    def _audit(self, events: List[dict]) -> None:
        if self.ledger:
            self.ledger.log_events(events)
