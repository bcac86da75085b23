"""Integration tests for VaultGateService."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from vaultgate.config import VaultGateSettings
from vaultgate.directory import demo_directory
from vaultgate.errors import InternalError, InvalidStateError, ValidationError
from vaultgate.ledger import EventType
from vaultgate.schema import PolicyAction, PolicyStatus, TransactionStatus
from vaultgate.service import VaultGateService


LARGE_TRANSFERS = {
    "name": "Large transfers",
    "action": "require_approval",
    "amount": {"condition": "above", "min": "10000"},
    "approvers": ["Meir", "Lena"],
    "quorum_required": 2,
    "change_approvers_list": ["Meir", "Ishai", "Lena"],
    "change_approvals_required": 2,
}

TRANSFER = {
    "initiator": "Omer",
    "source_wallet": "Treasury",
    "destination": "0xDef01a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F",
    "destination_is_internal": False,
    "amount_usd": "15000",
    "asset": "ETH",
}


class TestTransferAuthorization:
    """End-to-end: simulate, open a transaction, reach quorum."""

    def setup_method(self):
        self.service = VaultGateService(directory=demo_directory())
        self.policy = self.service.create_policy(LARGE_TRANSFERS, creator="Meir")

    def test_two_of_two_quorum(self):
        """A large ETH transfer needs Meir and Lena; a repeat signature counts once."""
        decision = self.service.simulate(TRANSFER)
        assert decision.action == PolicyAction.REQUIRE_APPROVAL
        assert decision.matched_policy.id == self.policy.id

        decision, transaction = self.service.authorize_transfer(TRANSFER, "5")
        assert transaction.status == TransactionStatus.PENDING
        assert transaction.quorum_required == 2

        transaction = self.service.approve_transaction(transaction.id, "Meir")
        assert transaction.status == TransactionStatus.PENDING

        transaction = self.service.approve_transaction(transaction.id, "Lena")
        assert transaction.status == TransactionStatus.COMPLETED

        with pytest.raises(InvalidStateError):
            self.service.approve_transaction(transaction.id, "Meir")
        assert len(self.service.get_transaction(transaction.id).approvals) == 2

    def test_simulate_writes_nothing(self):
        entries_before = self.service.ledger.get_entry_count()

        self.service.simulate(TRANSFER)

        assert self.service.list_transactions() == []
        assert self.service.ledger.get_entry_count() == entries_before

    def test_allowed_transfer_opens_no_transaction(self):
        decision, transaction = self.service.authorize_transfer(
            dict(TRANSFER, amount_usd="500"), "0.1"
        )
        assert decision.is_allowed
        assert transaction is None

    def test_concurrent_approvals_never_exceed_quorum(self):
        """Parallel signers cannot push a transaction past its quorum."""
        _, transaction = self.service.authorize_transfer(TRANSFER, "5")
        approvers = [f"signer-{i}" for i in range(12)]

        def approve(name):
            try:
                return self.service.approve_transaction_detailed(transaction.id, name).outcome
            except InvalidStateError:
                return None

        with ThreadPoolExecutor(max_workers=6) as pool:
            outcomes = list(pool.map(approve, approvers))

        final = self.service.get_transaction(transaction.id)
        assert final.status == TransactionStatus.COMPLETED
        assert len(final.approvals) == 2
        assert sum(1 for o in outcomes if o is not None) == 2

    def test_pending_edit_does_not_change_live_rules(self):
        """Simulations keep using the live policy while an edit is pending."""
        self.service.submit_policy_change(
            self.policy.id, {"amount": {"condition": "above", "min": "50000"}}, "Omer"
        )
        assert self.service.simulate(TRANSFER).requires_approval

        self.service.approve_policy_change(self.policy.id, "Meir")
        self.service.approve_policy_change(self.policy.id, "Ishai")

        assert self.service.simulate(TRANSFER).is_allowed

    def test_quorum_frozen_when_policy_changes(self):
        _, transaction = self.service.authorize_transfer(TRANSFER, "5")

        self.service.submit_policy_change(
            self.policy.id,
            {"approvers": ["Meir", "Lena", "Ishai"], "quorum_required": 3},
            "Omer",
        )
        self.service.approve_policy_change(self.policy.id, "Meir")
        self.service.approve_policy_change(self.policy.id, "Lena")

        self.service.approve_transaction(transaction.id, "Meir")
        transaction = self.service.approve_transaction(transaction.id, "Lena")
        assert transaction.status == TransactionStatus.COMPLETED


class TestPolicyGovernance:
    """Creation, deletion, ordering and history."""

    def setup_method(self):
        self.service = VaultGateService()
        self.allow = self.service.create_policy({
            "name": "Internal allowed",
            "action": "allow",
            "destination": {"type": "internal"},
            "change_approvers_list": ["Meir"],
        })
        self.deny = self.service.create_policy({
            "name": "Block USDT",
            "action": "deny",
            "asset": {"type": "specific", "values": ["USDT"]},
            "change_approvers_list": ["Meir"],
        })
        self.approval = self.service.create_policy(LARGE_TRANSFERS)

    def test_restrictive_order(self):
        """deny, then require_approval, then allow."""
        policies = self.service.apply_restrictive_order(actor="Meir")

        assert [p.id for p in policies] == [self.deny.id, self.approval.id, self.allow.id]
        assert [p.priority for p in policies] == [1, 2, 3]

    def test_reorder_rejects_non_integers(self):
        with pytest.raises(ValidationError) as exc_info:
            self.service.reorder_policies(["1", "2", "3"])
        assert exc_info.value.field == "orderedIds"

    def test_draft_is_deleted_directly(self):
        draft = self.service.create_policy({
            "name": "Draft rule",
            "action": "deny",
            "status": "draft",
            "change_approvers_list": ["Meir"],
        })

        self.service.request_policy_deletion(draft.id, "Meir")

        assert self.service.repository.find(draft.id) is None

    def test_live_policy_deletion_needs_approval(self):
        policy = self.service.request_policy_deletion(self.deny.id, "Omer")

        assert policy.status == PolicyStatus.PENDING_APPROVAL
        assert policy.is_pending_deletion

        result = self.service.approve_policy_change_detailed(self.deny.id, "Meir")
        assert result.deleted
        assert self.service.repository.find(self.deny.id) is None

    def test_toggle_is_direct(self):
        policy = self.service.toggle_policy(self.deny.id, actor="Meir")

        assert policy.is_active is False
        assert policy.status == PolicyStatus.ACTIVE

    def test_policy_history(self):
        self.service.toggle_policy(self.deny.id, actor="Meir")
        self.service.reorder_policies([self.approval.id, self.deny.id, self.allow.id])

        history = self.service.policy_history()

        assert history[0].event_type == EventType.POLICIES_REORDERED
        assert history[1].event_type == EventType.POLICY_TOGGLED
        assert history[1].actor == "Meir"
        assert self.service.ledger.validate_chain().is_valid

    def test_ledger_failure_blocks_direct_mutations(self):
        """Create, toggle, reorder and draft deletion are not applied without their ledger entry."""
        draft = self.service.create_policy({
            "name": "Draft rule",
            "action": "deny",
            "status": "draft",
            "change_approvers_list": ["Meir"],
        })
        before = [(p.id, p.priority, p.is_active) for p in self.service.list_policies()]
        self.service.ledger.close()

        with pytest.raises(InternalError):
            self.service.create_policy(dict(LARGE_TRANSFERS, name="Another rule"))
        with pytest.raises(InternalError):
            self.service.toggle_policy(self.deny.id, actor="Meir")
        with pytest.raises(InternalError):
            self.service.reorder_policies([self.approval.id, self.deny.id, self.allow.id, draft.id])
        with pytest.raises(InternalError):
            self.service.request_policy_deletion(draft.id, "Meir")

        after = [(p.id, p.priority, p.is_active) for p in self.service.list_policies()]
        assert after == before


class TestDemoWorkspace:

    def test_from_settings_seeds_policies(self):
        service = VaultGateService.from_settings(VaultGateSettings(ledger_path=":memory:"))

        names = [p.name for p in service.list_policies()]

        assert names == [
            "Block USDT to external wallets",
            "Large transfers need approval",
            "Internal transfers auto-approved",
        ]

    def test_seeded_usdt_rule_denies(self):
        service = VaultGateService(directory=demo_directory())
        service.seed_demo_policies()

        decision = service.simulate(dict(TRANSFER, asset="USDT"))

        assert decision.is_denied
        assert decision.matched_policy.name == "Block USDT to external wallets"
