"""Tests for the Condition Matcher."""

import pytest

from vaultgate.policy import ConditionMatcher
from vaultgate.schema import Policy, TransferRequest


def make_policy(**fields) -> Policy:
    base = {
        "id": 1,
        "priority": 1,
        "name": "test policy",
        "action": "deny",
        "change_approvers_list": ["Meir"],
    }
    base.update(fields)
    return Policy(**base)


def make_request(**fields) -> TransferRequest:
    base = {
        "initiator": "Meir",
        "initiator_groups": ["admins"],
        "source_wallet": "Treasury",
        "destination": "0xDef01a2B3c4D5e6F7a8B9c0D1e2F3a4B5c6D7E8F",
        "destination_is_internal": False,
        "amount_usd": "15000",
        "asset": "ETH",
    }
    base.update(fields)
    return TransferRequest(**base)


class TestConditionGroups:
    """Each condition group on its own."""

    def setup_method(self):
        self.matcher = ConditionMatcher()

    def test_no_groups_matches_unconditionally(self):
        """A policy with no condition groups matches every request."""
        assert self.matcher.matches(make_policy(), make_request())

    def test_any_groups_match(self):
        """Groups set to 'any' are satisfied."""
        policy = make_policy(
            initiator={"type": "any"},
            source_wallet={"type": "any"},
            destination={"type": "any"},
            amount={"condition": "any"},
            asset={"type": "any"},
        )
        assert self.matcher.matches(policy, make_request())

    def test_initiator_user(self):
        """User initiator matches on the request initiator name."""
        policy = make_policy(initiator={"type": "user", "values": ["Lena"]})
        assert not self.matcher.matches(policy, make_request())
        assert self.matcher.matches(policy, make_request(initiator="Lena"))

    def test_initiator_group(self):
        """Group initiator matches if any of the request's groups is listed."""
        policy = make_policy(initiator={"type": "group", "values": ["finance"]})
        assert not self.matcher.matches(policy, make_request())
        assert self.matcher.matches(policy, make_request(initiator_groups=["ops", "finance"]))

    def test_source_wallet_specific(self):
        policy = make_policy(source_wallet={"type": "specific", "wallets": ["Finances"]})
        assert not self.matcher.matches(policy, make_request())
        assert self.matcher.matches(policy, make_request(source_wallet="Finances"))

    def test_destination_internal_uses_caller_flag(self):
        """internal/external come from destination_is_internal, not the address."""
        internal = make_policy(destination={"type": "internal"})
        external = make_policy(destination={"type": "external"})
        request = make_request(destination_is_internal=True)

        assert self.matcher.matches(internal, request)
        assert not self.matcher.matches(external, request)
        assert self.matcher.matches(external, make_request())

    def test_destination_whitelist(self):
        policy = make_policy(destination={"type": "whitelist", "values": ["0xabc"]})
        assert self.matcher.matches(policy, make_request(destination="0xabc"))
        assert not self.matcher.matches(policy, make_request(destination="0xdef"))

    def test_asset_specific_is_case_insensitive(self):
        policy = make_policy(asset={"type": "specific", "values": ["usdt"]})
        assert self.matcher.matches(policy, make_request(asset="USDT"))
        assert not self.matcher.matches(policy, make_request(asset="ETH"))


class TestAmountCondition:
    """Decimal threshold comparisons."""

    def setup_method(self):
        self.matcher = ConditionMatcher()

    def test_above_is_strict(self):
        policy = make_policy(amount={"condition": "above", "min": "10000"})
        assert self.matcher.matches(policy, make_request(amount_usd="10000.01"))
        assert not self.matcher.matches(policy, make_request(amount_usd="10000"))

    def test_below_uses_max(self):
        policy = make_policy(amount={"condition": "below", "max": "500"})
        assert self.matcher.matches(policy, make_request(amount_usd="499.99"))
        assert not self.matcher.matches(policy, make_request(amount_usd="500"))

    def test_below_falls_back_to_min(self):
        """A single threshold stored in min still works for 'below'."""
        policy = make_policy(amount={"condition": "below", "min": "500"})
        assert self.matcher.matches(policy, make_request(amount_usd="100"))

    @pytest.mark.parametrize("amount,expected", [
        ("999.99", False),
        ("1000", True),
        ("2500", True),
        ("5000", True),
        ("5000.01", False),
    ])
    def test_between_is_inclusive(self, amount, expected):
        policy = make_policy(amount={"condition": "between", "min": "1000", "max": "5000"})
        assert self.matcher.matches(policy, make_request(amount_usd=amount)) is expected

    def test_decimal_precision(self):
        """String decimals avoid binary float drift at the threshold."""
        policy = make_policy(amount={"condition": "above", "min": "0.3"})
        assert not self.matcher.matches(policy, make_request(amount_usd="0.30"))
        assert self.matcher.matches(policy, make_request(amount_usd="0.30000000000000001"))

    def test_numeric_request_amount_is_coerced(self):
        request = make_request(amount_usd=15000)
        assert request.amount_usd == "15000"

    def test_malformed_threshold_fails_closed(self):
        """An unparseable bound is a non-match, never an exception."""
        policy = make_policy(amount={"condition": "above", "min": "ten thousand"})
        assert self.matcher.matches(policy, make_request()) is False

    def test_malformed_request_amount_fails_closed(self):
        policy = make_policy(amount={"condition": "above", "min": "10"})
        assert self.matcher.matches(policy, make_request(amount_usd="lots")) is False

    def test_missing_bound_fails_closed(self):
        policy = make_policy(amount={"condition": "between", "min": "10"})
        assert self.matcher.matches(policy, make_request()) is False

    def test_non_finite_fails_closed(self):
        policy = make_policy(amount={"condition": "above", "min": "NaN"})
        assert self.matcher.matches(policy, make_request()) is False


class TestConditionLogic:
    """AND / OR combination of present groups."""

    def setup_method(self):
        self.matcher = ConditionMatcher()
        self.groups = {
            "asset": {"type": "specific", "values": ["ETH"]},
            "amount": {"condition": "above", "min": "50000"},
        }

    def test_and_requires_all(self):
        policy = make_policy(condition_logic="AND", **self.groups)
        assert not self.matcher.matches(policy, make_request())
        assert self.matcher.matches(policy, make_request(amount_usd="60000"))

    def test_or_requires_one(self):
        policy = make_policy(condition_logic="OR", **self.groups)
        assert self.matcher.matches(policy, make_request())
        assert not self.matcher.matches(policy, make_request(asset="BTC"))

    def test_or_with_any_group_always_matches(self):
        """A group set to 'any' counts as a true term under OR."""
        policy = make_policy(
            condition_logic="OR",
            asset={"type": "specific", "values": ["BTC"]},
            destination={"type": "any"},
        )
        assert self.matcher.matches(policy, make_request())

    def test_or_with_corrupt_group_uses_remaining_groups(self):
        """One corrupt group does not abort evaluation of the others."""
        policy = make_policy(
            condition_logic="OR",
            amount={"condition": "above", "min": "garbage"},
            asset={"type": "specific", "values": ["ETH"]},
        )
        assert self.matcher.matches(policy, make_request())

    def test_evaluate_groups_reports_only_present_groups(self):
        policy = make_policy(asset={"type": "specific", "values": ["ETH"]})
        assert self.matcher.evaluate_groups(policy, make_request()) == {"asset": True}
