"""Condition Matcher - pure evaluation of one policy against one transfer.

Each condition group evaluates to a boolean on its own; the policy's
condition_logic then combines the groups that are set. Nothing here raises on
bad data: a group that cannot be evaluated (unparseable amount, unknown kind)
is a non-match for that group.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple

from vaultgate.schema.models import (
    AmountComparison,
    AmountCondition,
    AssetCondition,
    AssetType,
    ConditionLogic,
    DestinationCondition,
    DestinationType,
    InitiatorCondition,
    InitiatorType,
    Policy,
    SourceWalletCondition,
    SourceWalletType,
    TransferRequest,
)


logger = logging.getLogger(__name__)


def parse_decimal(raw: Optional[str]) -> Optional[Decimal]:
    """Parse a decimal string, returning None for anything unusable."""
    if raw is None:
        return None
    try:
        value = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        return None
    if not value.is_finite():
        return None
    return value


def match_initiator(cond: InitiatorCondition, request: TransferRequest) -> bool:
    checks: Dict[InitiatorType, Callable[[], bool]] = {
        InitiatorType.ANY: lambda: True,
        InitiatorType.USER: lambda: request.initiator in cond.values,
        InitiatorType.GROUP: lambda: any(g in cond.values for g in request.initiator_groups),
    }
    return checks[cond.type]()


def match_source_wallet(cond: SourceWalletCondition, request: TransferRequest) -> bool:
    checks: Dict[SourceWalletType, Callable[[], bool]] = {
        SourceWalletType.ANY: lambda: True,
        SourceWalletType.SPECIFIC: lambda: request.source_wallet in cond.wallets,
    }
    return checks[cond.type]()


def match_destination(cond: DestinationCondition, request: TransferRequest) -> bool:
    checks: Dict[DestinationType, Callable[[], bool]] = {
        DestinationType.ANY: lambda: True,
        DestinationType.INTERNAL: lambda: request.destination_is_internal,
        DestinationType.EXTERNAL: lambda: not request.destination_is_internal,
        DestinationType.WHITELIST: lambda: request.destination in cond.values,
    }
    return checks[cond.type]()


def match_amount(cond: AmountCondition, request: TransferRequest) -> bool:
    if cond.condition == AmountComparison.ANY:
        return True

    amount = parse_decimal(request.amount_usd)
    if amount is None:
        return False

    low = parse_decimal(cond.min)
    high = parse_decimal(cond.max)

    if cond.condition == AmountComparison.ABOVE:
        return low is not None and amount > low
    if cond.condition == AmountComparison.BELOW:
        # A single threshold may be stored in either bound
        threshold = high if cond.max not in (None, "") else low
        return threshold is not None and amount < threshold
    if cond.condition == AmountComparison.BETWEEN:
        return low is not None and high is not None and low <= amount <= high
    return False


def match_asset(cond: AssetCondition, request: TransferRequest) -> bool:
    checks: Dict[AssetType, Callable[[], bool]] = {
        AssetType.ANY: lambda: True,
        AssetType.SPECIFIC: lambda: request.asset.casefold() in {
            v.casefold() for v in cond.values
        },
    }
    return checks[cond.type]()


class ConditionMatcher:
    """
    Evaluates a policy's trigger conditions against a transfer request.

    Stateless and side-effect free; safe to share between threads.
    """

    GROUPS: Tuple[Tuple[str, Callable], ...] = (
        ("initiator", match_initiator),
        ("source_wallet", match_source_wallet),
        ("destination", match_destination),
        ("amount", match_amount),
        ("asset", match_asset),
    )

    def evaluate_groups(self, policy: Policy, request: TransferRequest) -> Dict[str, bool]:
        """Result per condition group that is set on the policy."""
        results: Dict[str, bool] = {}
        for name, check in self.GROUPS:
            cond = getattr(policy, name, None)
            if cond is None:
                continue
            try:
                results[name] = bool(check(cond, request))
            except (KeyError, AttributeError, TypeError, ValueError, ArithmeticError) as e:
                logger.warning(f"Policy #{policy.id} {name} condition unreadable, treating as non-match: {e}")
                results[name] = False
        return results

    def matches(self, policy: Policy, request: TransferRequest) -> bool:
        """
        Check whether a policy's conditions hold for a request.

        Args:
            policy: Policy to evaluate
            request: Proposed transfer

        Returns:
            True if the policy triggers. A policy with no condition groups
            set always triggers.
        """
        results: List[bool] = list(self.evaluate_groups(policy, request).values())
        if not results:
            return True
        if policy.condition_logic == ConditionLogic.OR:
            return any(results)
        return all(results)
