"""Policy module for VaultGate: repository, matcher and decision engine."""

from vaultgate.policy.repository import PolicyRepository
from vaultgate.policy.matcher import ConditionMatcher
from vaultgate.policy.engine import PolicyDecisionEngine, NO_MATCH_REASON

__all__ = [
    "PolicyRepository",
    "ConditionMatcher",
    "PolicyDecisionEngine",
    "NO_MATCH_REASON",
]
