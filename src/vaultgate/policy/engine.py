"""Policy Decision Engine - First-match-wins transfer evaluation.

The engine walks the active policies in (priority, id) order and returns the
verdict of the first one whose conditions match. When nothing matches the
transfer is ALLOWED: this is a deliberately permissive default, not a safety
default. Workspaces that want default-deny add a lowest-priority deny policy
with no conditions.
"""

import logging
from typing import Iterable, Optional

from vaultgate.policy.matcher import ConditionMatcher
from vaultgate.policy.repository import PolicyRepository
from vaultgate.schema.models import Decision, Policy, PolicyAction, TransferRequest


logger = logging.getLogger(__name__)

NO_MATCH_REASON = "No matching policy: transfer allowed by default"


class PolicyDecisionEngine:
    """
    Deterministic decision engine.

    simulate() never writes anything: it does not create transactions and it
    does not touch the audit ledger. Identical requests against an identical
    active policy set always produce identical decisions.
    """

    def __init__(
        self,
        repository: PolicyRepository,
        matcher: Optional[ConditionMatcher] = None,
    ):
        self.repository = repository
        self.matcher = matcher or ConditionMatcher()

    def simulate(self, request: TransferRequest) -> Decision:
        """
        Evaluate a transfer against the current policy set.

        Args:
            request: Proposed transfer

        Returns:
            Decision with the verdict, the matched policy (if any) and a reason
            naming both
        """
        return self.evaluate(self.repository.list(), request)

    def evaluate(self, policies: Iterable[Policy], request: TransferRequest) -> Decision:
        """Evaluate against an explicit policy snapshot."""
        candidates = sorted(
            (p for p in policies if p.is_active),
            key=lambda p: (p.priority, p.id),
        )

        for policy in candidates:
            if self.matcher.matches(policy, request):
                decision = Decision(
                    action=policy.action,
                    matched_policy=policy,
                    reason=self._reason(policy),
                )
                logger.info(
                    f"Transfer matched policy #{policy.id} {policy.name!r}: {policy.action.value}"
                )
                return decision

        logger.info(f"No policy matched ({len(candidates)} active): allow")
        return Decision(action=PolicyAction.ALLOW, matched_policy=None, reason=NO_MATCH_REASON)

    @staticmethod
    def _reason(policy: Policy) -> str:
        verdict = policy.action.value.replace("_", " ")
        if policy.action == PolicyAction.REQUIRE_APPROVAL:
            verdict += f" ({policy.quorum_required} approval(s) required)"
        return f"Matched policy \"{policy.name}\" (#{policy.id}, priority {policy.priority}): {verdict}"
