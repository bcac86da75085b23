"""Policy Repository - ordered, lock-guarded policy collection."""

import logging
import threading
from typing import Callable, Dict, List, Optional

from vaultgate.errors import NotFoundError, ValidationError
from vaultgate.schema.models import Policy, PolicyCreate


logger = logging.getLogger(__name__)


class PolicyRepository:
    """
    In-memory policy store.

    Owns id assignment, priority ordering and the active flag. Every
    read-modify-write goes through update() under a single re-entrant lock,
    operating on a deep copy that is only stored when the mutator returns
    without raising. Callers never receive the stored instances.
    """

    def __init__(self):
        self._policies: Dict[int, Policy] = {}
        self._next_id = 1
        self._lock = threading.RLock()

    def add(
        self,
        payload: PolicyCreate,
        before_store: Optional[Callable[[Policy], None]] = None,
    ) -> Policy:
        """
        Store a validated create payload and return the new policy.

        before_store, if given, sees the built policy under the lock; raising
        from it aborts the add and no id is consumed.
        """
        with self._lock:
            priority = payload.priority
            if priority is None:
                priority = max((p.priority for p in self._policies.values()), default=0) + 1

            policy = Policy(
                **payload.model_dump(exclude={"priority"}),
                id=self._next_id,
                priority=priority,
            )
            if before_store:
                before_store(policy)
            self._policies[policy.id] = policy
            self._next_id += 1

        logger.info(f"Policy created: #{policy.id} {policy.name!r} (priority {policy.priority})")
        return policy.model_copy(deep=True)

    def get(self, policy_id: int) -> Policy:
        with self._lock:
            policy = self._policies.get(policy_id)
            if policy is None:
                raise NotFoundError(f"Policy not found: {policy_id}")
            return policy.model_copy(deep=True)

    def find(self, policy_id: int) -> Optional[Policy]:
        try:
            return self.get(policy_id)
        except NotFoundError:
            return None

    def list(self) -> List[Policy]:
        """All policies in evaluation order: (priority, id)."""
        with self._lock:
            ordered = sorted(self._policies.values(), key=lambda p: (p.priority, p.id))
            return [p.model_copy(deep=True) for p in ordered]

    def list_active(self) -> List[Policy]:
        return [p for p in self.list() if p.is_active]

    def locked(self):
        """The repository lock, for callers that must group several steps."""
        return self._lock

    def ids(self) -> List[int]:
        with self._lock:
            return list(self._policies)

    def update(self, policy_id: int, mutator: Callable[[Policy], None]) -> Policy:
        """
        Atomically apply a mutation to one policy.

        Args:
            policy_id: Policy to mutate
            mutator: Receives a private copy and mutates it in place. Raising
                aborts the update and leaves the stored policy untouched.

        Returns:
            Copy of the stored policy after the mutation
        """
        with self._lock:
            current = self._policies.get(policy_id)
            if current is None:
                raise NotFoundError(f"Policy not found: {policy_id}")
            working = current.model_copy(deep=True)
            mutator(working)
            self._policies[policy_id] = working
            return working.model_copy(deep=True)

    def remove(self, policy_id: int) -> Policy:
        with self._lock:
            policy = self._policies.pop(policy_id, None)
        if policy is None:
            raise NotFoundError(f"Policy not found: {policy_id}")
        logger.info(f"Policy removed: #{policy_id} {policy.name!r}")
        return policy

    def toggle(
        self,
        policy_id: int,
        before_store: Optional[Callable[[Policy], None]] = None,
    ) -> Policy:
        """Flip is_active. Direct and ungated."""
        def flip(policy: Policy) -> None:
            policy.is_active = not policy.is_active
            if before_store:
                before_store(policy)

        policy = self.update(policy_id, flip)
        logger.info(f"Policy #{policy_id} is_active -> {policy.is_active}")
        return policy

    def reorder(
        self,
        ordered_ids: List[int],
        before_store: Optional[Callable[[List[int]], None]] = None,
    ) -> List[Policy]:
        """
        Reassign priorities 1..n following ordered_ids.

        All-or-nothing: the list must contain exactly the current ids, each
        once, or no priority is touched. before_store runs after validation
        and before any priority changes; raising from it aborts the reorder.

        Raises:
            ValidationError: If ordered_ids is not a permutation of the current ids
        """
        with self._lock:
            if len(set(ordered_ids)) != len(ordered_ids):
                raise ValidationError("orderedIds contains duplicates", field="orderedIds")

            current = set(self._policies)
            requested = set(ordered_ids)
            if requested != current:
                missing = sorted(current - requested)
                unknown = sorted(requested - current)
                raise ValidationError(
                    f"orderedIds must list every policy exactly once "
                    f"(missing: {missing}, unknown: {unknown})",
                    field="orderedIds",
                )

            if before_store:
                before_store(ordered_ids)

            for index, policy_id in enumerate(ordered_ids, start=1):
                self._policies[policy_id].priority = index

            result = self.list()

        logger.info(f"Policies reordered: {ordered_ids}")
        return result
