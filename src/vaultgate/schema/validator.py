"""
Policy Validator

Enforces strict schema validation on everything that would become part of the
live policy set: create payloads, change diffs and the result of merging a
diff into a policy. Evaluation itself is lenient and fails closed; this is the
place where malformed input is rejected loudly, with the offending field name.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional, Type, TypeVar, Union

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from vaultgate.directory import Directory
from vaultgate.errors import NotFoundError, ValidationError
from vaultgate.schema.models import (
    AmountComparison,
    AmountCondition,
    Policy,
    PolicyAction,
    PolicyContent,
    PolicyCreate,
    PolicyDiff,
    SourceWalletType,
    TransferRequest,
)


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class PolicyValidator:
    """
    Policy Validator

    Prevents:
    - Out-of-enum actions, statuses and condition kinds
    - Quorums larger than their approver lists
    - Unparseable amount thresholds
    - Unknown approvers or wallets (only when a directory is injected)
    """

    def __init__(self, directory: Optional[Directory] = None):
        self.directory = directory

    def validate_create(self, data: Union[str, Dict[str, Any], PolicyCreate]) -> PolicyCreate:
        """
        Validate a create payload.

        Args:
            data: Raw JSON string, dictionary or an already-built PolicyCreate

        Returns:
            Validated PolicyCreate

        Raises:
            ValidationError: If the payload is malformed
        """
        payload = self._parse(PolicyCreate, data)
        self._check_content(payload)
        logger.info(f"Policy payload validated: {payload.name!r}")
        return payload

    def validate_diff(self, data: Union[str, Dict[str, Any], PolicyDiff]) -> PolicyDiff:
        """Validate the shape of a change diff (not yet merged)."""
        return self._parse(PolicyDiff, data)

    def validate_transfer(self, data: Union[str, Dict[str, Any], TransferRequest]) -> TransferRequest:
        """Validate a transfer request prior to simulation."""
        return self._parse(TransferRequest, data)

    def merge(self, policy: Policy, diff: PolicyDiff) -> PolicyContent:
        """
        Apply a diff to a policy's live content and validate the result.

        Fields absent from the diff keep their live values.

        Raises:
            ValidationError: If the merged policy would be invalid
        """
        merged = policy.content()
        merged.update(diff.changed_fields())
        content = self._parse(PolicyContent, merged)
        self._check_content(content)
        return content

    def _parse(self, model: Type[ModelT], data: Union[str, Dict[str, Any], BaseModel]) -> ModelT:
        if isinstance(data, model):
            return data
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError as e:
                logger.error(f"JSON parse error: {e}")
                raise ValidationError(
                    message="PARSE_ERROR: Invalid JSON format",
                    errors=[{"type": "json_decode", "msg": str(e)}],
                )
        elif isinstance(data, BaseModel):
            data = data.model_dump(exclude_unset=True)

        try:
            return model.model_validate(data)
        except PydanticValidationError as e:
            errors = []
            for error in e.errors():
                errors.append({
                    "field": ".".join(str(loc) for loc in error["loc"]),
                    "type": error["type"],
                    "msg": error["msg"],
                })

            logger.warning(f"{model.__name__} validation failed: {errors}")
            first = errors[0] if errors else {"field": None, "msg": "invalid"}
            raise ValidationError(
                message=f"VALIDATION_ERROR: {first['msg']}",
                field=first["field"] or None,
                errors=errors,
            )

    def _check_content(self, content: PolicyContent) -> None:
        self._check_quorums(content)
        if content.amount is not None:
            self._check_amount(content.amount)
        if self.directory is not None:
            self._check_identities(content)

    def _check_quorums(self, content: PolicyContent) -> None:
        if content.change_approvals_required > len(content.change_approvers_list):
            raise ValidationError(
                "change_approvals_required cannot exceed the number of change approvers",
                field="change_approvals_required",
            )
        if (
            content.action == PolicyAction.REQUIRE_APPROVAL
            and content.approvers
            and content.quorum_required > len(content.approvers)
        ):
            raise ValidationError(
                "quorum_required cannot exceed the number of approvers",
                field="quorum_required",
            )

    def _check_amount(self, amount: AmountCondition) -> None:
        required = {
            AmountComparison.ANY: (),
            AmountComparison.ABOVE: ("min",),
            AmountComparison.BELOW: (),
            AmountComparison.BETWEEN: ("min", "max"),
        }[amount.condition]

        if amount.condition == AmountComparison.BELOW and not (amount.min or amount.max):
            raise ValidationError("Amount threshold is required for 'below'", field="amount.max")

        for name in required:
            if getattr(amount, name) in (None, ""):
                raise ValidationError(
                    f"Amount {name} is required for '{amount.condition.value}'",
                    field=f"amount.{name}",
                )

        bounds = {}
        for name in ("min", "max"):
            raw = getattr(amount, name)
            if raw is None or raw == "":
                continue
            try:
                value = Decimal(raw)
            except InvalidOperation:
                raise ValidationError(f"Amount {name} is not a decimal: {raw!r}", field=f"amount.{name}")
            if not value.is_finite():
                raise ValidationError(f"Amount {name} must be finite", field=f"amount.{name}")
            bounds[name] = value

        if amount.condition == AmountComparison.BETWEEN and bounds["min"] > bounds["max"]:
            raise ValidationError("Amount min cannot exceed max", field="amount.min")

    def _check_identities(self, content: PolicyContent) -> None:
        for field_name in ("approvers", "change_approvers_list"):
            for name in getattr(content, field_name):
                try:
                    self.directory.resolve_user(name)
                except NotFoundError:
                    raise ValidationError(f"Unknown user: {name}", field=field_name)

        wallets = content.source_wallet
        if wallets is not None and wallets.type == SourceWalletType.SPECIFIC:
            for name in wallets.wallets:
                try:
                    self.directory.resolve_wallet(name)
                except NotFoundError:
                    raise ValidationError(f"Unknown wallet: {name}", field="source_wallet.wallets")
