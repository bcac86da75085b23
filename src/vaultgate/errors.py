"""Error taxonomy shared by every VaultGate component."""

from typing import Any, Dict, List, Optional


class VaultGateError(Exception):
    """Base class for all VaultGate errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class ValidationError(VaultGateError):
    """Malformed or out-of-enum input.

    Carries the name of the offending field so the HTTP layer can surface it.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
    ):
        self.field = field
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(VaultGateError):
    """Unknown id."""


class InvalidStateError(NotFoundError):
    """Operation attempted on an entity in the wrong state.

    Subclasses NotFoundError: approving a change that is no longer pending is
    reported the same way as approving one that never existed.
    """


class InternalError(VaultGateError):
    """Unexpected persistence or runtime fault."""
