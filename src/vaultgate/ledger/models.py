"""Ledger models for the append-only governance audit log."""

import hashlib
import json
import uuid
from datetime import datetime, UTC
from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class EventType(str, Enum):
    """Types of events in the audit ledger."""

    POLICY_CREATED = "POLICY_CREATED"
    POLICY_TOGGLED = "POLICY_TOGGLED"
    POLICIES_REORDERED = "POLICIES_REORDERED"
    CHANGE_SUBMITTED = "CHANGE_SUBMITTED"        # Edit proposed
    DELETION_SUBMITTED = "DELETION_SUBMITTED"    # Deletion proposed
    CHANGE_APPROVED = "CHANGE_APPROVED"          # One signer on a pending change
    CHANGE_APPLIED = "CHANGE_APPLIED"            # Quorum reached, diff merged
    CHANGE_CANCELLED = "CHANGE_CANCELLED"
    POLICY_DELETED = "POLICY_DELETED"
    TRANSACTION_CREATED = "TRANSACTION_CREATED"
    TRANSACTION_APPROVED = "TRANSACTION_APPROVED"
    TRANSACTION_COMPLETED = "TRANSACTION_COMPLETED"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"


POLICY_EVENTS = frozenset({
    EventType.POLICY_CREATED,
    EventType.POLICY_TOGGLED,
    EventType.POLICIES_REORDERED,
    EventType.CHANGE_SUBMITTED,
    EventType.DELETION_SUBMITTED,
    EventType.CHANGE_APPROVED,
    EventType.CHANGE_APPLIED,
    EventType.CHANGE_CANCELLED,
    EventType.POLICY_DELETED,
})


class LedgerEntry(BaseModel):
    """
    Immutable ledger entry with hash-chaining.

    Each entry links to the previous entry's hash, so rewriting any stored
    entry breaks every hash after it.
    """

    entry_id: str = Field(
        default_factory=lambda: f"entry_{uuid.uuid4().hex[:12]}",
        description="Unique entry identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(UTC),
        description="When event occurred"
    )
    event_type: EventType = Field(description="Type of event")
    payload: dict = Field(description="Event-specific data")

    previous_hash: str = Field(
        default="genesis",
        description="Hash of previous entry"
    )

    actor: Optional[str] = Field(default=None, description="Who triggered the event")
    policy_id: Optional[int] = Field(default=None)
    transaction_id: Optional[int] = Field(default=None)

    _cached_hash: Optional[str] = None

    def compute_hash(self) -> str:
        """SHA-256 over previous_hash, timestamp, event type, payload and id."""
        hash_input = json.dumps({
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "payload": self.payload,
            "entry_id": self.entry_id,
        }, sort_keys=True)

        return hashlib.sha256(hash_input.encode()).hexdigest()[:32]

    @property
    def hash(self) -> str:
        if self._cached_hash is None:
            self._cached_hash = self.compute_hash()
        return self._cached_hash


class ChainValidationResult(BaseModel):
    """Result of ledger chain validation."""

    is_valid: bool = Field(description="Whether chain is valid")
    total_entries: int = Field(description="Total entries checked")
    broken_at: Optional[int] = Field(default=None, description="Index where chain broke")
    error_message: Optional[str] = Field(default=None)
