"""Internal record types for collaborator results and the activity log."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class TransferResult:
    """Result of a value transfer through the TransferGateway."""

    success: bool
    amount: int  # stroops
    source: str
    destination: str
    tx_hash: str | None = None
    error: str | None = None


@dataclass
class ActivityRecord:
    """A single activity log entry."""

    id: int
    event_type: str
    flag_id: int | None
    actor: str | None
    amount: int | None  # stroops
    message: str
    created_at: str
