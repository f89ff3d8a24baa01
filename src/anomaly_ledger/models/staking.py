"""Validator stake and settlement records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


@dataclass
class ValidatorStake:
    """Stake locked by one validator on one unresolved flag."""

    flag_id: int
    validator: str
    stake: int  # stroops
    vote: bool  # True = flag is legitimate


class SettlementStatus(str, Enum):
    PENDING = "pending"  # ledger settled, payout not yet attempted
    SENDING = "sending"  # transfer handed to the gateway, outcome not yet recorded
    PAID = "paid"
    FAILED = "failed"


@dataclass
class Settlement:
    """One validator's reward or slash for a finalized flag.

    ``stake`` is what was unlocked from the validator's aggregate;
    ``payout`` is what gets transferred back from escrow.
    """

    flag_id: int
    validator: str
    stake: int
    vote: bool
    correct: bool
    payout: int
    status: SettlementStatus = SettlementStatus.PENDING
    error: str | None = None
    tx_hash: str | None = None
    id: int | None = None
    created_at: str = ""
    updated_at: str = ""
