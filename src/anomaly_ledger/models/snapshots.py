"""JSON-serializable snapshot models for the Data API / CLI."""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any


def to_dict(obj: Any) -> dict:
    """Recursively convert a dataclass to a plain dict."""
    return asdict(obj)


@dataclass
class FlagSnapshot:
    flag_id: int
    tx_id: str
    score: int
    flagged: bool
    anomaly_type: str
    category: str
    priority: int
    submitter: str
    status: str
    yes_votes: int
    no_votes: int
    total_staked: int
    yes_ratio: float  # 0.0 when nobody voted
    expires_at: int
    voting_open: bool
    finalizable: bool


@dataclass
class ProposalSnapshot:
    proposal_id: int
    description: str
    new_threshold: int
    yes_votes: int
    no_votes: int
    expiry: int
    applied: bool
    expired: bool


@dataclass
class ValidatorSnapshot:
    validator: str
    locked_stake: int
    locked_stake_xlm: str
    open_positions: int
    settlements: int
    correct_votes: int
    wrong_votes: int
    total_paid_out: int


@dataclass
class ActivityEntry:
    timestamp: str
    event_type: str
    flag_id: int | None
    actor: str | None
    amount: int | None
    message: str


@dataclass
class DashboardSnapshot:
    now: int
    parameters_version: int
    anomaly_threshold: int
    consensus_threshold: int
    flag_count: int
    pending_flags: int
    confirmed_flags: int
    dismissed_flags: int
    insufficient_flags: int
    total_locked_stake: int
    unpaid_settlements: int
    open_flags: list[FlagSnapshot] = field(default_factory=list)
    recent_activity: list[ActivityEntry] = field(default_factory=list)
