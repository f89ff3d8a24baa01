"""Governance proposal model."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class Proposal:
    """A request to change the anomaly threshold, resolved by vote margin."""

    proposal_id: int
    description: str
    new_threshold: int
    expiry: int
    proposer: str
    yes_votes: int = 0
    no_votes: int = 0
    applied: bool = False
