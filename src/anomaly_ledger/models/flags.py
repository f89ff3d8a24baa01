"""Flag records: the anomaly report plus its consensus state."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class AnomalyType(str, Enum):
    FRAUD = "fraud"
    LAUNDERING = "laundering"
    EXPLOIT = "exploit"
    WASH_TRADING = "wash-trading"


class Category(str, Enum):
    DEFI = "defi"
    NFT = "nft"
    DAO = "dao"
    GENERAL = "general"


class FlagStatus(str, Enum):
    """Consensus lifecycle. Only PENDING is non-terminal."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    DISMISSED = "dismissed"
    INSUFFICIENT_VOTES = "insufficient-votes"

    @property
    def is_terminal(self) -> bool:
        return self is not FlagStatus.PENDING


@dataclass
class Flag:
    """A recorded suspicion that an external transaction is anomalous."""

    flag_id: int
    tx_id: str
    score: int
    flagged: bool  # score > anomaly threshold at submission/update time
    anomaly_type: AnomalyType
    reason: str
    confidence: int
    submitted_at: int  # time/height of submission or last update
    submitter: str
    location: str
    category: Category
    priority: int
    expiry: int  # submitter-supplied horizon

    # Consensus state
    created_at: int = 0
    expires_at: int = 0  # voting open while now <= expires_at
    status: FlagStatus = FlagStatus.PENDING
    yes_votes: int = 0
    no_votes: int = 0
    total_staked: int = 0

    @property
    def total_votes(self) -> int:
        return self.yes_votes + self.no_votes


@dataclass
class FlagUpdate:
    """Audit record of the most recent update to a flag."""

    flag_id: int
    score: int
    flagged: bool
    reason: str
    updated_at: int
    updater: str
