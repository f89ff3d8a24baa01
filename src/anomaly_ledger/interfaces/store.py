"""LedgerStore protocol - flag, stake, proposal and parameter persistence."""

from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Protocol

from anomaly_ledger.models.flags import Flag, FlagStatus, FlagUpdate
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.records import ActivityRecord
from anomaly_ledger.models.staking import Settlement, SettlementStatus, ValidatorStake


class LedgerStore(Protocol):
    """Transactional key-value substrate for the ledger.

    Mutating methods do not commit on their own; wrap them in
    ``transaction()`` so an operation's writes land together or not at all.
    """

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> None:
        """Create tables if they don't exist."""
        ...

    async def close(self) -> None:
        ...

    def transaction(self) -> AbstractAsyncContextManager:
        """Commit on clean exit, roll back on exception."""
        ...

    # ── Parameters ─────────────────────────────────────────

    async def get_parameters(self) -> EngineParameters | None:
        ...

    async def save_parameters(self, params: EngineParameters) -> None:
        ...

    # ── Flags ──────────────────────────────────────────────

    async def allocate_id(self, name: str) -> int:
        ...

    async def peek_id(self, name: str) -> int:
        ...

    async def insert_flag(self, flag: Flag) -> None:
        ...

    async def get_flag(self, flag_id: int) -> Flag | None:
        ...

    async def get_flag_id_by_tx(self, tx_id: str) -> int | None:
        ...

    async def get_flags(self, status: list[FlagStatus] | None = None) -> list[Flag]:
        ...

    async def update_flag_report(
        self, flag_id: int, score: int, flagged: bool, reason: str, submitted_at: int
    ) -> None:
        ...

    async def save_flag_update(self, update: FlagUpdate) -> None:
        ...

    async def get_flag_update(self, flag_id: int) -> FlagUpdate | None:
        ...

    async def add_vote(self, flag_id: int, vote: bool, amount: int) -> None:
        ...

    async def set_flag_status(self, flag_id: int, status: FlagStatus) -> None:
        ...

    # ── Stakes ─────────────────────────────────────────────

    async def get_validator_stake(self, flag_id: int, validator: str) -> ValidatorStake | None:
        ...

    async def save_validator_stake(self, stake: ValidatorStake) -> None:
        ...

    async def get_stakes_for_flag(self, flag_id: int) -> list[ValidatorStake]:
        ...

    async def get_stakes_for_validator(self, validator: str) -> list[ValidatorStake]:
        ...

    async def delete_validator_stake(self, flag_id: int, validator: str) -> None:
        ...

    async def adjust_locked_stake(self, validator: str, delta: int) -> int:
        ...

    async def get_locked_stake(self, validator: str) -> int:
        ...

    async def get_total_locked_stake(self) -> int:
        ...

    # ── Proposals ──────────────────────────────────────────

    async def insert_proposal(self, proposal: Proposal) -> None:
        ...

    async def get_proposal(self, proposal_id: int) -> Proposal | None:
        ...

    async def get_proposals(self) -> list[Proposal]:
        ...

    async def record_proposal_vote(self, proposal_id: int, support: bool) -> None:
        ...

    async def mark_proposal_applied(self, proposal_id: int) -> None:
        ...

    # ── Settlements ────────────────────────────────────────

    async def save_settlement(self, settlement: Settlement) -> int:
        ...

    async def get_settlements(
        self,
        flag_id: int | None = None,
        status: list[SettlementStatus] | None = None,
        validator: str | None = None,
    ) -> list[Settlement]:
        ...

    async def update_settlement(
        self,
        settlement_id: int,
        status: SettlementStatus,
        error: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        ...

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        flag_id: int | None = None,
        actor: str | None = None,
        amount: int | None = None,
    ) -> None:
        ...

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        ...
