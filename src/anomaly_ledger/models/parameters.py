"""Versioned engine parameter register."""

from __future__ import annotations

from dataclasses import dataclass, replace

from anomaly_ledger.models.config import EngineDefaults, RoleConfig


@dataclass(frozen=True)
class EngineParameters:
    """Every tunable the engine reads, as one immutable value.

    Operations read this once at their start. Writers produce a new value
    through :meth:`evolve`, which bumps ``version``.
    """

    version: int = 1
    anomaly_threshold: int = 80
    min_score: int = 0
    max_score: int = 100
    max_flags: int = 10_000
    submission_fee: int = 500
    min_stake: int = 1_000_000
    voting_duration: int = 144
    consensus_threshold: int = 66
    slash_percent: int = 20
    reward_bonus: int = 500_000
    proposal_margin: int = 10
    authority_account: str | None = None
    oracle_principal: str | None = None
    escrow_account: str | None = None

    def evolve(self, **changes) -> EngineParameters:
        return replace(self, version=self.version + 1, **changes)

    @classmethod
    def from_config(cls, engine: EngineDefaults, roles: RoleConfig) -> EngineParameters:
        return cls(
            anomaly_threshold=engine.anomaly_threshold,
            min_score=engine.min_score,
            max_score=engine.max_score,
            max_flags=engine.max_flags,
            submission_fee=engine.submission_fee,
            min_stake=engine.min_stake,
            voting_duration=engine.voting_duration,
            consensus_threshold=engine.consensus_threshold,
            slash_percent=engine.slash_percent,
            reward_bonus=engine.reward_bonus,
            proposal_margin=engine.proposal_margin,
            authority_account=roles.authority_account or None,
            oracle_principal=roles.oracle_principal or None,
            escrow_account=roles.escrow_account or None,
        )
