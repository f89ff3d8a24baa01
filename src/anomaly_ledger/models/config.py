"""Configuration models for the ledger service."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ClockSource(str, Enum):
    """Where "current time/height" comes from."""

    SYSTEM = "system"  # unix seconds
    LEDGER = "ledger"  # latest Stellar ledger sequence


@dataclass
class EngineDefaults:
    """Initial engine parameters written on first start.

    Once persisted, the stored parameter register wins; these only seed it.
    """

    anomaly_threshold: int = 80
    min_score: int = 0
    max_score: int = 100
    max_flags: int = 10_000
    submission_fee: int = 500  # stroops
    min_stake: int = 1_000_000  # stroops
    voting_duration: int = 144  # blocks / seconds, same unit as the clock
    consensus_threshold: int = 66  # percent
    slash_percent: int = 20
    reward_bonus: int = 500_000  # stroops
    proposal_margin: int = 10


@dataclass
class RoleConfig:
    """Static role assignments and the accounts money moves between."""

    oracles: list[str] = field(default_factory=list)
    authorities: list[str] = field(default_factory=list)
    authority_account: str = ""  # receives submission fees
    oracle_principal: str = ""  # enables proposal voting
    escrow_account: str = ""  # holds locked stake


@dataclass
class ServiceConfig:
    """Complete service configuration."""

    # Service
    log_level: str = "info"
    clock: ClockSource = ClockSource.SYSTEM

    # Stellar
    network: str = "testnet"
    horizon_url: str = "https://horizon-testnet.stellar.org"
    rpc_url: str = "https://soroban-testnet.stellar.org"
    network_passphrase: str = "Test SDF Network ; September 2015"
    base_fee: int = 100  # stroops per operation
    signer_secrets: list[str] = field(default_factory=list)  # from ANOMALY_LEDGER_SECRET

    # Storage
    db_path: str = "~/.anomaly_ledger/ledger.db"

    engine: EngineDefaults = field(default_factory=EngineDefaults)
    roles: RoleConfig = field(default_factory=RoleConfig)
