"""Data models for the anomaly ledger."""

from anomaly_ledger.models.config import ClockSource, EngineDefaults, RoleConfig, ServiceConfig
from anomaly_ledger.models.flags import AnomalyType, Category, Flag, FlagStatus, FlagUpdate
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.records import ActivityRecord, TransferResult
from anomaly_ledger.models.results import ErrorCategory, ErrorCode, OperationResult
from anomaly_ledger.models.snapshots import (
    ActivityEntry,
    DashboardSnapshot,
    FlagSnapshot,
    ProposalSnapshot,
    ValidatorSnapshot,
)
from anomaly_ledger.models.staking import Settlement, SettlementStatus, ValidatorStake

__all__ = [
    "ClockSource", "EngineDefaults", "RoleConfig", "ServiceConfig",
    "AnomalyType", "Category", "Flag", "FlagStatus", "FlagUpdate",
    "Proposal",
    "EngineParameters",
    "ActivityRecord", "TransferResult",
    "ErrorCategory", "ErrorCode", "OperationResult",
    "ActivityEntry", "DashboardSnapshot", "FlagSnapshot", "ProposalSnapshot",
    "ValidatorSnapshot",
    "Settlement", "SettlementStatus", "ValidatorStake",
]
