"""Operation outcomes. Every public operation returns one of these."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    AUTHORIZATION = "authorization"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    STATE_CONFLICT = "state_conflict"
    EXTERNAL = "external"


class ErrorCode(str, Enum):
    # Authorization
    NOT_AUTHORIZED = "not_authorized"
    INVALID_SUBMITTER = "invalid_submitter"
    AUTHORITY_NOT_VERIFIED = "authority_not_verified"
    ORACLE_NOT_CONFIGURED = "oracle_not_configured"

    # Validation
    MAX_FLAGS_EXCEEDED = "max_flags_exceeded"
    INVALID_TX_ID = "invalid_tx_id"
    INVALID_SCORE = "invalid_score"
    INVALID_ANOMALY_TYPE = "invalid_anomaly_type"
    INVALID_REASON = "invalid_reason"
    INVALID_CONFIDENCE = "invalid_confidence"
    INVALID_LOCATION = "invalid_location"
    INVALID_CATEGORY = "invalid_category"
    INVALID_PRIORITY = "invalid_priority"
    INVALID_EXPIRY = "invalid_expiry"
    INVALID_THRESHOLD = "invalid_threshold"
    INVALID_PARAMETER = "invalid_parameter"
    INVALID_ACCOUNT = "invalid_account"
    FLAG_ALREADY_EXISTS = "flag_already_exists"

    # Not found
    FLAG_NOT_FOUND = "flag_not_found"
    PROPOSAL_NOT_FOUND = "proposal_not_found"

    # State conflict
    ALREADY_VOTED = "already_voted"
    VOTING_CLOSED = "voting_closed"
    FLAG_NOT_EXPIRED = "flag_not_expired"
    ALREADY_FINALIZED = "already_finalized"
    MIN_STAKE_VIOLATION = "min_stake_violation"
    PROPOSAL_EXPIRED = "proposal_expired"
    AUTHORITY_ALREADY_SET = "authority_already_set"
    ESCROW_NOT_CONFIGURED = "escrow_not_configured"

    # External
    TRANSFER_FAILED = "transfer_failed"
    STORAGE_ERROR = "storage_error"
    CLOCK_UNAVAILABLE = "clock_unavailable"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]


_CATEGORIES: dict[ErrorCode, ErrorCategory] = {
    ErrorCode.NOT_AUTHORIZED: ErrorCategory.AUTHORIZATION,
    ErrorCode.INVALID_SUBMITTER: ErrorCategory.AUTHORIZATION,
    ErrorCode.AUTHORITY_NOT_VERIFIED: ErrorCategory.AUTHORIZATION,
    ErrorCode.ORACLE_NOT_CONFIGURED: ErrorCategory.AUTHORIZATION,
    ErrorCode.MAX_FLAGS_EXCEEDED: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_TX_ID: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_SCORE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_ANOMALY_TYPE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_REASON: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_CONFIDENCE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_LOCATION: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_CATEGORY: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_PRIORITY: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_EXPIRY: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_THRESHOLD: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_PARAMETER: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_ACCOUNT: ErrorCategory.VALIDATION,
    ErrorCode.FLAG_ALREADY_EXISTS: ErrorCategory.VALIDATION,
    ErrorCode.FLAG_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.PROPOSAL_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.ALREADY_VOTED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.VOTING_CLOSED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.FLAG_NOT_EXPIRED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.ALREADY_FINALIZED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.MIN_STAKE_VIOLATION: ErrorCategory.STATE_CONFLICT,
    ErrorCode.PROPOSAL_EXPIRED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.AUTHORITY_ALREADY_SET: ErrorCategory.STATE_CONFLICT,
    ErrorCode.ESCROW_NOT_CONFIGURED: ErrorCategory.STATE_CONFLICT,
    ErrorCode.TRANSFER_FAILED: ErrorCategory.EXTERNAL,
    ErrorCode.STORAGE_ERROR: ErrorCategory.EXTERNAL,
    ErrorCode.CLOCK_UNAVAILABLE: ErrorCategory.EXTERNAL,
}


@dataclass(frozen=True)
class OperationResult:
    """Success carrying a value, or failure carrying an error code."""

    ok: bool
    value: Any = None
    error: ErrorCode | None = None
    detail: str | None = None

    @classmethod
    def success(cls, value: Any = True) -> OperationResult:
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, error: ErrorCode, detail: str | None = None) -> OperationResult:
        return cls(ok=False, error=error, detail=detail)
