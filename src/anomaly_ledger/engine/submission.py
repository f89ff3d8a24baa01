"""Flag submission - validates and records anomaly reports."""

from __future__ import annotations

import logging

import aiosqlite

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.roles import RoleRegistry
from anomaly_ledger.interfaces.transfer import TransferGateway
from anomaly_ledger.models.flags import AnomalyType, Category, Flag, FlagStatus, FlagUpdate
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.interfaces.store import LedgerStore
from anomaly_ledger.engine.refunds import refund

log = logging.getLogger(__name__)

FLAG_COUNTER = "flag"

MAX_TX_ID_LENGTH = 64
MAX_REASON_LENGTH = 200
MAX_LOCATION_LENGTH = 100
MAX_CONFIDENCE = 100
MAX_PRIORITY = 10


def _score_in_bounds(score: int, params: EngineParameters) -> bool:
    return params.min_score <= score <= params.max_score


class FlagSubmission:
    """Creates flags and applies submitter updates.

    Submission checks run in a fixed order and the first failure decides
    the error code:

    1. capacity          6. confidence       11. submitter is an oracle
    2. tx id length      7. location length  12. tx id not yet flagged
    3. score bounds      8. category         13. authority account set
    4. anomaly type      9. priority
    5. reason length    10. expiry in future

    Nothing is written and no fee moves unless every check passes. If the
    write fails after the fee has moved, the fee is refunded.
    """

    def __init__(
        self,
        store: LedgerStore,
        roles: RoleRegistry,
        transfers: TransferGateway,
        clock: Clock,
    ) -> None:
        self._store = store
        self._roles = roles
        self._transfers = transfers
        self._clock = clock

    async def submit(
        self,
        tx_id: str,
        score: int,
        anomaly_type: str,
        reason: str,
        confidence: int,
        location: str,
        category: str,
        priority: int,
        expiry: int,
        submitter: str,
        params: EngineParameters,
    ) -> OperationResult:
        """Validate, charge the submission fee, and store a new flag."""
        now = await self._clock.now()

        if await self._store.peek_id(FLAG_COUNTER) >= params.max_flags:
            return OperationResult.fail(ErrorCode.MAX_FLAGS_EXCEEDED)
        if not 0 < len(tx_id) <= MAX_TX_ID_LENGTH:
            return OperationResult.fail(ErrorCode.INVALID_TX_ID)
        if not _score_in_bounds(score, params):
            return OperationResult.fail(ErrorCode.INVALID_SCORE)
        try:
            kind = AnomalyType(anomaly_type)
        except ValueError:
            return OperationResult.fail(ErrorCode.INVALID_ANOMALY_TYPE, detail=str(anomaly_type))
        if len(reason) > MAX_REASON_LENGTH:
            return OperationResult.fail(ErrorCode.INVALID_REASON)
        if not 0 <= confidence <= MAX_CONFIDENCE:
            return OperationResult.fail(ErrorCode.INVALID_CONFIDENCE)
        if len(location) > MAX_LOCATION_LENGTH:
            return OperationResult.fail(ErrorCode.INVALID_LOCATION)
        try:
            cat = Category(category)
        except ValueError:
            return OperationResult.fail(ErrorCode.INVALID_CATEGORY, detail=str(category))
        if not 0 <= priority <= MAX_PRIORITY:
            return OperationResult.fail(ErrorCode.INVALID_PRIORITY)
        if expiry <= now:
            return OperationResult.fail(ErrorCode.INVALID_EXPIRY)
        if not await self._roles.is_authorized_oracle(submitter):
            return OperationResult.fail(ErrorCode.INVALID_SUBMITTER)
        if await self._store.get_flag_id_by_tx(tx_id) is not None:
            return OperationResult.fail(ErrorCode.FLAG_ALREADY_EXISTS)
        if params.authority_account is None:
            return OperationResult.fail(ErrorCode.AUTHORITY_NOT_VERIFIED)

        fee = params.submission_fee
        paid = await self._transfers.transfer(fee, submitter, params.authority_account)
        if not paid.success:
            log.warning("Submission fee transfer failed for %s: %s", tx_id, paid.error)
            return OperationResult.fail(ErrorCode.TRANSFER_FAILED, detail=paid.error)

        flagged = score > params.anomaly_threshold
        try:
            async with self._store.transaction():
                flag_id = await self._store.allocate_id(FLAG_COUNTER)
                flag = Flag(
                    flag_id=flag_id,
                    tx_id=tx_id,
                    score=score,
                    flagged=flagged,
                    anomaly_type=kind,
                    reason=reason,
                    confidence=confidence,
                    submitted_at=now,
                    submitter=submitter,
                    location=location,
                    category=cat,
                    priority=priority,
                    expiry=expiry,
                    created_at=now,
                    expires_at=now + params.voting_duration,
                    status=FlagStatus.PENDING,
                )
                await self._store.insert_flag(flag)
                await self._store.log_activity(
                    "flag_submitted",
                    f"Flag {flag_id} on {tx_id} (score {score}, flagged={flagged})",
                    flag_id=flag_id,
                    actor=submitter,
                    amount=fee,
                )
        except aiosqlite.Error:
            await refund(
                self._transfers, fee, params.authority_account, submitter,
                f"submission of {tx_id}",
            )
            raise

        log.info(
            "Flag %d submitted for %s by %s (score=%d flagged=%s expires_at=%d)",
            flag_id, tx_id, submitter[:16], score, flagged, flag.expires_at,
        )
        return OperationResult.success(flag_id)

    async def update(
        self,
        flag_id: int,
        score: int,
        reason: str,
        caller: str,
        params: EngineParameters,
    ) -> OperationResult:
        """Let the original submitter revise the score and reason.

        ``flagged`` is re-derived from the threshold in effect now.
        """
        flag = await self._store.get_flag(flag_id)
        if flag is None:
            return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
        if flag.submitter != caller:
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)
        if not _score_in_bounds(score, params):
            return OperationResult.fail(ErrorCode.INVALID_SCORE)
        if len(reason) > MAX_REASON_LENGTH:
            return OperationResult.fail(ErrorCode.INVALID_REASON)

        now = await self._clock.now()
        flagged = score > params.anomaly_threshold
        async with self._store.transaction():
            await self._store.update_flag_report(flag_id, score, flagged, reason, now)
            await self._store.save_flag_update(
                FlagUpdate(
                    flag_id=flag_id,
                    score=score,
                    flagged=flagged,
                    reason=reason,
                    updated_at=now,
                    updater=caller,
                )
            )
            await self._store.log_activity(
                "flag_updated",
                f"Flag {flag_id} rescored {flag.score} -> {score} (flagged={flagged})",
                flag_id=flag_id,
                actor=caller,
            )

        log.info("Flag %d updated by %s (score=%d flagged=%s)", flag_id, caller[:16], score, flagged)
        return OperationResult.success(True)
