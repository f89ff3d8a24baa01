"""Consensus finalizer - closes a flag's vote and settles validator stakes."""

from __future__ import annotations

import logging

import aiosqlite

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.transfer import TransferGateway
from anomaly_ledger.models.flags import Flag, FlagStatus
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.models.staking import Settlement, SettlementStatus, ValidatorStake
from anomaly_ledger.interfaces.store import LedgerStore

log = logging.getLogger(__name__)


def consensus_reached(yes_votes: int, total_votes: int, threshold: int) -> bool:
    """``yes / total >= threshold%`` in integer arithmetic."""
    return yes_votes * 100 >= total_votes * threshold


def decide(flag: Flag, params: EngineParameters) -> FlagStatus:
    if flag.total_votes == 0:
        return FlagStatus.INSUFFICIENT_VOTES
    if consensus_reached(flag.yes_votes, flag.total_votes, params.consensus_threshold):
        return FlagStatus.CONFIRMED
    return FlagStatus.DISMISSED


def settle(stake: ValidatorStake, status: FlagStatus, params: EngineParameters) -> Settlement:
    """Work out one validator's payout.

    A yes vote is correct iff the flag was confirmed. Correct voters get
    their stake plus the bonus; the rest get their stake minus the slash.
    """
    correct = stake.vote == (status is FlagStatus.CONFIRMED)
    if correct:
        payout = stake.stake + params.reward_bonus
    else:
        payout = stake.stake - (stake.stake * params.slash_percent) // 100
    return Settlement(
        flag_id=stake.flag_id,
        validator=stake.validator,
        stake=stake.stake,
        vote=stake.vote,
        correct=correct,
        payout=payout,
    )


class ConsensusFinalizer:
    """Finalizes flags once their voting window has closed.

    The status write, removal of every stake entry, the unlock of each
    validator's aggregate and the settlement log all commit together.
    Payouts go out afterwards; a failed payout stays ``failed`` in the
    settlement log for :meth:`retry_settlements` and never re-opens the flag.
    Once the ledger side has committed, finalize reports the outcome even
    if recording a payout fails.
    """

    def __init__(
        self,
        store: LedgerStore,
        transfers: TransferGateway,
        clock: Clock,
    ) -> None:
        self._store = store
        self._transfers = transfers
        self._clock = clock

    async def finalize(self, flag_id: int, params: EngineParameters) -> OperationResult:
        flag = await self._store.get_flag(flag_id)
        if flag is None:
            return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
        if flag.status.is_terminal:
            return OperationResult.fail(ErrorCode.ALREADY_FINALIZED)
        if await self._clock.now() <= flag.expires_at:
            return OperationResult.fail(ErrorCode.FLAG_NOT_EXPIRED)

        status = decide(flag, params)
        if status is FlagStatus.INSUFFICIENT_VOTES:
            async with self._store.transaction():
                await self._store.set_flag_status(flag_id, status)
                await self._store.log_activity(
                    "flag_finalized", f"Flag {flag_id} closed with no votes", flag_id=flag_id,
                )
            log.info("Flag %d finalized: %s", flag_id, status.value)
            return OperationResult.success(status)

        stakes = await self._store.get_stakes_for_flag(flag_id)
        settlements = [settle(s, status, params) for s in stakes]

        async with self._store.transaction():
            await self._store.set_flag_status(flag_id, status)
            for s in settlements:
                await self._store.delete_validator_stake(flag_id, s.validator)
                await self._store.adjust_locked_stake(s.validator, -s.stake)
                s.id = await self._store.save_settlement(s)
            await self._store.log_activity(
                "flag_finalized",
                f"Flag {flag_id} {status.value}: yes={flag.yes_votes} no={flag.no_votes}"
                f" threshold={params.consensus_threshold}%",
                flag_id=flag_id,
                amount=flag.total_staked,
            )

        log.info(
            "Flag %d finalized: %s (yes=%d no=%d, %d settlement(s))",
            flag_id, status.value, flag.yes_votes, flag.no_votes, len(settlements),
        )

        await self._pay_out(settlements, params)
        return OperationResult.success(status)

    async def retry_settlements(
        self, params: EngineParameters, flag_id: int | None = None,
    ) -> OperationResult:
        """Re-attempt payouts that are still pending or failed.

        Rows left ``sending`` are not retried; their transfer may already
        have gone out.

        Returns the number of payouts that went through on this attempt.
        """
        unpaid = await self._store.get_settlements(
            flag_id=flag_id,
            status=[SettlementStatus.PENDING, SettlementStatus.FAILED],
        )
        if not unpaid:
            return OperationResult.success(0)
        paid = await self._pay_out(unpaid, params)
        log.info("Settlement retry: %d/%d paid", paid, len(unpaid))
        return OperationResult.success(paid)

    async def _pay_out(self, settlements: list[Settlement], params: EngineParameters) -> int:
        """Transfer each payout from escrow and record the outcome.

        A settlement is marked ``sending`` and committed before the gateway
        is called. If that mark cannot be written the payout is skipped and
        stays retryable. If the outcome cannot be written after a transfer
        the row stays ``sending``, which retries never pick up, so a payout
        is never sent twice.
        """
        paid = 0
        for s in settlements:
            if params.escrow_account is None:
                status, error, tx_hash = SettlementStatus.FAILED, "escrow_not_configured", None
            else:
                try:
                    async with self._store.transaction():
                        await self._store.update_settlement(s.id, SettlementStatus.SENDING)
                except aiosqlite.Error as exc:
                    log.error(
                        "Could not mark payout for flag %d to %s as sending, skipped: %s",
                        s.flag_id, s.validator[:16], exc,
                    )
                    continue
                s.status = SettlementStatus.SENDING

                result = await self._transfers.transfer(s.payout, params.escrow_account, s.validator)
                if result.success:
                    status, error, tx_hash = SettlementStatus.PAID, None, result.tx_hash
                else:
                    status, error, tx_hash = SettlementStatus.FAILED, result.error, None

            if status is SettlementStatus.PAID:
                paid += 1
            else:
                log.warning(
                    "Payout of %d to %s for flag %d failed: %s",
                    s.payout, s.validator[:16], s.flag_id, error,
                )

            try:
                async with self._store.transaction():
                    await self._store.update_settlement(s.id, status, error=error, tx_hash=tx_hash)
                    await self._store.log_activity(
                        "payout_sent" if status is SettlementStatus.PAID else "payout_failed",
                        f"{'Reward' if s.correct else 'Slashed refund'} of {s.payout}"
                        f" for flag {s.flag_id}",
                        flag_id=s.flag_id,
                        actor=s.validator,
                        amount=s.payout,
                    )
            except aiosqlite.Error as exc:
                log.error(
                    "Payout %s for flag %d to %s not recorded (tx %s), left %s: %s",
                    status.value, s.flag_id, s.validator[:16], tx_hash, s.status.value, exc,
                )
                continue
            s.status, s.error, s.tx_hash = status, error, tx_hash
        return paid
