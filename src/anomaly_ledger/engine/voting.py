"""Stake voting - validators lock stake behind a yes/no vote on a flag."""

from __future__ import annotations

import logging

import aiosqlite

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.transfer import TransferGateway
from anomaly_ledger.models.flags import FlagStatus
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.models.staking import ValidatorStake
from anomaly_ledger.interfaces.store import LedgerStore
from anomaly_ledger.engine.refunds import refund

log = logging.getLogger(__name__)


class StakeVoting:
    """Records one stake-weighted vote per (flag, validator).

    Every call attaches a vote, so a pair that already has a ledger entry
    is closed: a second call fails with ``already_voted`` whatever its
    amount or direction.
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

    async def stake_and_vote(
        self,
        flag_id: int,
        vote: bool,
        amount: int,
        validator: str,
        params: EngineParameters,
    ) -> OperationResult:
        """Lock ``amount`` in escrow and add it to the flag's yes or no tally.

        Returns the validator's stake on this flag after the call.
        """
        flag = await self._store.get_flag(flag_id)
        if flag is None:
            return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
        now = await self._clock.now()
        if flag.status is not FlagStatus.PENDING or now > flag.expires_at:
            return OperationResult.fail(ErrorCode.VOTING_CLOSED)
        if amount < params.min_stake:
            return OperationResult.fail(ErrorCode.MIN_STAKE_VIOLATION)

        existing = await self._store.get_validator_stake(flag_id, validator)
        if existing is not None:
            return OperationResult.fail(ErrorCode.ALREADY_VOTED)
        if params.escrow_account is None:
            return OperationResult.fail(ErrorCode.ESCROW_NOT_CONFIGURED)

        locked = await self._transfers.transfer(amount, validator, params.escrow_account)
        if not locked.success:
            log.warning(
                "Stake transfer failed for flag %d validator %s: %s",
                flag_id, validator[:16], locked.error,
            )
            return OperationResult.fail(ErrorCode.TRANSFER_FAILED, detail=locked.error)

        try:
            async with self._store.transaction():
                await self._store.save_validator_stake(
                    ValidatorStake(flag_id=flag_id, validator=validator, stake=amount, vote=vote)
                )
                total_locked = await self._store.adjust_locked_stake(validator, amount)
                await self._store.add_vote(flag_id, vote, amount)
                await self._store.log_activity(
                    "vote_cast",
                    f"{'Yes' if vote else 'No'} on flag {flag_id} with {amount} staked",
                    flag_id=flag_id,
                    actor=validator,
                    amount=amount,
                )
        except aiosqlite.Error:
            await refund(
                self._transfers, amount, params.escrow_account, validator,
                f"stake on flag {flag_id}",
            )
            raise

        log.info(
            "Validator %s voted %s on flag %d with %d (locked total %d)",
            validator[:16], "yes" if vote else "no", flag_id, amount, total_locked,
        )
        return OperationResult.success(amount)
