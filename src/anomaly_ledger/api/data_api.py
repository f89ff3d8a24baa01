"""Data API aggregator - builds dashboard snapshots from ledger state."""

from __future__ import annotations

import logging

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.models.flags import Flag, FlagStatus
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.snapshots import (
    ActivityEntry,
    DashboardSnapshot,
    FlagSnapshot,
    ProposalSnapshot,
    ValidatorSnapshot,
)
from anomaly_ledger.models.staking import SettlementStatus
from anomaly_ledger.stellar.payments import STROOPS_PER_XLM
from anomaly_ledger.interfaces.store import LedgerStore

log = logging.getLogger(__name__)


def _xlm_str(stroops: int) -> str:
    """Format stroops as human-readable XLM string."""
    xlm = stroops / STROOPS_PER_XLM
    return f"{xlm:.7f} XLM"


def flag_to_snapshot(flag: Flag, now: int) -> FlagSnapshot:
    pending = flag.status is FlagStatus.PENDING
    return FlagSnapshot(
        flag_id=flag.flag_id,
        tx_id=flag.tx_id,
        score=flag.score,
        flagged=flag.flagged,
        anomaly_type=flag.anomaly_type.value,
        category=flag.category.value,
        priority=flag.priority,
        submitter=flag.submitter,
        status=flag.status.value,
        yes_votes=flag.yes_votes,
        no_votes=flag.no_votes,
        total_staked=flag.total_staked,
        yes_ratio=flag.yes_votes / flag.total_votes if flag.total_votes else 0.0,
        expires_at=flag.expires_at,
        voting_open=pending and now <= flag.expires_at,
        finalizable=pending and now > flag.expires_at,
    )


def proposal_to_snapshot(proposal: Proposal, now: int) -> ProposalSnapshot:
    return ProposalSnapshot(
        proposal_id=proposal.proposal_id,
        description=proposal.description,
        new_threshold=proposal.new_threshold,
        yes_votes=proposal.yes_votes,
        no_votes=proposal.no_votes,
        expiry=proposal.expiry,
        applied=proposal.applied,
        expired=now >= proposal.expiry,
    )


class LedgerDataAPI:
    """Builds JSON-serializable snapshots from the ledger store.

    Read-only: nothing here writes to the store.
    """

    def __init__(self, store: LedgerStore, clock: Clock) -> None:
        self._store = store
        self._clock = clock

    async def get_dashboard(self, params: EngineParameters, activity_limit: int = 20) -> DashboardSnapshot:
        now = await self._clock.now()
        flags = await self._store.get_flags()
        by_status = {status: 0 for status in FlagStatus}
        for f in flags:
            by_status[f.status] += 1
        unpaid = await self._store.get_settlements(
            status=[SettlementStatus.PENDING, SettlementStatus.SENDING, SettlementStatus.FAILED],
        )
        activity = await self._store.get_recent_activity(activity_limit)

        return DashboardSnapshot(
            now=now,
            parameters_version=params.version,
            anomaly_threshold=params.anomaly_threshold,
            consensus_threshold=params.consensus_threshold,
            flag_count=len(flags),
            pending_flags=by_status[FlagStatus.PENDING],
            confirmed_flags=by_status[FlagStatus.CONFIRMED],
            dismissed_flags=by_status[FlagStatus.DISMISSED],
            insufficient_flags=by_status[FlagStatus.INSUFFICIENT_VOTES],
            total_locked_stake=await self._store.get_total_locked_stake(),
            unpaid_settlements=len(unpaid),
            open_flags=[
                flag_to_snapshot(f, now) for f in flags if f.status is FlagStatus.PENDING
            ],
            recent_activity=[
                ActivityEntry(
                    timestamp=a.created_at,
                    event_type=a.event_type,
                    flag_id=a.flag_id,
                    actor=a.actor,
                    amount=a.amount,
                    message=a.message,
                )
                for a in activity
            ],
        )

    async def get_flag_snapshot(self, flag_id: int) -> FlagSnapshot | None:
        flag = await self._store.get_flag(flag_id)
        if flag is None:
            return None
        return flag_to_snapshot(flag, await self._clock.now())

    async def get_proposal_snapshot(self, proposal_id: int) -> ProposalSnapshot | None:
        proposal = await self._store.get_proposal(proposal_id)
        if proposal is None:
            return None
        return proposal_to_snapshot(proposal, await self._clock.now())

    async def get_validator(self, validator: str) -> ValidatorSnapshot:
        locked = await self._store.get_locked_stake(validator)
        positions = await self._store.get_stakes_for_validator(validator)
        settlements = await self._store.get_settlements(validator=validator)
        return ValidatorSnapshot(
            validator=validator,
            locked_stake=locked,
            locked_stake_xlm=_xlm_str(locked),
            open_positions=len(positions),
            settlements=len(settlements),
            correct_votes=len([s for s in settlements if s.correct]),
            wrong_votes=len([s for s in settlements if not s.correct]),
            total_paid_out=sum(
                s.payout for s in settlements if s.status is SettlementStatus.PAID
            ),
        )
