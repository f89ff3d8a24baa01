"""Governance proposals - oracle votes that move the anomaly threshold."""

from __future__ import annotations

import logging

from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.roles import RoleRegistry
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.interfaces.store import LedgerStore

log = logging.getLogger(__name__)

PROPOSAL_COUNTER = "proposal"
MAX_DESCRIPTION_LENGTH = 200


class GovernanceProposals:
    """Creates threshold proposals and tallies unweighted oracle votes.

    The margin check runs on every vote: the threshold changes on the vote
    where ``yes > no + margin`` first holds, not at the proposal's expiry.
    """

    def __init__(self, store: LedgerStore, roles: RoleRegistry, clock: Clock) -> None:
        self._store = store
        self._roles = roles
        self._clock = clock

    async def create_proposal(
        self,
        description: str,
        new_threshold: int,
        expiry: int,
        proposer: str,
        params: EngineParameters,
    ) -> OperationResult:
        if len(description) > MAX_DESCRIPTION_LENGTH:
            return OperationResult.fail(ErrorCode.INVALID_REASON)
        if not 0 < new_threshold <= 100:
            return OperationResult.fail(ErrorCode.INVALID_THRESHOLD)
        if expiry <= await self._clock.now():
            return OperationResult.fail(ErrorCode.INVALID_EXPIRY)
        if params.authority_account is None:
            return OperationResult.fail(ErrorCode.AUTHORITY_NOT_VERIFIED)
        if not await self._roles.is_authorized_authority(proposer):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)

        async with self._store.transaction():
            proposal_id = await self._store.allocate_id(PROPOSAL_COUNTER)
            await self._store.insert_proposal(
                Proposal(
                    proposal_id=proposal_id,
                    description=description,
                    new_threshold=new_threshold,
                    expiry=expiry,
                    proposer=proposer,
                )
            )
            await self._store.log_activity(
                "proposal_created",
                f"Proposal {proposal_id}: threshold -> {new_threshold}",
                actor=proposer,
            )

        log.info("Proposal %d created by %s (threshold %d)", proposal_id, proposer[:16], new_threshold)
        return OperationResult.success(proposal_id)

    async def vote_on_proposal(
        self,
        proposal_id: int,
        support: bool,
        voter: str,
        params: EngineParameters,
    ) -> OperationResult:
        """Count one vote. The result value says whether the threshold changed."""
        proposal = await self._store.get_proposal(proposal_id)
        if proposal is None:
            return OperationResult.fail(ErrorCode.PROPOSAL_NOT_FOUND)
        if await self._clock.now() >= proposal.expiry:
            return OperationResult.fail(ErrorCode.PROPOSAL_EXPIRED)
        if params.oracle_principal is None:
            return OperationResult.fail(ErrorCode.ORACLE_NOT_CONFIGURED)
        if not await self._roles.is_authorized_oracle(voter):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)

        yes = proposal.yes_votes + (1 if support else 0)
        no = proposal.no_votes + (0 if support else 1)
        applied = yes > no + params.proposal_margin

        async with self._store.transaction():
            await self._store.record_proposal_vote(proposal_id, support)
            if applied:
                await self._store.save_parameters(
                    params.evolve(anomaly_threshold=proposal.new_threshold)
                )
                await self._store.mark_proposal_applied(proposal_id)
                await self._store.log_activity(
                    "threshold_changed",
                    f"Proposal {proposal_id} passed {yes}-{no}: anomaly threshold"
                    f" {params.anomaly_threshold} -> {proposal.new_threshold}",
                    actor=voter,
                )

        if applied:
            log.info(
                "Proposal %d applied: anomaly threshold %d -> %d",
                proposal_id, params.anomaly_threshold, proposal.new_threshold,
            )
        return OperationResult.success(applied)
