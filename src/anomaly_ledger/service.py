"""Ledger service - wires the engine components behind one serialized entry point."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

import aiosqlite
from stellar_sdk import Keypair

from anomaly_ledger.api.data_api import LedgerDataAPI
from anomaly_ledger.clock import ClockUnavailable, SystemClock
from anomaly_ledger.engine import (
    ConsensusFinalizer,
    FlagSubmission,
    GovernanceProposals,
    ParameterAdmin,
    StakeVoting,
)
from anomaly_ledger.engine.submission import FLAG_COUNTER
from anomaly_ledger.interfaces.clock import Clock
from anomaly_ledger.interfaces.roles import RoleRegistry
from anomaly_ledger.interfaces.transfer import TransferGateway
from anomaly_ledger.models.config import ClockSource, ServiceConfig
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.models.snapshots import to_dict
from anomaly_ledger.models.staking import SettlementStatus
from anomaly_ledger.policy.roles import StaticRoleRegistry
from anomaly_ledger.stellar.clock import LedgerClock
from anomaly_ledger.stellar.payments import StellarPaymentGateway
from anomaly_ledger.storage.sqlite import SQLiteLedgerStore

log = logging.getLogger(__name__)

NETWORK_PASSPHRASES = {
    "testnet": "Test SDF Network ; September 2015",
    "mainnet": "Public Global Stellar Network ; September 2015",
}


class AnomalyLedgerService:
    """Anomaly flag ledger with stake-weighted consensus.

    Every public operation holds one lock for its whole duration, reads the
    parameter register once, and returns an :class:`OperationResult`.
    Collaborators default to the real Stellar/SQLite implementations and can
    be swapped for tests.
    """

    def __init__(
        self,
        cfg: ServiceConfig,
        store: SQLiteLedgerStore | None = None,
        roles: RoleRegistry | None = None,
        transfers: TransferGateway | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._cfg = cfg
        self._lock = asyncio.Lock()

        self.store = store or SQLiteLedgerStore(cfg.db_path)
        self.roles = roles or StaticRoleRegistry(cfg.roles.oracles, cfg.roles.authorities)
        self.transfers = transfers or self._build_gateway(cfg)
        self.clock = clock or self._build_clock(cfg)

        self.submission = FlagSubmission(self.store, self.roles, self.transfers, self.clock)
        self.voting = StakeVoting(self.store, self.transfers, self.clock)
        self.finalizer = ConsensusFinalizer(self.store, self.transfers, self.clock)
        self.governance = GovernanceProposals(self.store, self.roles, self.clock)
        self.admin = ParameterAdmin(self.store, self.roles)
        self.data_api = LedgerDataAPI(self.store, self.clock)

    @staticmethod
    def _build_gateway(cfg: ServiceConfig) -> StellarPaymentGateway:
        passphrase = cfg.network_passphrase or NETWORK_PASSPHRASES.get(cfg.network, "")
        signers = [Keypair.from_secret(s) for s in cfg.signer_secrets]
        return StellarPaymentGateway(cfg.horizon_url, passphrase, signers, cfg.base_fee)

    @staticmethod
    def _build_clock(cfg: ServiceConfig) -> Clock:
        if cfg.clock is ClockSource.LEDGER:
            return LedgerClock(cfg.rpc_url)
        return SystemClock()

    # ── Lifecycle ──────────────────────────────────────────

    async def initialize(self) -> EngineParameters:
        """Open the store and seed the parameter register on first start."""
        await self.store.initialize()
        params = await self.store.get_parameters()
        if params is None:
            params = EngineParameters.from_config(self._cfg.engine, self._cfg.roles)
            async with self.store.transaction():
                await self.store.save_parameters(params)
                await self.store.log_activity("ledger_initialized", "Parameter register seeded")
            log.info("Seeded engine parameters (v%d)", params.version)
        else:
            log.debug("Loaded engine parameters v%d", params.version)
        return params

    async def close(self) -> None:
        await self.store.close()

    async def _run(
        self, name: str, op: Callable[[EngineParameters], Awaitable[OperationResult]],
    ) -> OperationResult:
        """Serialize ``op`` and turn storage/clock faults into failed results."""
        async with self._lock:
            try:
                params = await self.store.get_parameters()
                if params is None:
                    params = EngineParameters.from_config(self._cfg.engine, self._cfg.roles)
                return await op(params)
            except aiosqlite.Error as exc:
                log.exception("%s: storage error", name)
                return OperationResult.fail(ErrorCode.STORAGE_ERROR, detail=str(exc))
            except ClockUnavailable as exc:
                log.error("%s: clock unavailable: %s", name, exc)
                return OperationResult.fail(ErrorCode.CLOCK_UNAVAILABLE, detail=str(exc))

    # ── Flags ──────────────────────────────────────────────

    async def submit_flag(
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
    ) -> OperationResult:
        return await self._run(
            "submit_flag",
            lambda p: self.submission.submit(
                tx_id, score, anomaly_type, reason, confidence, location,
                category, priority, expiry, submitter, p,
            ),
        )

    async def update_flag(self, flag_id: int, score: int, reason: str, caller: str) -> OperationResult:
        return await self._run(
            "update_flag", lambda p: self.submission.update(flag_id, score, reason, caller, p),
        )

    async def stake_and_vote(
        self, flag_id: int, vote: bool, amount: int, validator: str,
    ) -> OperationResult:
        return await self._run(
            "stake_and_vote",
            lambda p: self.voting.stake_and_vote(flag_id, vote, amount, validator, p),
        )

    async def finalize_flag(self, flag_id: int) -> OperationResult:
        return await self._run("finalize_flag", lambda p: self.finalizer.finalize(flag_id, p))

    async def retry_settlements(self, flag_id: int | None = None) -> OperationResult:
        return await self._run(
            "retry_settlements", lambda p: self.finalizer.retry_settlements(p, flag_id),
        )

    # ── Governance ─────────────────────────────────────────

    async def create_proposal(
        self, description: str, new_threshold: int, expiry: int, proposer: str,
    ) -> OperationResult:
        return await self._run(
            "create_proposal",
            lambda p: self.governance.create_proposal(description, new_threshold, expiry, proposer, p),
        )

    async def vote_on_proposal(self, proposal_id: int, support: bool, voter: str) -> OperationResult:
        return await self._run(
            "vote_on_proposal",
            lambda p: self.governance.vote_on_proposal(proposal_id, support, voter, p),
        )

    # ── Admin ──────────────────────────────────────────────

    async def set_parameter(self, name: str, value: int, caller: str) -> OperationResult:
        return await self._run(
            "set_parameter", lambda p: self.admin.set_parameter(name, value, caller, p),
        )

    async def set_authority_account(self, account: str, caller: str) -> OperationResult:
        return await self._run(
            "set_authority_account", lambda p: self.admin.set_authority_account(account, caller, p),
        )

    async def set_oracle_principal(self, oracle: str, caller: str) -> OperationResult:
        return await self._run(
            "set_oracle_principal", lambda p: self.admin.set_oracle_principal(oracle, caller, p),
        )

    async def set_escrow_account(self, account: str, caller: str) -> OperationResult:
        return await self._run(
            "set_escrow_account", lambda p: self.admin.set_escrow_account(account, caller, p),
        )

    # ── Read-only views ────────────────────────────────────

    async def _read(self, name: str, fetch: Callable[[], Awaitable]) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            return OperationResult.success(await fetch())
        return await self._run(name, op)

    async def get_flag(self, flag_id: int) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            flag = await self.store.get_flag(flag_id)
            if flag is None:
                return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
            return OperationResult.success(flag)
        return await self._run("get_flag", op)

    async def get_flag_by_tx_id(self, tx_id: str) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            flag_id = await self.store.get_flag_id_by_tx(tx_id)
            if flag_id is None:
                return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
            return OperationResult.success(await self.store.get_flag(flag_id))
        return await self._run("get_flag_by_tx_id", op)

    async def get_flag_count(self) -> OperationResult:
        return await self._read("get_flag_count", lambda: self.store.peek_id(FLAG_COUNTER))

    async def check_flag_existence(self, tx_id: str) -> OperationResult:
        async def exists() -> bool:
            return await self.store.get_flag_id_by_tx(tx_id) is not None
        return await self._read("check_flag_existence", exists)

    async def get_anomaly_threshold(self) -> OperationResult:
        return await self._run(
            "get_anomaly_threshold",
            lambda p: _succeed(p.anomaly_threshold),
        )

    async def get_parameters(self) -> OperationResult:
        return await self._run("get_parameters", _succeed)

    async def get_proposal(self, proposal_id: int) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            proposal = await self.store.get_proposal(proposal_id)
            if proposal is None:
                return OperationResult.fail(ErrorCode.PROPOSAL_NOT_FOUND)
            return OperationResult.success(proposal)
        return await self._run("get_proposal", op)

    async def get_flag_update(self, flag_id: int) -> OperationResult:
        return await self._read("get_flag_update", lambda: self.store.get_flag_update(flag_id))

    async def get_validator_stake(self, flag_id: int, validator: str) -> OperationResult:
        async def stake() -> int:
            entry = await self.store.get_validator_stake(flag_id, validator)
            return entry.stake if entry else 0
        return await self._read("get_validator_stake", stake)

    async def get_locked_stake(self, validator: str) -> OperationResult:
        return await self._read("get_locked_stake", lambda: self.store.get_locked_stake(validator))

    async def get_settlements(
        self,
        flag_id: int | None = None,
        status: list[SettlementStatus] | None = None,
        validator: str | None = None,
    ) -> OperationResult:
        return await self._read(
            "get_settlements",
            lambda: self.store.get_settlements(flag_id=flag_id, status=status, validator=validator),
        )

    async def get_dashboard(self) -> OperationResult:
        return await self._run(
            "get_dashboard", lambda p: _wrap(self.data_api.get_dashboard(p)),
        )

    async def get_flag_snapshot(self, flag_id: int) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            snapshot = await self.data_api.get_flag_snapshot(flag_id)
            if snapshot is None:
                return OperationResult.fail(ErrorCode.FLAG_NOT_FOUND)
            return OperationResult.success(snapshot)
        return await self._run("get_flag_snapshot", op)

    async def get_proposal_snapshot(self, proposal_id: int) -> OperationResult:
        async def op(_params: EngineParameters) -> OperationResult:
            snapshot = await self.data_api.get_proposal_snapshot(proposal_id)
            if snapshot is None:
                return OperationResult.fail(ErrorCode.PROPOSAL_NOT_FOUND)
            return OperationResult.success(snapshot)
        return await self._run("get_proposal_snapshot", op)

    async def get_validator(self, validator: str) -> OperationResult:
        return await self._read("get_validator", lambda: self.data_api.get_validator(validator))

    async def get_dashboard_dict(self) -> dict:
        """Dashboard as plain JSON-ready data."""
        result = await self.get_dashboard()
        return to_dict(result.value) if result.ok else {"error": result.error.value}


async def _succeed(value) -> OperationResult:
    return OperationResult.success(value)


async def _wrap(pending: Awaitable) -> OperationResult:
    return OperationResult.success(await pending)
