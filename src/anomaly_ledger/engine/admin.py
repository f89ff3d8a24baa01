"""Authority-only setters for the engine parameter register."""

from __future__ import annotations

import logging
from collections.abc import Callable

from anomaly_ledger.interfaces.roles import RoleRegistry
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.results import ErrorCode, OperationResult
from anomaly_ledger.interfaces.store import LedgerStore

log = logging.getLogger(__name__)

# name -> (validator, error code on rejection)
PARAMETER_RULES: dict[str, tuple[Callable[[int], bool], ErrorCode]] = {
    "anomaly_threshold": (lambda v: 0 < v <= 100, ErrorCode.INVALID_THRESHOLD),
    "consensus_threshold": (lambda v: 0 < v <= 100, ErrorCode.INVALID_THRESHOLD),
    "max_flags": (lambda v: v > 0, ErrorCode.INVALID_PARAMETER),
    "submission_fee": (lambda v: v >= 0, ErrorCode.INVALID_PARAMETER),
    "min_stake": (lambda v: v > 0, ErrorCode.INVALID_PARAMETER),
    "voting_duration": (lambda v: v > 0, ErrorCode.INVALID_PARAMETER),
    "slash_percent": (lambda v: 0 <= v <= 100, ErrorCode.INVALID_PARAMETER),
    "reward_bonus": (lambda v: v >= 0, ErrorCode.INVALID_PARAMETER),
    "proposal_margin": (lambda v: v >= 0, ErrorCode.INVALID_PARAMETER),
}


class ParameterAdmin:
    """Applies parameter changes requested by an authority."""

    def __init__(self, store: LedgerStore, roles: RoleRegistry) -> None:
        self._store = store
        self._roles = roles

    async def set_parameter(
        self, name: str, value: int, caller: str, params: EngineParameters,
    ) -> OperationResult:
        if not await self._roles.is_authorized_authority(caller):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)
        rule = PARAMETER_RULES.get(name)
        if rule is None:
            return OperationResult.fail(ErrorCode.INVALID_PARAMETER, detail=f"unknown parameter {name}")
        check, error = rule
        if not check(value):
            return OperationResult.fail(error, detail=f"{name}={value}")
        return await self._apply(caller, params, **{name: value})

    async def set_authority_account(
        self, account: str, caller: str, params: EngineParameters,
    ) -> OperationResult:
        """Set the fee-receiving authority account. Allowed once."""
        if not await self._roles.is_authorized_authority(caller):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)
        if not account or account == caller:
            return OperationResult.fail(ErrorCode.INVALID_ACCOUNT)
        if params.authority_account is not None:
            return OperationResult.fail(ErrorCode.AUTHORITY_ALREADY_SET)
        return await self._apply(caller, params, authority_account=account)

    async def set_oracle_principal(
        self, oracle: str, caller: str, params: EngineParameters,
    ) -> OperationResult:
        if not await self._roles.is_authorized_authority(caller):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)
        if not oracle or oracle == caller:
            return OperationResult.fail(ErrorCode.INVALID_ACCOUNT)
        if params.authority_account is None:
            return OperationResult.fail(ErrorCode.AUTHORITY_NOT_VERIFIED)
        return await self._apply(caller, params, oracle_principal=oracle)

    async def set_escrow_account(
        self, account: str, caller: str, params: EngineParameters,
    ) -> OperationResult:
        if not await self._roles.is_authorized_authority(caller):
            return OperationResult.fail(ErrorCode.NOT_AUTHORIZED)
        if not account:
            return OperationResult.fail(ErrorCode.INVALID_ACCOUNT)
        return await self._apply(caller, params, escrow_account=account)

    async def _apply(self, caller: str, params: EngineParameters, **changes) -> OperationResult:
        updated = params.evolve(**changes)
        summary = ", ".join(f"{k}={v}" for k, v in changes.items())
        async with self._store.transaction():
            await self._store.save_parameters(updated)
            await self._store.log_activity(
                "parameters_changed", f"v{updated.version}: {summary}", actor=caller,
            )
        log.info("Parameters v%d by %s: %s", updated.version, caller[:16], summary)
        return OperationResult.success(updated.version)
