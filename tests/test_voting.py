"""Stake-weighted voting on pending flags."""

from __future__ import annotations

import asyncio

import aiosqlite

from anomaly_ledger.models.results import ErrorCategory, ErrorCode
from tests.conftest import (
    ESCROW,
    START,
    VALIDATOR_1,
    VALIDATOR_2,
    make_roles,
    make_test_config,
    start_service,
)
from tests.factories import submit_args
from tests.mocks import MockTransferGateway


async def _flag(service, tx_id: str = "0xabc123") -> int:
    result = await service.submit_flag(**submit_args(tx_id=tx_id))
    assert result.ok
    return result.value


async def test_stake_yes_vote(service, transfers):
    flag_id = await _flag(service)

    result = await service.stake_and_vote(flag_id, True, 4_000_000, VALIDATOR_1)

    assert result.ok
    assert result.value == 4_000_000

    flag = (await service.get_flag(flag_id)).value
    assert flag.yes_votes == 4_000_000
    assert flag.no_votes == 0
    assert flag.total_staked == 4_000_000
    assert (await service.get_validator_stake(flag_id, VALIDATOR_1)).value == 4_000_000
    assert (await service.get_locked_stake(VALIDATOR_1)).value == 4_000_000
    assert transfers.calls[-1] == (4_000_000, VALIDATOR_1, ESCROW)


async def test_yes_and_no_tallies_stay_consistent(service):
    flag_id = await _flag(service)

    await service.stake_and_vote(flag_id, True, 3_000_000, VALIDATOR_1)
    await service.stake_and_vote(flag_id, False, 2_000_000, VALIDATOR_2)

    flag = (await service.get_flag(flag_id)).value
    assert flag.yes_votes == 3_000_000
    assert flag.no_votes == 2_000_000
    assert flag.total_staked == flag.yes_votes + flag.no_votes


async def test_locked_stake_spans_flags(service):
    first = await _flag(service, "tx-1")
    second = await _flag(service, "tx-2")

    await service.stake_and_vote(first, True, 1_000_000, VALIDATOR_1)
    await service.stake_and_vote(second, False, 2_500_000, VALIDATOR_1)

    assert (await service.get_locked_stake(VALIDATOR_1)).value == 3_500_000
    snapshot = (await service.get_validator(VALIDATOR_1)).value
    assert snapshot.open_positions == 2


async def test_second_vote_rejected(service, transfers):
    flag_id = await _flag(service)
    await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)
    calls_before = len(transfers.calls)

    same_side = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)
    other_side = await service.stake_and_vote(flag_id, False, 5_000_000, VALIDATOR_1)

    assert same_side.error is ErrorCode.ALREADY_VOTED
    assert other_side.error is ErrorCode.ALREADY_VOTED
    assert same_side.error.category is ErrorCategory.STATE_CONFLICT
    assert len(transfers.calls) == calls_before

    flag = (await service.get_flag(flag_id)).value
    assert flag.yes_votes == 1_000_000
    assert flag.no_votes == 0


async def test_concurrent_votes_serialize(service):
    """Two racing votes from one validator: exactly one lands."""
    flag_id = await _flag(service)

    results = await asyncio.gather(
        service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1),
        service.stake_and_vote(flag_id, False, 1_000_000, VALIDATOR_1),
    )

    assert sorted(r.ok for r in results) == [False, True]
    assert [r.error for r in results if not r.ok] == [ErrorCode.ALREADY_VOTED]
    flag = (await service.get_flag(flag_id)).value
    assert flag.total_staked == 1_000_000


async def test_below_min_stake(service, transfers):
    flag_id = await _flag(service)
    calls_before = len(transfers.calls)

    result = await service.stake_and_vote(flag_id, True, 999_999, VALIDATOR_1)

    assert result.error is ErrorCode.MIN_STAKE_VIOLATION
    assert len(transfers.calls) == calls_before


async def test_unknown_flag(service):
    result = await service.stake_and_vote(42, True, 1_000_000, VALIDATOR_1)
    assert result.error is ErrorCode.FLAG_NOT_FOUND


async def test_voting_open_through_expiry(service, clock):
    flag_id = await _flag(service)
    clock.set(START + 144)

    result = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)
    assert result.ok


async def test_voting_closed_after_expiry(service, clock):
    flag_id = await _flag(service)
    clock.set(START + 145)

    result = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)
    assert result.error is ErrorCode.VOTING_CLOSED


async def test_escrow_required():
    cfg = make_test_config(roles=make_roles(escrow_account=""))
    transfers = MockTransferGateway()
    service = await start_service(cfg, transfers)
    try:
        flag_id = (await service.submit_flag(**submit_args())).value
        result = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)
        assert result.error is ErrorCode.ESCROW_NOT_CONFIGURED
        assert len(transfers.calls) == 1  # only the submission fee
    finally:
        await service.close()


async def test_stake_transfer_failure_writes_nothing(service, transfers):
    flag_id = await _flag(service)
    transfers.succeed = False

    result = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)

    assert result.error is ErrorCode.TRANSFER_FAILED
    assert result.error.category is ErrorCategory.EXTERNAL
    flag = (await service.get_flag(flag_id)).value
    assert flag.total_staked == 0
    assert (await service.get_validator_stake(flag_id, VALIDATOR_1)).value == 0
    assert (await service.get_locked_stake(VALIDATOR_1)).value == 0

    transfers.succeed = True
    assert (await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)).ok


async def test_stake_refunded_when_write_fails(service, transfers, monkeypatch):
    flag_id = await _flag(service)

    async def broken(*args, **kwargs):
        raise aiosqlite.OperationalError("database is locked")

    monkeypatch.setattr(service.store, "add_vote", broken)

    result = await service.stake_and_vote(flag_id, True, 1_000_000, VALIDATOR_1)

    assert result.error is ErrorCode.STORAGE_ERROR
    assert transfers.calls[-2:] == [
        (1_000_000, VALIDATOR_1, ESCROW),
        (1_000_000, ESCROW, VALIDATOR_1),
    ]
    monkeypatch.undo()
    assert (await service.get_validator_stake(flag_id, VALIDATOR_1)).value == 0
    assert (await service.get_locked_stake(VALIDATOR_1)).value == 0
    assert (await service.get_flag(flag_id)).value.total_staked == 0
