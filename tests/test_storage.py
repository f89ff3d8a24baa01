"""SQLite ledger store: counters, transactions, constraints."""

from __future__ import annotations

import aiosqlite
import pytest

from anomaly_ledger.models.flags import FlagStatus
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.staking import SettlementStatus
from anomaly_ledger.storage.sqlite import SQLiteLedgerStore
from tests.conftest import VALIDATOR_1, VALIDATOR_2
from tests.factories import make_flag, make_settlement, make_stake


async def test_counters_allocate_sequentially(store):
    assert await store.peek_id("flag") == 0
    async with store.transaction():
        assert await store.allocate_id("flag") == 0
        assert await store.allocate_id("flag") == 1
    assert await store.peek_id("flag") == 2
    assert await store.peek_id("proposal") == 0


async def test_transaction_rolls_back_on_error(store):
    with pytest.raises(RuntimeError):
        async with store.transaction():
            await store.allocate_id("flag")
            await store.insert_flag(make_flag())
            raise RuntimeError("boom")

    assert await store.get_flag(0) is None
    assert await store.peek_id("flag") == 0


async def test_tx_id_is_unique(store):
    async with store.transaction():
        await store.insert_flag(make_flag(flag_id=0, tx_id="dup"))

    with pytest.raises(aiosqlite.IntegrityError):
        async with store.transaction():
            await store.insert_flag(make_flag(flag_id=1, tx_id="dup"))

    assert await store.get_flag_id_by_tx("dup") == 0


async def test_flag_round_trip_and_status_filter(store):
    async with store.transaction():
        await store.insert_flag(make_flag(flag_id=0, tx_id="a"))
        await store.insert_flag(make_flag(flag_id=1, tx_id="b"))
        await store.set_flag_status(1, FlagStatus.DISMISSED)

    flag = await store.get_flag(0)
    assert flag == make_flag(flag_id=0, tx_id="a")
    pending = await store.get_flags([FlagStatus.PENDING])
    assert [f.flag_id for f in pending] == [0]
    assert len(await store.get_flags()) == 2


async def test_add_vote_keeps_total_in_step(store):
    async with store.transaction():
        await store.insert_flag(make_flag())
        await store.add_vote(0, True, 3_000_000)
        await store.add_vote(0, False, 1_000_000)

    flag = await store.get_flag(0)
    assert (flag.yes_votes, flag.no_votes, flag.total_staked) == (3_000_000, 1_000_000, 4_000_000)


async def test_locked_stake_never_negative(store):
    async with store.transaction():
        assert await store.adjust_locked_stake(VALIDATOR_1, 2_000_000) == 2_000_000
        assert await store.adjust_locked_stake(VALIDATOR_1, -500_000) == 1_500_000

    with pytest.raises(aiosqlite.IntegrityError):
        async with store.transaction():
            await store.adjust_locked_stake(VALIDATOR_1, -2_000_000)

    assert await store.get_locked_stake(VALIDATOR_1) == 1_500_000
    assert await store.get_locked_stake(VALIDATOR_2) == 0


async def test_locked_stake_unlocks_to_zero(store):
    async with store.transaction():
        await store.adjust_locked_stake(VALIDATOR_1, 4_000_000)
    async with store.transaction():
        assert await store.adjust_locked_stake(VALIDATOR_1, -4_000_000) == 0

    assert await store.get_total_locked_stake() == 0


async def test_unlock_without_locked_row_fails(store):
    with pytest.raises(aiosqlite.IntegrityError):
        async with store.transaction():
            await store.adjust_locked_stake(VALIDATOR_2, -1)
    assert await store.get_locked_stake(VALIDATOR_2) == 0


async def test_stakes_by_flag_and_validator(store):
    async with store.transaction():
        await store.save_validator_stake(make_stake(flag_id=0, validator=VALIDATOR_1))
        await store.save_validator_stake(make_stake(flag_id=0, validator=VALIDATOR_2, vote=False))
        await store.save_validator_stake(make_stake(flag_id=1, validator=VALIDATOR_1))

    assert [s.validator for s in await store.get_stakes_for_flag(0)] == [VALIDATOR_1, VALIDATOR_2]
    assert [s.flag_id for s in await store.get_stakes_for_validator(VALIDATOR_1)] == [0, 1]

    async with store.transaction():
        await store.delete_validator_stake(0, VALIDATOR_1)
    assert await store.get_validator_stake(0, VALIDATOR_1) is None
    assert (await store.get_validator_stake(0, VALIDATOR_2)).vote is False


async def test_parameters_persist(store):
    assert await store.get_parameters() is None

    params = EngineParameters(escrow_account="GESCROW").evolve(anomaly_threshold=70)
    async with store.transaction():
        await store.save_parameters(params)

    loaded = await store.get_parameters()
    assert loaded == params
    assert loaded.version == 2
    assert loaded.authority_account is None


async def test_parameters_survive_reopen(tmp_path):
    db_path = str(tmp_path / "nested" / "ledger.db")
    first = SQLiteLedgerStore(db_path)
    await first.initialize()
    async with first.transaction():
        await first.save_parameters(EngineParameters(min_stake=42))
    await first.close()

    second = SQLiteLedgerStore(db_path)
    await second.initialize()
    try:
        assert (await second.get_parameters()).min_stake == 42
    finally:
        await second.close()


async def test_settlement_once_per_validator(store):
    async with store.transaction():
        settlement_id = await store.save_settlement(make_settlement())

    with pytest.raises(aiosqlite.IntegrityError):
        async with store.transaction():
            await store.save_settlement(make_settlement(payout=9))

    async with store.transaction():
        await store.update_settlement(settlement_id, SettlementStatus.PAID, tx_hash="abc")
    [saved] = await store.get_settlements(flag_id=0)
    assert saved.status is SettlementStatus.PAID
    assert saved.tx_hash == "abc"
    assert saved.payout == 1_500_000


async def test_settlement_filters(store):
    async with store.transaction():
        first = await store.save_settlement(make_settlement(flag_id=0, validator=VALIDATOR_1))
        await store.save_settlement(make_settlement(flag_id=1, validator=VALIDATOR_2))
        await store.update_settlement(first, SettlementStatus.FAILED, error="down")

    failed = await store.get_settlements(status=[SettlementStatus.FAILED])
    assert [s.validator for s in failed] == [VALIDATOR_1]
    assert [s.flag_id for s in await store.get_settlements(validator=VALIDATOR_2)] == [1]
    assert len(await store.get_settlements()) == 2


async def test_proposal_votes(store):
    async with store.transaction():
        await store.insert_proposal(
            Proposal(proposal_id=0, description="d", new_threshold=70, expiry=10, proposer="G")
        )
        await store.record_proposal_vote(0, True)
        await store.record_proposal_vote(0, True)
        await store.record_proposal_vote(0, False)
        await store.mark_proposal_applied(0)

    proposal = await store.get_proposal(0)
    assert (proposal.yes_votes, proposal.no_votes) == (2, 1)
    assert proposal.applied is True
    assert [p.proposal_id for p in await store.get_proposals()] == [0]


async def test_recent_activity_newest_first(store):
    async with store.transaction():
        await store.log_activity("first", "one")
        await store.log_activity("second", "two", flag_id=3, actor="G", amount=5)

    activity = await store.get_recent_activity(10)
    assert [a.event_type for a in activity] == ["second", "first"]
    assert activity[0].flag_id == 3
    assert activity[0].amount == 5
    assert len(await store.get_recent_activity(1)) == 1
