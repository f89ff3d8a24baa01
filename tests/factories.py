"""Synthetic record factories for testing."""

from __future__ import annotations

from anomaly_ledger.models.flags import AnomalyType, Category, Flag, FlagStatus
from anomaly_ledger.models.staking import Settlement, ValidatorStake

from tests.conftest import ORACLE, START, VALIDATOR_1


def submit_args(**overrides) -> dict:
    """Keyword arguments for a submission that passes every check."""
    args = dict(
        tx_id="0xabc123",
        score=85,
        anomaly_type="fraud",
        reason="Round-trip transfers through fresh accounts",
        confidence=90,
        location="pool:XLM-USDC",
        category="defi",
        priority=5,
        expiry=START + 5_000,
        submitter=ORACLE,
    )
    args.update(overrides)
    return args


def make_flag(
    flag_id: int = 0,
    tx_id: str = "0xabc123",
    score: int = 85,
    submitter: str = ORACLE,
    created_at: int = START,
    expires_at: int = START + 144,
    status: FlagStatus = FlagStatus.PENDING,
) -> Flag:
    return Flag(
        flag_id=flag_id,
        tx_id=tx_id,
        score=score,
        flagged=score > 80,
        anomaly_type=AnomalyType.FRAUD,
        reason="test",
        confidence=90,
        submitted_at=created_at,
        submitter=submitter,
        location="",
        category=Category.GENERAL,
        priority=1,
        expiry=expires_at,
        created_at=created_at,
        expires_at=expires_at,
        status=status,
    )


def make_stake(
    flag_id: int = 0,
    validator: str = VALIDATOR_1,
    stake: int = 1_000_000,
    vote: bool = True,
) -> ValidatorStake:
    return ValidatorStake(flag_id=flag_id, validator=validator, stake=stake, vote=vote)


def make_settlement(
    flag_id: int = 0,
    validator: str = VALIDATOR_1,
    stake: int = 1_000_000,
    correct: bool = True,
    payout: int = 1_500_000,
) -> Settlement:
    return Settlement(
        flag_id=flag_id,
        validator=validator,
        stake=stake,
        vote=True,
        correct=correct,
        payout=payout,
    )
