"""SQLite implementation of the LedgerStore protocol."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import aiosqlite

from anomaly_ledger.models.flags import AnomalyType, Category, Flag, FlagStatus, FlagUpdate
from anomaly_ledger.models.governance import Proposal
from anomaly_ledger.models.parameters import EngineParameters
from anomaly_ledger.models.records import ActivityRecord
from anomaly_ledger.models.staking import Settlement, SettlementStatus, ValidatorStake

SCHEMA = """
-- Versioned engine parameter register
CREATE TABLE IF NOT EXISTS parameters (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    version INTEGER NOT NULL,
    anomaly_threshold INTEGER NOT NULL,
    min_score INTEGER NOT NULL,
    max_score INTEGER NOT NULL,
    max_flags INTEGER NOT NULL,
    submission_fee INTEGER NOT NULL,
    min_stake INTEGER NOT NULL,
    voting_duration INTEGER NOT NULL,
    consensus_threshold INTEGER NOT NULL,
    slash_percent INTEGER NOT NULL,
    reward_bonus INTEGER NOT NULL,
    proposal_margin INTEGER NOT NULL,
    authority_account TEXT,
    oracle_principal TEXT,
    escrow_account TEXT,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Monotonic id counters (flag, proposal)
CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);

-- Flags; the UNIQUE tx_id constraint is the secondary index
CREATE TABLE IF NOT EXISTS flags (
    flag_id INTEGER PRIMARY KEY,
    tx_id TEXT NOT NULL UNIQUE,
    score INTEGER NOT NULL,
    flagged INTEGER NOT NULL,
    anomaly_type TEXT NOT NULL,
    reason TEXT NOT NULL,
    confidence INTEGER NOT NULL,
    submitted_at INTEGER NOT NULL,
    submitter TEXT NOT NULL,
    location TEXT NOT NULL,
    category TEXT NOT NULL,
    priority INTEGER NOT NULL,
    expiry INTEGER NOT NULL,
    created_at INTEGER NOT NULL,
    expires_at INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    yes_votes INTEGER NOT NULL DEFAULT 0,
    no_votes INTEGER NOT NULL DEFAULT 0,
    total_staked INTEGER NOT NULL DEFAULT 0,
    CHECK (total_staked = yes_votes + no_votes)
);
CREATE INDEX IF NOT EXISTS idx_flags_status ON flags(status);

-- Last update per flag
CREATE TABLE IF NOT EXISTS flag_updates (
    flag_id INTEGER PRIMARY KEY,
    score INTEGER NOT NULL,
    flagged INTEGER NOT NULL,
    reason TEXT NOT NULL,
    updated_at INTEGER NOT NULL,
    updater TEXT NOT NULL
);

-- Stake locked per (flag, validator) while the flag is unresolved
CREATE TABLE IF NOT EXISTS validator_stakes (
    flag_id INTEGER NOT NULL,
    validator TEXT NOT NULL,
    stake INTEGER NOT NULL,
    vote INTEGER NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (flag_id, validator)
);
CREATE INDEX IF NOT EXISTS idx_stakes_validator ON validator_stakes(validator);

-- Per-validator running total of locked stake
CREATE TABLE IF NOT EXISTS validator_totals (
    validator TEXT PRIMARY KEY,
    locked_stake INTEGER NOT NULL DEFAULT 0 CHECK (locked_stake >= 0),
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Governance proposals
CREATE TABLE IF NOT EXISTS proposals (
    proposal_id INTEGER PRIMARY KEY,
    description TEXT NOT NULL,
    new_threshold INTEGER NOT NULL,
    yes_votes INTEGER NOT NULL DEFAULT 0,
    no_votes INTEGER NOT NULL DEFAULT 0,
    expiry INTEGER NOT NULL,
    proposer TEXT NOT NULL,
    applied INTEGER NOT NULL DEFAULT 0
);

-- Reward / slash payouts
CREATE TABLE IF NOT EXISTS settlements (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    flag_id INTEGER NOT NULL,
    validator TEXT NOT NULL,
    stake INTEGER NOT NULL,
    vote INTEGER NOT NULL,
    correct INTEGER NOT NULL,
    payout INTEGER NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    error TEXT,
    tx_hash TEXT,
    created_at TEXT NOT NULL DEFAULT (datetime('now')),
    updated_at TEXT NOT NULL DEFAULT (datetime('now')),
    UNIQUE (flag_id, validator)
);
CREATE INDEX IF NOT EXISTS idx_settlements_status ON settlements(status);

-- Activity log
CREATE TABLE IF NOT EXISTS activity_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    event_type TEXT NOT NULL,
    flag_id INTEGER,
    actor TEXT,
    amount INTEGER,
    message TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE INDEX IF NOT EXISTS idx_activity_created ON activity_log(created_at);
"""

_PARAMETER_COLUMNS = (
    "version", "anomaly_threshold", "min_score", "max_score", "max_flags",
    "submission_fee", "min_stake", "voting_duration", "consensus_threshold",
    "slash_percent", "reward_bonus", "proposal_margin",
    "authority_account", "oracle_principal", "escrow_account",
)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteLedgerStore:
    """SQLite-backed implementation of the LedgerStore protocol."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db is not None:
            return
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SQLiteLedgerStore]:
        """Group writes into one commit. Not reentrant."""
        try:
            yield self
        except BaseException:
            await self.db.rollback()
            raise
        else:
            await self.db.commit()

    # ── Parameters ─────────────────────────────────────────

    async def get_parameters(self) -> EngineParameters | None:
        async with self.db.execute("SELECT * FROM parameters WHERE id=1") as cur:
            row = await cur.fetchone()
            if row is None:
                return None
            return EngineParameters(**{c: row[c] for c in _PARAMETER_COLUMNS})

    async def save_parameters(self, params: EngineParameters) -> None:
        columns = ", ".join(_PARAMETER_COLUMNS)
        placeholders = ", ".join("?" for _ in _PARAMETER_COLUMNS)
        updates = ", ".join(f"{c}=excluded.{c}" for c in _PARAMETER_COLUMNS)
        await self.db.execute(
            f"INSERT INTO parameters (id, {columns}, updated_at) VALUES (1, {placeholders}, ?)"
            f" ON CONFLICT(id) DO UPDATE SET {updates}, updated_at=excluded.updated_at",
            (*(getattr(params, c) for c in _PARAMETER_COLUMNS), _now()),
        )

    # ── Counters ───────────────────────────────────────────

    async def peek_id(self, name: str) -> int:
        """Next id that ``allocate_id`` would hand out (= records created so far)."""
        async with self.db.execute("SELECT value FROM counters WHERE name=?", (name,)) as cur:
            row = await cur.fetchone()
            return row["value"] if row else 0

    async def allocate_id(self, name: str) -> int:
        current = await self.peek_id(name)
        await self.db.execute(
            "INSERT INTO counters (name, value) VALUES (?, ?)"
            " ON CONFLICT(name) DO UPDATE SET value=excluded.value",
            (name, current + 1),
        )
        return current

    # ── Flags ──────────────────────────────────────────────

    async def insert_flag(self, flag: Flag) -> None:
        await self.db.execute(
            "INSERT INTO flags"
            " (flag_id, tx_id, score, flagged, anomaly_type, reason, confidence,"
            "  submitted_at, submitter, location, category, priority, expiry,"
            "  created_at, expires_at, status, yes_votes, no_votes, total_staked)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                flag.flag_id, flag.tx_id, flag.score, int(flag.flagged),
                flag.anomaly_type.value, flag.reason, flag.confidence,
                flag.submitted_at, flag.submitter, flag.location,
                flag.category.value, flag.priority, flag.expiry,
                flag.created_at, flag.expires_at, flag.status.value,
                flag.yes_votes, flag.no_votes, flag.total_staked,
            ),
        )

    async def get_flag(self, flag_id: int) -> Flag | None:
        async with self.db.execute("SELECT * FROM flags WHERE flag_id=?", (flag_id,)) as cur:
            row = await cur.fetchone()
            return _row_to_flag(row) if row else None

    async def get_flag_id_by_tx(self, tx_id: str) -> int | None:
        async with self.db.execute("SELECT flag_id FROM flags WHERE tx_id=?", (tx_id,)) as cur:
            row = await cur.fetchone()
            return row["flag_id"] if row else None

    async def get_flags(self, status: list[FlagStatus] | None = None) -> list[Flag]:
        if status:
            placeholders = ",".join("?" for _ in status)
            sql = f"SELECT * FROM flags WHERE status IN ({placeholders}) ORDER BY flag_id"
            async with self.db.execute(sql, [s.value for s in status]) as cur:
                return [_row_to_flag(row) async for row in cur]
        async with self.db.execute("SELECT * FROM flags ORDER BY flag_id") as cur:
            return [_row_to_flag(row) async for row in cur]

    async def update_flag_report(
        self, flag_id: int, score: int, flagged: bool, reason: str, submitted_at: int
    ) -> None:
        await self.db.execute(
            "UPDATE flags SET score=?, flagged=?, reason=?, submitted_at=? WHERE flag_id=?",
            (score, int(flagged), reason, submitted_at, flag_id),
        )

    async def save_flag_update(self, update: FlagUpdate) -> None:
        await self.db.execute(
            "INSERT OR REPLACE INTO flag_updates"
            " (flag_id, score, flagged, reason, updated_at, updater)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (
                update.flag_id, update.score, int(update.flagged),
                update.reason, update.updated_at, update.updater,
            ),
        )

    async def get_flag_update(self, flag_id: int) -> FlagUpdate | None:
        async with self.db.execute(
            "SELECT * FROM flag_updates WHERE flag_id=?", (flag_id,)
        ) as cur:
            row = await cur.fetchone()
            if row is None:
                return None
            return FlagUpdate(
                flag_id=row["flag_id"],
                score=row["score"],
                flagged=bool(row["flagged"]),
                reason=row["reason"],
                updated_at=row["updated_at"],
                updater=row["updater"],
            )

    async def add_vote(self, flag_id: int, vote: bool, amount: int) -> None:
        """Add ``amount`` to one side of the tally and to total_staked in one statement."""
        column = "yes_votes" if vote else "no_votes"
        await self.db.execute(
            f"UPDATE flags SET {column}={column}+?, total_staked=total_staked+?"
            " WHERE flag_id=?",
            (amount, amount, flag_id),
        )

    async def set_flag_status(self, flag_id: int, status: FlagStatus) -> None:
        await self.db.execute(
            "UPDATE flags SET status=? WHERE flag_id=?", (status.value, flag_id)
        )

    # ── Stakes ─────────────────────────────────────────────

    async def get_validator_stake(self, flag_id: int, validator: str) -> ValidatorStake | None:
        async with self.db.execute(
            "SELECT * FROM validator_stakes WHERE flag_id=? AND validator=?",
            (flag_id, validator),
        ) as cur:
            row = await cur.fetchone()
            return _row_to_stake(row) if row else None

    async def save_validator_stake(self, stake: ValidatorStake) -> None:
        await self.db.execute(
            "INSERT INTO validator_stakes (flag_id, validator, stake, vote, created_at)"
            " VALUES (?, ?, ?, ?, ?)"
            " ON CONFLICT(flag_id, validator) DO UPDATE SET"
            " stake=excluded.stake, vote=excluded.vote",
            (stake.flag_id, stake.validator, stake.stake, int(stake.vote), _now()),
        )

    async def get_stakes_for_flag(self, flag_id: int) -> list[ValidatorStake]:
        async with self.db.execute(
            "SELECT * FROM validator_stakes WHERE flag_id=? ORDER BY rowid", (flag_id,)
        ) as cur:
            return [_row_to_stake(row) async for row in cur]

    async def get_stakes_for_validator(self, validator: str) -> list[ValidatorStake]:
        async with self.db.execute(
            "SELECT * FROM validator_stakes WHERE validator=? ORDER BY flag_id", (validator,)
        ) as cur:
            return [_row_to_stake(row) async for row in cur]

    async def delete_validator_stake(self, flag_id: int, validator: str) -> None:
        await self.db.execute(
            "DELETE FROM validator_stakes WHERE flag_id=? AND validator=?",
            (flag_id, validator),
        )

    async def adjust_locked_stake(self, validator: str, delta: int) -> int:
        """Apply ``delta`` to a validator's locked total and return the new value.

        Increments upsert the row. Decrements update it in place so the
        ``locked_stake >= 0`` check sees the resulting total, and fail if
        the validator has nothing locked.
        """
        if delta >= 0:
            await self.db.execute(
                "INSERT INTO validator_totals (validator, locked_stake, updated_at) VALUES (?, ?, ?)"
                " ON CONFLICT(validator) DO UPDATE SET"
                " locked_stake=locked_stake+excluded.locked_stake, updated_at=excluded.updated_at",
                (validator, delta, _now()),
            )
        else:
            cur = await self.db.execute(
                "UPDATE validator_totals SET locked_stake=locked_stake+?, updated_at=?"
                " WHERE validator=?",
                (delta, _now(), validator),
            )
            updated = cur.rowcount
            await cur.close()
            if updated == 0:
                raise aiosqlite.IntegrityError(f"no locked stake for {validator}")
        return await self.get_locked_stake(validator)

    async def get_locked_stake(self, validator: str) -> int:
        async with self.db.execute(
            "SELECT locked_stake FROM validator_totals WHERE validator=?", (validator,)
        ) as cur:
            row = await cur.fetchone()
            return row["locked_stake"] if row else 0

    async def get_total_locked_stake(self) -> int:
        async with self.db.execute(
            "SELECT COALESCE(SUM(locked_stake), 0) as s FROM validator_totals"
        ) as cur:
            row = await cur.fetchone()
            return row["s"] if row else 0

    # ── Proposals ──────────────────────────────────────────

    async def insert_proposal(self, proposal: Proposal) -> None:
        await self.db.execute(
            "INSERT INTO proposals"
            " (proposal_id, description, new_threshold, yes_votes, no_votes,"
            "  expiry, proposer, applied)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                proposal.proposal_id, proposal.description, proposal.new_threshold,
                proposal.yes_votes, proposal.no_votes, proposal.expiry,
                proposal.proposer, int(proposal.applied),
            ),
        )

    async def get_proposal(self, proposal_id: int) -> Proposal | None:
        async with self.db.execute(
            "SELECT * FROM proposals WHERE proposal_id=?", (proposal_id,)
        ) as cur:
            row = await cur.fetchone()
            return _row_to_proposal(row) if row else None

    async def get_proposals(self) -> list[Proposal]:
        async with self.db.execute("SELECT * FROM proposals ORDER BY proposal_id") as cur:
            return [_row_to_proposal(row) async for row in cur]

    async def record_proposal_vote(self, proposal_id: int, support: bool) -> None:
        column = "yes_votes" if support else "no_votes"
        await self.db.execute(
            f"UPDATE proposals SET {column}={column}+1 WHERE proposal_id=?",
            (proposal_id,),
        )

    async def mark_proposal_applied(self, proposal_id: int) -> None:
        await self.db.execute(
            "UPDATE proposals SET applied=1 WHERE proposal_id=?", (proposal_id,)
        )

    # ── Settlements ────────────────────────────────────────

    async def save_settlement(self, settlement: Settlement) -> int:
        now = _now()
        cur = await self.db.execute(
            "INSERT INTO settlements"
            " (flag_id, validator, stake, vote, correct, payout, status,"
            "  error, tx_hash, created_at, updated_at)"
            " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                settlement.flag_id, settlement.validator, settlement.stake,
                int(settlement.vote), int(settlement.correct), settlement.payout,
                settlement.status.value, settlement.error, settlement.tx_hash,
                now, now,
            ),
        )
        settlement_id = cur.lastrowid
        await cur.close()
        return settlement_id

    async def get_settlements(
        self,
        flag_id: int | None = None,
        status: list[SettlementStatus] | None = None,
        validator: str | None = None,
    ) -> list[Settlement]:
        clauses: list[str] = []
        params: list = []
        if flag_id is not None:
            clauses.append("flag_id=?")
            params.append(flag_id)
        if status:
            clauses.append(f"status IN ({','.join('?' for _ in status)})")
            params.extend(s.value for s in status)
        if validator is not None:
            clauses.append("validator=?")
            params.append(validator)
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        async with self.db.execute(
            f"SELECT * FROM settlements{where} ORDER BY id", params
        ) as cur:
            return [_row_to_settlement(row) async for row in cur]

    async def update_settlement(
        self,
        settlement_id: int,
        status: SettlementStatus,
        error: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        await self.db.execute(
            "UPDATE settlements SET status=?, error=?, tx_hash=?, updated_at=? WHERE id=?",
            (status.value, error, tx_hash, _now(), settlement_id),
        )

    # ── Activity log ───────────────────────────────────────

    async def log_activity(
        self,
        event_type: str,
        message: str,
        flag_id: int | None = None,
        actor: str | None = None,
        amount: int | None = None,
    ) -> None:
        await self.db.execute(
            "INSERT INTO activity_log (event_type, flag_id, actor, amount, message, created_at)"
            " VALUES (?, ?, ?, ?, ?, ?)",
            (event_type, flag_id, actor, amount, message, _now()),
        )

    async def get_recent_activity(self, limit: int = 50) -> list[ActivityRecord]:
        async with self.db.execute(
            "SELECT * FROM activity_log ORDER BY id DESC LIMIT ?", (limit,)
        ) as cur:
            return [
                ActivityRecord(
                    id=row["id"],
                    event_type=row["event_type"],
                    flag_id=row["flag_id"],
                    actor=row["actor"],
                    amount=row["amount"],
                    message=row["message"],
                    created_at=row["created_at"],
                )
                async for row in cur
            ]


# ── Row converters ─────────────────────────────────────────


def _row_to_flag(row: aiosqlite.Row) -> Flag:
    return Flag(
        flag_id=row["flag_id"],
        tx_id=row["tx_id"],
        score=row["score"],
        flagged=bool(row["flagged"]),
        anomaly_type=AnomalyType(row["anomaly_type"]),
        reason=row["reason"],
        confidence=row["confidence"],
        submitted_at=row["submitted_at"],
        submitter=row["submitter"],
        location=row["location"],
        category=Category(row["category"]),
        priority=row["priority"],
        expiry=row["expiry"],
        created_at=row["created_at"],
        expires_at=row["expires_at"],
        status=FlagStatus(row["status"]),
        yes_votes=row["yes_votes"],
        no_votes=row["no_votes"],
        total_staked=row["total_staked"],
    )


def _row_to_stake(row: aiosqlite.Row) -> ValidatorStake:
    return ValidatorStake(
        flag_id=row["flag_id"],
        validator=row["validator"],
        stake=row["stake"],
        vote=bool(row["vote"]),
    )


def _row_to_proposal(row: aiosqlite.Row) -> Proposal:
    return Proposal(
        proposal_id=row["proposal_id"],
        description=row["description"],
        new_threshold=row["new_threshold"],
        expiry=row["expiry"],
        proposer=row["proposer"],
        yes_votes=row["yes_votes"],
        no_votes=row["no_votes"],
        applied=bool(row["applied"]),
    )


def _row_to_settlement(row: aiosqlite.Row) -> Settlement:
    return Settlement(
        id=row["id"],
        flag_id=row["flag_id"],
        validator=row["validator"],
        stake=row["stake"],
        vote=bool(row["vote"]),
        correct=bool(row["correct"]),
        payout=row["payout"],
        status=SettlementStatus(row["status"]),
        error=row["error"],
        tx_hash=row["tx_hash"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
