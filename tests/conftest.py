"""Shared fixtures for anomaly_ledger tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from anomaly_ledger.models.config import EngineDefaults, RoleConfig, ServiceConfig
from anomaly_ledger.service import AnomalyLedgerService
from anomaly_ledger.storage.sqlite import SQLiteLedgerStore

from tests.mocks import ManualClock, MockTransferGateway

ORACLE = "GORACLEAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA1"
ORACLE_2 = "GORACLEBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB2"
AUTHORITY = "GAUTHORITYAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
AUTHORITY_ACCOUNT = "GFEESAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
ESCROW = "GESCROWAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"
VALIDATOR_1 = "GVALIDATORAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA1"
VALIDATOR_2 = "GVALIDATORAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA2"
VALIDATOR_3 = "GVALIDATORAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA3"
OUTSIDER = "GOUTSIDERAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA"

START = 1_000


# ── Report metadata ───────────────────────────────────────────────


def pytest_configure(config):
    """Add ledger setup to the HTML report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Store"] = "SQLite (in-memory)"
    meta["Clock"] = f"ManualClock starting at {START}"
    meta["Oracles"] = ", ".join(a[:12] for a in (ORACLE, ORACLE_2))
    meta["Authority"] = AUTHORITY[:12]


def make_roles(**overrides) -> RoleConfig:
    defaults = dict(
        oracles=[ORACLE, ORACLE_2],
        authorities=[AUTHORITY],
        authority_account=AUTHORITY_ACCOUNT,
        oracle_principal=ORACLE,
        escrow_account=ESCROW,
    )
    defaults.update(overrides)
    return RoleConfig(**defaults)


def make_test_config(**overrides) -> ServiceConfig:
    """Build a ServiceConfig suitable for testing."""
    defaults = dict(
        horizon_url="https://horizon-testnet.stellar.org",
        rpc_url="https://soroban-testnet.stellar.org",
        network_passphrase="Test SDF Network ; September 2015",
        db_path=":memory:",
        engine=EngineDefaults(),
        roles=make_roles(),
    )
    defaults.update(overrides)
    return ServiceConfig(**defaults)


async def start_service(
    cfg: ServiceConfig,
    transfers: MockTransferGateway | None = None,
    clock: ManualClock | None = None,
) -> AnomalyLedgerService:
    """Build and initialize a service on an in-memory store with mocks."""
    service = AnomalyLedgerService(
        cfg,
        store=SQLiteLedgerStore(":memory:"),
        transfers=transfers or MockTransferGateway(),
        clock=clock or ManualClock(START),
    )
    await service.initialize()
    return service


@pytest.fixture
def test_config():
    """Default ServiceConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteLedgerStore."""
    s = SQLiteLedgerStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def transfers():
    return MockTransferGateway(succeed=True)


@pytest.fixture
def clock():
    return ManualClock(START)


@pytest.fixture
async def service(test_config, transfers, clock):
    """Fully wired AnomalyLedgerService with mocked collaborators."""
    s = await start_service(test_config, transfers, clock)
    yield s
    await s.close()
