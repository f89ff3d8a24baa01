"""Stellar adapters: payment gateway guards and the ledger clock."""

from __future__ import annotations

from types import SimpleNamespace

import pytest
from stellar_sdk import Keypair

from anomaly_ledger.clock import ClockUnavailable
from anomaly_ledger.stellar.clock import LedgerClock
from anomaly_ledger.stellar.payments import StellarPaymentGateway, stroops_to_xlm

PASSPHRASE = "Test SDF Network ; September 2015"


@pytest.mark.parametrize(
    "stroops, expected",
    [
        (1, "0.0000001"),
        (10_000_000, "1.0000000"),
        (12_345_678, "1.2345678"),
        (500_000, "0.0500000"),
    ],
)
def test_stroops_to_xlm(stroops, expected):
    assert stroops_to_xlm(stroops) == expected


async def test_zero_amount_is_noop():
    gateway = StellarPaymentGateway("https://horizon.invalid", PASSPHRASE)

    result = await gateway.transfer(0, "GANYONE", "GSOMEONE")

    assert result.success
    assert result.tx_hash is None


async def test_unknown_source_has_no_signer():
    signer = Keypair.random()
    gateway = StellarPaymentGateway("https://horizon.invalid", PASSPHRASE, [signer])

    result = await gateway.transfer(100, Keypair.random().public_key, signer.public_key)

    assert not result.success
    assert result.error == "no_signer"
    assert gateway.accounts == [signer.public_key]


async def test_invalid_destination_rejected():
    signer = Keypair.random()
    gateway = StellarPaymentGateway("https://horizon.invalid", PASSPHRASE, [signer])

    result = await gateway.transfer(100, signer.public_key, "not-an-account")

    assert not result.success
    assert result.error == "invalid_destination"


async def test_ledger_clock_is_monotonic(monkeypatch):
    clock = LedgerClock("https://soroban.invalid")
    heights = iter([500, 498, 501])
    monkeypatch.setattr(
        clock._server, "get_latest_ledger", lambda: SimpleNamespace(sequence=next(heights)),
    )

    assert [await clock.now(), await clock.now(), await clock.now()] == [500, 500, 501]


async def test_ledger_clock_outage(monkeypatch):
    clock = LedgerClock("https://soroban.invalid")

    def offline():
        raise ConnectionError("rpc down")

    monkeypatch.setattr(clock._server, "get_latest_ledger", offline)

    with pytest.raises(ClockUnavailable):
        await clock.now()
