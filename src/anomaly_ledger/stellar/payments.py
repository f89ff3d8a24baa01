"""Stellar payment gateway - native XLM payments for fees, stakes and payouts."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from stellar_sdk import Asset, Keypair, ServerAsync, StrKey, TransactionBuilder
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.exceptions import BadRequestError, NotFoundError

from anomaly_ledger.models.records import TransferResult

log = logging.getLogger(__name__)

STROOPS_PER_XLM = 10_000_000


def stroops_to_xlm(stroops: int) -> str:
    """Format an integer stroop amount as the decimal string Horizon expects."""
    return f"{stroops // STROOPS_PER_XLM}.{stroops % STROOPS_PER_XLM:07d}"


class StellarPaymentGateway:
    """Implements TransferGateway with Horizon payment transactions.

    The gateway can only move funds out of accounts it holds a signing key
    for (typically the escrow account, plus an oracle's own account when
    the oracle runs the service). Transfers from any other source fail with
    ``no_signer``.
    """

    def __init__(
        self,
        horizon_url: str,
        network_passphrase: str,
        signers: Iterable[Keypair] = (),
        base_fee: int = 100,
        timeout: int = 30,
    ) -> None:
        self._horizon_url = horizon_url
        self._network_passphrase = network_passphrase
        self._signers = {kp.public_key: kp for kp in signers}
        self._base_fee = base_fee
        self._timeout = timeout

    @property
    def accounts(self) -> list[str]:
        return sorted(self._signers)

    async def transfer(self, amount: int, source: str, destination: str) -> TransferResult:
        """Build, sign, and submit a single native payment."""
        if amount <= 0:
            # Stellar rejects zero payments; nothing to move.
            return TransferResult(
                success=True, amount=amount, source=source, destination=destination,
            )

        keypair = self._signers.get(source)
        if keypair is None:
            return TransferResult(
                success=False, amount=amount, source=source, destination=destination,
                error="no_signer",
            )
        if not StrKey.is_valid_ed25519_public_key(destination):
            return TransferResult(
                success=False, amount=amount, source=source, destination=destination,
                error="invalid_destination",
            )

        log.info("Paying %d stroops %s -> %s", amount, source[:8], destination[:8])
        try:
            async with ServerAsync(horizon_url=self._horizon_url, client=AiohttpClient()) as server:
                account = await server.load_account(source)
                tx = (
                    TransactionBuilder(
                        source_account=account,
                        network_passphrase=self._network_passphrase,
                        base_fee=self._base_fee,
                    )
                    .append_payment_op(
                        destination=destination,
                        asset=Asset.native(),
                        amount=stroops_to_xlm(amount),
                    )
                    .set_timeout(self._timeout)
                    .build()
                )
                tx.sign(keypair)
                response = await server.submit_transaction(tx)

            tx_hash = response.get("hash", "")
            log.info("Payment succeeded (tx=%s)", tx_hash[:16] if tx_hash else "?")
            return TransferResult(
                success=True, amount=amount, source=source, destination=destination,
                tx_hash=tx_hash or None,
            )

        except NotFoundError:
            log.warning("Payment source %s not found on network", source[:16])
            return TransferResult(
                success=False, amount=amount, source=source, destination=destination,
                error="source_not_found",
            )

        except BadRequestError as exc:
            log.warning("Payment rejected by Horizon: %s", exc)
            return TransferResult(
                success=False, amount=amount, source=source, destination=destination,
                error=f"tx_failed: {exc}",
            )

        except Exception as exc:
            log.error("Payment unexpected error %s -> %s: %s", source[:8], destination[:8], exc)
            return TransferResult(
                success=False, amount=amount, source=source, destination=destination,
                error=str(exc),
            )
