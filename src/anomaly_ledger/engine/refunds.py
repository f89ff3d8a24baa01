"""Compensating transfers for writes that fail after money has moved."""

from __future__ import annotations

import logging

from anomaly_ledger.interfaces.transfer import TransferGateway

log = logging.getLogger(__name__)


async def refund(
    transfers: TransferGateway,
    amount: int,
    source: str,
    destination: str,
    reason: str,
) -> None:
    """Send ``amount`` back from ``source`` to ``destination``.

    Used when the ledger write that should follow a transfer rolls back.
    A refund that fails is logged for manual reconciliation.
    """
    if amount <= 0:
        return
    result = await transfers.transfer(amount, source, destination)
    if result.success:
        log.warning(
            "Refunded %d to %s after failed write (%s), tx %s",
            amount, destination[:16], reason, result.tx_hash,
        )
        return
    log.error(
        "Refund of %d to %s after failed write (%s) did not go through: %s",
        amount, destination[:16], reason, result.error,
    )
