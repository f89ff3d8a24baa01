"""TransferGateway protocol - moves value between accounts."""

from __future__ import annotations

from typing import Protocol

from anomaly_ledger.models.records import TransferResult


class TransferGateway(Protocol):
    """Executes value movement for fees, stake locks and payouts."""

    async def transfer(self, amount: int, source: str, destination: str) -> TransferResult:
        """Move ``amount`` stroops from ``source`` to ``destination``."""
        ...
