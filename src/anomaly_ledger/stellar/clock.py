"""Ledger-height clock backed by Soroban RPC."""

from __future__ import annotations

import asyncio
import logging

from stellar_sdk import SorobanServer

from anomaly_ledger.clock import ClockUnavailable

log = logging.getLogger(__name__)


class LedgerClock:
    """Uses the latest Stellar ledger sequence as the current height.

    The RPC call is blocking, so it runs in a worker thread. A height never
    moves backwards: if the node reports an older ledger than one already
    seen, the last known height is returned.
    """

    def __init__(self, rpc_url: str) -> None:
        self._server = SorobanServer(rpc_url)
        self._last_seen: int | None = None

    async def now(self) -> int:
        try:
            response = await asyncio.to_thread(self._server.get_latest_ledger)
        except Exception as exc:
            log.warning("get_latest_ledger failed: %s", exc)
            raise ClockUnavailable(str(exc)) from exc

        sequence = int(response.sequence)
        if self._last_seen is not None and sequence < self._last_seen:
            log.debug("RPC reported ledger %d behind %d", sequence, self._last_seen)
            return self._last_seen
        self._last_seen = sequence
        return sequence
