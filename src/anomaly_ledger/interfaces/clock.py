"""Clock protocol - source of the current time/height."""

from __future__ import annotations

from typing import Protocol


class Clock(Protocol):
    """Returns the current time or block height as an integer.

    Expiry and voting-window checks compare against this value only.
    """

    async def now(self) -> int:
        ...
