"""Wall-clock time source."""

from __future__ import annotations

import time


class ClockUnavailable(RuntimeError):
    """The current time/height could not be determined."""


class SystemClock:
    """Current unix time in whole seconds."""

    async def now(self) -> int:
        return int(time.time())
