"""Static role registry - oracle and authority sets from configuration."""

from __future__ import annotations

import logging
from collections.abc import Iterable

log = logging.getLogger(__name__)


class StaticRoleRegistry:
    """Answers role checks from fixed identity sets.

    Identities are compared as opaque strings; no signature or key checks
    happen here.
    """

    def __init__(
        self,
        oracles: Iterable[str] = (),
        authorities: Iterable[str] = (),
    ) -> None:
        self._oracles = set(oracles)
        self._authorities = set(authorities)
        log.debug(
            "Role registry: %d oracle(s), %d authority(ies)",
            len(self._oracles), len(self._authorities),
        )

    @property
    def oracles(self) -> frozenset[str]:
        return frozenset(self._oracles)

    @property
    def authorities(self) -> frozenset[str]:
        return frozenset(self._authorities)

    async def is_authorized_oracle(self, identity: str) -> bool:
        return identity in self._oracles

    async def is_authorized_authority(self, identity: str) -> bool:
        return identity in self._authorities
