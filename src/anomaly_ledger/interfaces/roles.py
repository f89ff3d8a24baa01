"""RoleRegistry protocol - identity/role checks."""

from __future__ import annotations

from typing import Protocol


class RoleRegistry(Protocol):
    """Answers which identities hold the oracle and authority roles."""

    async def is_authorized_oracle(self, identity: str) -> bool:
        ...

    async def is_authorized_authority(self, identity: str) -> bool:
        ...
