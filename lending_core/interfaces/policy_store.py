"""Policy store protocol — per-asset risk configuration."""
from __future__ import annotations

from typing import Protocol

from ..models import Policy


class PolicyStore(Protocol):
    async def get_policy(self, asset: str) -> Policy | None: ...

    async def put_policy(self, policy: Policy) -> Policy: ...

    async def list_policies(self) -> list[Policy]: ...
