from __future__ import annotations

from dataclasses import dataclass

from ..http_client import JsonPayload
from .base import BaseClient


@dataclass
class IdentityClient(BaseClient):
    """User service lookups used to build the operating context."""

    async def internal_user_id(self, subject_id: str) -> JsonPayload:
        return await self._request(
            "GET",
            "/api/users/id-by-auth0",
            params={"auth0Id": subject_id},
            operation="users.id_by_subject",
        )
