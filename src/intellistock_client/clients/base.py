from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from ..http_client import HttpClient, JsonPayload


@dataclass
class BaseClient:
    http: HttpClient
    token_provider: Callable[[], str | None] | None = None

    def _auth_headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        access_token = self.token_provider() if self.token_provider else None
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    async def _request(self, method: str, path: str, **kwargs) -> JsonPayload:
        headers = kwargs.pop("headers", {})
        merged = {**self._auth_headers(), **headers}
        return await self.http.request(method, path, headers=merged, **kwargs)
