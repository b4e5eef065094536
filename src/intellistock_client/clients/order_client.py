from __future__ import annotations

from dataclasses import dataclass

from ..http_client import JsonPayload
from ..models_orders import AcceptOrderRequest, ProposeSubstitutionsRequest, RejectOrderRequest
from .base import BaseClient
from .inventory_client import _segment


def _orders_path(store_id: str) -> str:
    return f"/api/stores/{_segment(store_id)}/orders"


@dataclass
class OrderClient(BaseClient):
    """Raw endpoint wrappers for a store's customer orders."""

    async def list_store_orders(
        self, store_id: str, status: str | None = None, review_status: str | None = None
    ) -> JsonPayload:
        return await self._request(
            "GET",
            _orders_path(store_id),
            params={"status": status or None, "reviewStatus": review_status or None},
            operation="orders.list",
        )

    async def get_store_order(self, store_id: str, order_id: str) -> JsonPayload:
        return await self._request(
            "GET",
            f"{_orders_path(store_id)}/{_segment(order_id)}",
            operation="orders.get",
        )

    async def accept_order(self, store_id: str, order_id: str, body: AcceptOrderRequest) -> JsonPayload:
        return await self._request(
            "POST",
            f"{_orders_path(store_id)}/{_segment(order_id)}/accept",
            json_body=body.to_wire(),
            operation="orders.accept",
        )

    async def reject_order(self, store_id: str, order_id: str, body: RejectOrderRequest) -> JsonPayload:
        return await self._request(
            "POST",
            f"{_orders_path(store_id)}/{_segment(order_id)}/reject",
            json_body=body.to_wire(),
            operation="orders.reject",
        )

    async def propose_substitutions(
        self, store_id: str, order_id: str, body: ProposeSubstitutionsRequest
    ) -> JsonPayload:
        return await self._request(
            "POST",
            f"{_orders_path(store_id)}/{_segment(order_id)}/substitutions",
            json_body=body.to_wire(),
            operation="orders.propose_substitutions",
        )

    async def mark_ready(self, store_id: str, order_id: str) -> JsonPayload:
        return await self._request(
            "POST",
            f"{_orders_path(store_id)}/{_segment(order_id)}/ready",
            json_body={},
            operation="orders.ready",
        )
