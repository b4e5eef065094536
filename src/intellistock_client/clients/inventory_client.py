from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

from ..http_client import JsonPayload
from ..models import CategoryFilters, StoreInventoryRequest, SubcategoryWrite
from .base import BaseClient


def _segment(value: str | int) -> str:
    return quote(str(value), safe="")


@dataclass
class InventoryClient(BaseClient):
    """Raw endpoint wrappers for the inventory service. Payloads are returned unparsed."""

    async def stores_by_owner(self, owner_id: str) -> JsonPayload:
        return await self._request(
            "GET",
            "/api/stores/by-owner",
            params={"ownerId": owner_id},
            operation="stores.by_owner",
        )

    async def list_store_inventory(self, store_id: str) -> JsonPayload:
        return await self._request(
            "GET",
            f"/api/stores/{_segment(store_id)}/inventory",
            operation="inventory.list",
        )

    async def get_store_inventory_item(self, store_id: str, item_id: str) -> JsonPayload:
        return await self._request(
            "GET",
            f"/api/stores/{_segment(store_id)}/inventory/{_segment(item_id)}",
            operation="inventory.get",
        )

    async def create_store_inventory_item(self, store_id: str, body: StoreInventoryRequest) -> JsonPayload:
        return await self._request(
            "POST",
            f"/api/stores/{_segment(store_id)}/inventory",
            json_body=body.to_wire(),
            operation="inventory.create",
        )

    async def update_store_inventory_item(
        self, store_id: str, item_id: str, body: StoreInventoryRequest
    ) -> JsonPayload:
        return await self._request(
            "PUT",
            f"/api/stores/{_segment(store_id)}/inventory/{_segment(item_id)}",
            json_body=body.to_wire(),
            operation="inventory.update",
        )

    async def delete_inventory_item(self, item_id: str) -> JsonPayload:
        return await self._request("DELETE", f"/api/inventory/{_segment(item_id)}", operation="inventory.delete")

    async def set_tax(self, item_id: str, enabled: bool) -> JsonPayload:
        action = "enable-tax" if enabled else "disable-tax"
        return await self._request(
            "PUT",
            f"/api/inventory/{_segment(item_id)}/{action}",
            operation=f"inventory.{action}",
        )

    async def add_stock(self, item_id: str, quantity: int) -> JsonPayload:
        return await self._request(
            "PUT",
            f"/api/inventory/{_segment(item_id)}/add-stock/{int(quantity)}",
            operation="inventory.add_stock",
        )

    async def reduce_stock(self, item_id: str, quantity: int) -> JsonPayload:
        return await self._request(
            "PUT",
            f"/api/inventory/{_segment(item_id)}/reduce-stock/{int(quantity)}",
            operation="inventory.reduce_stock",
        )

    async def master_items(self, dimension: str, value: str) -> JsonPayload:
        if dimension not in {"category", "subcategory", "brand"}:
            raise ValueError(f"Unsupported master catalog dimension: {dimension}")
        return await self._request(
            "GET",
            f"/api/inventory/{dimension}/{_segment(value)}",
            operation=f"catalog.by_{dimension}",
        )

    async def brands(self) -> JsonPayload:
        return await self._request("GET", "/api/brands", operation="brands.list")

    async def categories(self, filters: CategoryFilters | None = None) -> JsonPayload:
        params: dict[str, Any] = filters.to_wire() if filters else {}
        return await self._request("GET", "/api/categories", params=params, operation="categories.list")

    async def measurement_units(self) -> JsonPayload:
        return await self._request("GET", "/api/measurement-units", operation="measurement_units.list")

    async def docs(self) -> JsonPayload:
        return await self._request("GET", "/api/docs", operation="docs.get")

    async def subcategories(self, category_code: str | None = None) -> JsonPayload:
        return await self._request(
            "GET",
            "/api/subcategories",
            params={"categoryCode": category_code},
            operation="subcategories.list",
        )

    async def subcategory(self, subcategory_id: int) -> JsonPayload:
        return await self._request(
            "GET", f"/api/subcategories/{int(subcategory_id)}", operation="subcategories.get"
        )

    async def create_subcategory(self, body: SubcategoryWrite) -> JsonPayload:
        return await self._request(
            "POST", "/api/subcategories", json_body=body.to_wire(), operation="subcategories.create"
        )

    async def update_subcategory(self, subcategory_id: int, body: SubcategoryWrite) -> JsonPayload:
        return await self._request(
            "PUT",
            f"/api/subcategories/{int(subcategory_id)}",
            json_body=body.to_wire(),
            operation="subcategories.update",
        )

    async def delete_subcategory(self, subcategory_id: int) -> JsonPayload:
        return await self._request(
            "DELETE", f"/api/subcategories/{int(subcategory_id)}", operation="subcategories.delete"
        )
