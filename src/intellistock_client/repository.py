"""Cache-backed reads and mutations for the inventory and order screens."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Literal

from pydantic import TypeAdapter

from .cache_keys import (
    CATALOG_POLICY,
    DOCS_POLICY,
    INVENTORY_LIST_POLICY,
    ITEM_DETAIL_POLICY,
    ORDER_POLICY,
    REFERENCE_POLICY,
    STORE_PROFILE_POLICY,
    CatalogKeys,
    DocsKeys,
    InventoryKeys,
    OrderKeys,
    ReferenceKeys,
    StoreKeys,
)
from .clients.inventory_client import InventoryClient
from .clients.order_client import OrderClient
from .context import ContextResolver
from .entity_cache import EntityCache
from .exceptions import ApiError, ContextResolutionError, NotFoundError
from .logger import get_logger, log_event
from .models import (
    Brand,
    Category,
    CategoryFilters,
    DocsResponse,
    InventoryItem,
    MasterInventoryItem,
    MeasurementUnit,
    StoreInventoryRequest,
    StoreProfile,
    Subcategory,
    SubcategoryWrite,
)
from .models_orders import (
    AcceptOrderRequest,
    OrderDetail,
    OrderStatus,
    OrderStatusResponse,
    OrderSummary,
    ProposeSubstitutionsRequest,
    RejectOrderRequest,
    StoreReviewStatus,
    SubstitutionProposal,
)
from .normalizers import (
    normalize_brand,
    normalize_category,
    normalize_docs,
    normalize_inventory_item,
    normalize_list,
    normalize_master_item,
    normalize_measurement_unit,
    normalize_order_detail,
    normalize_order_status,
    normalize_order_summary,
    normalize_store_profile,
    normalize_subcategory,
)

logger = get_logger(__name__)

DEFAULT_LOW_STOCK_THRESHOLD = 10
StockDirection = Literal["add", "reduce"]


def _list_decoder(model: type[Any]):
    return TypeAdapter(list[model]).validate_python


def _contains(value: str | None, query: str) -> bool:
    return bool(value) and query.lower() in value.lower()


class InventoryRepository:
    def __init__(
        self, cache: EntityCache, inventory: InventoryClient, resolver: ContextResolver, orders: OrderClient
    ) -> None:
        self._cache = cache
        self._inventory = inventory
        self._orders = orders
        self._resolver = resolver
        self._register_decoders()

    def _register_decoders(self) -> None:
        cache = self._cache
        cache.register_decoder(InventoryKeys.lists(), _list_decoder(InventoryItem))
        cache.register_decoder(InventoryKeys.details(), InventoryItem.model_validate)
        cache.register_decoder(("reference", "categories"), _list_decoder(Category))
        cache.register_decoder(ReferenceKeys.brands(), _list_decoder(Brand))
        cache.register_decoder(ReferenceKeys.measurement_units(), _list_decoder(MeasurementUnit))
        cache.register_decoder((*ReferenceKeys.subcategories(), "category"), _list_decoder(Subcategory))
        cache.register_decoder((*ReferenceKeys.subcategories(), "id"), Subcategory.model_validate)
        cache.register_decoder(CatalogKeys.all(), _list_decoder(MasterInventoryItem))
        cache.register_decoder(StoreKeys.profile(), StoreProfile.model_validate)
        cache.register_decoder(StoreKeys.owned(), _list_decoder(StoreProfile))
        cache.register_decoder(DocsKeys.all(), DocsResponse.model_validate)
        cache.register_decoder(OrderKeys.lists(), _list_decoder(OrderSummary))
        cache.register_decoder(OrderKeys.details(), OrderDetail.model_validate)

    async def _store_id(self) -> str:
        context = await self._resolver.resolve_context()
        return context.selected_store_id

    # store inventory

    async def inventory(self) -> list[InventoryItem]:
        return await self._cache.get(InventoryKeys.lists(), self._fetch_inventory, INVENTORY_LIST_POLICY)

    async def refresh_inventory(self) -> list[InventoryItem]:
        return await self._cache.refetch(InventoryKeys.lists(), self._fetch_inventory, INVENTORY_LIST_POLICY)

    async def _fetch_inventory(self) -> list[InventoryItem]:
        store_id = await self._store_id()
        payload = await self._inventory.list_store_inventory(store_id)
        return normalize_list(payload, normalize_inventory_item)

    async def item(self, item_id: str) -> InventoryItem:
        key = InventoryKeys.detail(item_id)
        self._cache.set_placeholder(key, lambda: self._item_from_cached_list(item_id))
        return await self._cache.get(key, lambda: self._fetch_item(item_id), ITEM_DETAIL_POLICY)

    def _item_from_cached_list(self, item_id: str) -> InventoryItem | None:
        items = self._cache.get_cached(InventoryKeys.lists()) or []
        return next((item for item in items if item.id == item_id), None)

    async def _fetch_item(self, item_id: str) -> InventoryItem:
        store_id = await self._store_id()
        try:
            payload = await self._inventory.get_store_inventory_item(store_id, item_id)
            return normalize_inventory_item(payload or {})
        except ApiError as exc:
            log_event(
                logger,
                "repository",
                "item",
                "fallback_to_list",
                level=logging.WARNING,
                item_id=item_id,
                status_code=exc.status_code,
            )
        items = await self.refresh_inventory()
        match = next((item for item in items if item.id == item_id), None)
        if match is None:
            raise NotFoundError(
                code="NOT_FOUND",
                message="Item not found",
                details={"item_id": item_id},
                trace_id=None,
                status_code=404,
            )
        return match

    async def low_stock(self, threshold: float = DEFAULT_LOW_STOCK_THRESHOLD) -> list[InventoryItem]:
        async def fetch() -> list[InventoryItem]:
            return [item for item in await self.inventory() if item.stock_quantity <= threshold]

        return await self._cache.get(InventoryKeys.low_stock(threshold), fetch, INVENTORY_LIST_POLICY)

    async def by_category(self, name: str) -> list[InventoryItem]:
        async def fetch() -> list[InventoryItem]:
            return [item for item in await self.inventory() if _contains(item.categories, name)]

        return await self._cache.get(InventoryKeys.category(name), fetch, INVENTORY_LIST_POLICY)

    async def by_subcategory(self, name: str) -> list[InventoryItem]:
        async def fetch() -> list[InventoryItem]:
            return [item for item in await self.inventory() if _contains(item.sub_category, name)]

        return await self._cache.get(InventoryKeys.subcategory(name), fetch, INVENTORY_LIST_POLICY)

    async def by_brand(self, name: str) -> list[InventoryItem]:
        async def fetch() -> list[InventoryItem]:
            return [item for item in await self.inventory() if _contains(item.brand, name)]

        return await self._cache.get(InventoryKeys.brand(name), fetch, INVENTORY_LIST_POLICY)

    # inventory mutations

    async def create_item(self, request: StoreInventoryRequest) -> InventoryItem:
        store_id = await self._store_id()
        payload = await self._inventory.create_store_inventory_item(store_id, request)
        item = normalize_inventory_item(payload or {})
        self._invalidate_item(item.id or None)
        return item

    async def update_item(self, item_id: str, request: StoreInventoryRequest) -> InventoryItem:
        store_id = await self._store_id()
        payload = await self._inventory.update_store_inventory_item(store_id, item_id, request)
        self._invalidate_item(item_id)
        return normalize_inventory_item(payload or {})

    async def delete_item(self, item_id: str) -> None:
        await self._inventory.delete_inventory_item(item_id)
        self._invalidate_item(item_id)

    async def adjust_stock(self, item_id: str, direction: StockDirection, quantity: int) -> InventoryItem | None:
        if quantity < 0:
            raise ValueError("quantity must be >= 0")
        if direction == "add":
            payload = await self._inventory.add_stock(item_id, quantity)
        elif direction == "reduce":
            payload = await self._inventory.reduce_stock(item_id, quantity)
        else:
            raise ValueError(f"Unsupported stock direction: {direction}")
        self._invalidate_item(item_id)
        return normalize_inventory_item(payload) if isinstance(payload, dict) else None

    async def set_tax(self, item_id: str, enabled: bool) -> InventoryItem | None:
        payload = await self._inventory.set_tax(item_id, enabled)
        self._invalidate_item(item_id)
        return normalize_inventory_item(payload) if isinstance(payload, dict) else None

    def _invalidate_item(self, item_id: str | None) -> None:
        if item_id:
            self._cache.invalidate(InventoryKeys.detail(item_id))
        self._cache.invalidate(InventoryKeys.lists())

    # reference data

    async def categories(self, filters: CategoryFilters | None = None) -> list[Category]:
        async def fetch() -> list[Category]:
            return normalize_list(await self._inventory.categories(filters), normalize_category)

        return await self._cache.get(ReferenceKeys.categories(filters), fetch, REFERENCE_POLICY)

    async def brands(self) -> list[Brand]:
        async def fetch() -> list[Brand]:
            return normalize_list(await self._inventory.brands(), normalize_brand)

        return await self._cache.get(ReferenceKeys.brands(), fetch, REFERENCE_POLICY)

    async def measurement_units(self) -> list[MeasurementUnit]:
        async def fetch() -> list[MeasurementUnit]:
            return normalize_list(await self._inventory.measurement_units(), normalize_measurement_unit)

        return await self._cache.get(ReferenceKeys.measurement_units(), fetch, REFERENCE_POLICY)

    async def subcategories(self, category_code: str | None = None) -> list[Subcategory]:
        async def fetch() -> list[Subcategory]:
            return normalize_list(await self._inventory.subcategories(category_code), normalize_subcategory)

        key = ReferenceKeys.subcategories_by_category(category_code or "*")
        return await self._cache.get(key, fetch, REFERENCE_POLICY)

    async def subcategory(self, subcategory_id: int) -> Subcategory:
        async def fetch() -> Subcategory:
            return normalize_subcategory(await self._inventory.subcategory(subcategory_id))

        return await self._cache.get(ReferenceKeys.subcategory(subcategory_id), fetch, REFERENCE_POLICY)

    async def create_subcategory(self, body: SubcategoryWrite) -> Subcategory:
        payload = await self._inventory.create_subcategory(body)
        self._cache.invalidate(ReferenceKeys.subcategories())
        return normalize_subcategory(payload)

    async def update_subcategory(self, subcategory_id: int, body: SubcategoryWrite) -> Subcategory:
        payload = await self._inventory.update_subcategory(subcategory_id, body)
        self._cache.invalidate(ReferenceKeys.subcategories())
        return normalize_subcategory(payload)

    async def delete_subcategory(self, subcategory_id: int) -> None:
        await self._inventory.delete_subcategory(subcategory_id)
        self._cache.invalidate(ReferenceKeys.subcategories())

    async def docs(self) -> DocsResponse:
        async def fetch() -> DocsResponse:
            return normalize_docs(await self._inventory.docs())

        return await self._cache.get(DocsKeys.all(), fetch, DOCS_POLICY)

    # master catalog

    async def master_items_by_category(self, code: str) -> list[MasterInventoryItem]:
        return await self._master_items("category", code)

    async def master_items_by_subcategory(self, code: str) -> list[MasterInventoryItem]:
        return await self._master_items("subcategory", code)

    async def master_items_by_brand(self, name: str) -> list[MasterInventoryItem]:
        return await self._master_items("brand", name)

    async def _master_items(self, dimension: str, value: str) -> list[MasterInventoryItem]:
        async def fetch() -> list[MasterInventoryItem]:
            return normalize_list(await self._inventory.master_items(dimension, value), normalize_master_item)

        return await self._cache.get(CatalogKeys.by(dimension, value), fetch, CATALOG_POLICY)

    # stores

    async def owned_stores(self) -> list[StoreProfile]:
        async def fetch() -> list[StoreProfile]:
            context = await self._resolver.resolve_context()
            payload = await self._inventory.stores_by_owner(context.internal_user_id)
            if isinstance(payload, dict) and isinstance(payload.get("stores"), list):
                payload = payload["stores"]
            return normalize_list(payload, normalize_store_profile)

        return await self._cache.get(StoreKeys.owned(), fetch, STORE_PROFILE_POLICY)

    async def selected_store_profile(self) -> StoreProfile:
        async def fetch() -> StoreProfile:
            store_id = await self._store_id()
            stores = await self.owned_stores()
            for store in stores:
                if store.id == store_id:
                    return store
            if stores:
                return stores[0]
            raise ContextResolutionError("Unable to resolve selected store profile.")

        return await self._cache.get(StoreKeys.profile(), fetch, STORE_PROFILE_POLICY)

    # store orders

    async def orders(
        self, status: OrderStatus | str | None = None, review_status: StoreReviewStatus | str | None = None
    ) -> list[OrderSummary]:
        status_filter = OrderStatus(status).value if status else None
        review_filter = StoreReviewStatus(review_status).value if review_status else None

        async def fetch() -> list[OrderSummary]:
            store_id = await self._store_id()
            payload = await self._orders.list_store_orders(store_id, status=status_filter, review_status=review_filter)
            return normalize_list(payload, normalize_order_summary)

        return await self._cache.get(OrderKeys.list(status_filter, review_filter), fetch, ORDER_POLICY)

    async def order(self, order_id: str) -> OrderDetail:
        async def fetch() -> OrderDetail:
            store_id = await self._store_id()
            return normalize_order_detail(await self._orders.get_store_order(store_id, order_id) or {})

        return await self._cache.get(OrderKeys.detail(order_id), fetch, ORDER_POLICY)

    async def accept_order(self, order_id: str, reviewed_by: str | None = None) -> OrderStatusResponse:
        store_id = await self._store_id()
        body = AcceptOrderRequest(reviewed_by=reviewed_by)
        payload = await self._orders.accept_order(store_id, order_id, body)
        self._invalidate_order(order_id)
        return normalize_order_status(payload or {})

    async def reject_order(self, order_id: str, reason: str, reviewed_by: str | None = None) -> OrderStatusResponse:
        body = RejectOrderRequest(reason=reason, reviewed_by=reviewed_by)
        store_id = await self._store_id()
        payload = await self._orders.reject_order(store_id, order_id, body)
        self._invalidate_order(order_id)
        return normalize_order_status(payload or {})

    async def propose_substitutions(
        self, order_id: str, substitutions: Sequence[SubstitutionProposal], proposed_by: str | None = None
    ) -> OrderDetail:
        body = ProposeSubstitutionsRequest(proposed_by=proposed_by, substitutions=list(substitutions))
        store_id = await self._store_id()
        payload = await self._orders.propose_substitutions(store_id, order_id, body)
        self._invalidate_order(order_id)
        return normalize_order_detail(payload or {})

    async def mark_ready(self, order_id: str) -> OrderStatusResponse:
        store_id = await self._store_id()
        payload = await self._orders.mark_ready(store_id, order_id)
        self._invalidate_order(order_id)
        return normalize_order_status(payload or {})

    def _invalidate_order(self, order_id: str) -> None:
        self._cache.invalidate(OrderKeys.detail(order_id))
        self._cache.invalidate(OrderKeys.lists())
