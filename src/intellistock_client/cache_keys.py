"""Hierarchical cache keys and per-family freshness policies.

Keys are tuples; invalidating a tuple invalidates every key that starts with
it. Everything derived from the store's inventory list (low stock, category,
subcategory and brand filters) lives beneath ``InventoryKeys.lists()`` so a
list invalidation reaches it. Reference data, the master catalog, the store
profile and docs are separate roots and are never touched by inventory
mutations. Orders are their own root; an order mutation invalidates that
order's detail and every order list.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from .models import CategoryFilters

KeyPart = Union[str, int]
CacheKey = tuple[KeyPart, ...]

MINUTE = 60.0
TWO_MINUTES = 2 * MINUTE
TEN_MINUTES = 10 * MINUTE
THIRTY_MINUTES = 30 * MINUTE
ONE_HOUR = 60 * MINUTE
ONE_DAY = 24 * ONE_HOUR


@dataclass(frozen=True)
class CachePolicy:
    stale_after: float
    expire_after: float
    retries: int = 0
    persist: bool = True

    def __post_init__(self) -> None:
        if self.stale_after < 0 or self.expire_after < self.stale_after:
            raise ValueError("expected 0 <= stale_after <= expire_after")
        if self.retries < 0:
            raise ValueError("retries must be >= 0")


INVENTORY_LIST_POLICY = CachePolicy(stale_after=TWO_MINUTES, expire_after=THIRTY_MINUTES, retries=1)
ITEM_DETAIL_POLICY = CachePolicy(stale_after=TEN_MINUTES, expire_after=THIRTY_MINUTES, retries=1)
REFERENCE_POLICY = CachePolicy(stale_after=ONE_HOUR, expire_after=ONE_DAY, retries=1)
CATALOG_POLICY = CachePolicy(stale_after=TWO_MINUTES, expire_after=THIRTY_MINUTES, retries=1)
STORE_PROFILE_POLICY = CachePolicy(stale_after=THIRTY_MINUTES, expire_after=ONE_DAY, retries=0)
DOCS_POLICY = CachePolicy(stale_after=THIRTY_MINUTES, expire_after=ONE_DAY, retries=0)
# customer contact details never reach the snapshot file
ORDER_POLICY = CachePolicy(stale_after=MINUTE / 2, expire_after=TEN_MINUTES, retries=1, persist=False)


def filters_part(filters: CategoryFilters | None) -> str:
    if filters is None:
        return "-"
    wire = filters.to_wire()
    if not wire:
        return "-"
    return "&".join(f"{key}={wire[key]}" for key in sorted(wire))


def key_matches(key: CacheKey, prefix: CacheKey) -> bool:
    return key[: len(prefix)] == prefix


class InventoryKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("inventory",)

    @staticmethod
    def lists() -> CacheKey:
        return ("inventory", "list")

    @staticmethod
    def low_stock(threshold: float) -> CacheKey:
        return (*InventoryKeys.lists(), "low-stock", str(threshold))

    @staticmethod
    def category(name: str) -> CacheKey:
        return (*InventoryKeys.lists(), "category", name)

    @staticmethod
    def subcategory(name: str) -> CacheKey:
        return (*InventoryKeys.lists(), "subcategory", name)

    @staticmethod
    def brand(name: str) -> CacheKey:
        return (*InventoryKeys.lists(), "brand", name)

    @staticmethod
    def details() -> CacheKey:
        return ("inventory", "detail")

    @staticmethod
    def detail(item_id: str) -> CacheKey:
        return (*InventoryKeys.details(), str(item_id))


class ReferenceKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("reference",)

    @staticmethod
    def categories(filters: CategoryFilters | None = None) -> CacheKey:
        return ("reference", "categories", filters_part(filters))

    @staticmethod
    def brands() -> CacheKey:
        return ("reference", "brands")

    @staticmethod
    def measurement_units() -> CacheKey:
        return ("reference", "measurement-units")

    @staticmethod
    def subcategories() -> CacheKey:
        return ("reference", "subcategories")

    @staticmethod
    def subcategories_by_category(category_code: str) -> CacheKey:
        return (*ReferenceKeys.subcategories(), "category", category_code)

    @staticmethod
    def subcategory(subcategory_id: int) -> CacheKey:
        return (*ReferenceKeys.subcategories(), "id", int(subcategory_id))


class CatalogKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("catalog",)

    @staticmethod
    def by(dimension: str, value: str) -> CacheKey:
        return ("catalog", dimension, value)


class StoreKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("store",)

    @staticmethod
    def profile() -> CacheKey:
        return ("store", "profile")

    @staticmethod
    def owned() -> CacheKey:
        return ("store", "owned")


class DocsKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("docs",)


class OrderKeys:
    @staticmethod
    def all() -> CacheKey:
        return ("orders",)

    @staticmethod
    def lists() -> CacheKey:
        return ("orders", "list")

    @staticmethod
    def list(status: str | None = None, review_status: str | None = None) -> CacheKey:
        return (*OrderKeys.lists(), status or "*", review_status or "*")

    @staticmethod
    def details() -> CacheKey:
        return ("orders", "detail")

    @staticmethod
    def detail(order_id: str) -> CacheKey:
        return (*OrderKeys.details(), str(order_id))


# families whose contents depend on which store is selected
STORE_SCOPED_PREFIXES: tuple[CacheKey, ...] = (InventoryKeys.all(), StoreKeys.profile(), OrderKeys.all())
