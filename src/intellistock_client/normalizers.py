"""Best-effort mapping of backend payloads onto the canonical models.

The backend's response shape differs between endpoints and has drifted over
time. Every function here accepts whatever came over the wire and returns a
canonical model; nothing raises. Values that had to be coerced or dropped are
reported as :class:`NormalizationIssue` entries (appended to the optional
``issues`` list and logged at WARNING) so data-quality regressions stay
visible without breaking reads.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar

from .logger import get_logger, log_event
from .models import (
    Brand,
    Category,
    DocLink,
    DocsResponse,
    InventoryItem,
    MasterInventoryItem,
    MeasurementUnit,
    StoreEthnicity,
    StoreProfile,
    StoreType,
    Subcategory,
    UnitType,
)
from .models_orders import (
    OrderDetail,
    OrderItem,
    OrderStatus,
    OrderStatusResponse,
    OrderSubstitution,
    OrderSummary,
    PaymentCollectionStatus,
    StoreReviewStatus,
    SubstitutionStatus,
)

logger = get_logger(__name__)

T = TypeVar("T")
_MISSING = object()

ITEM_ID_KEYS = ("id", "storeInventoryId", "inventoryId", "itemId")
ITEM_NAME_KEYS = ("itemName", "productName", "name")
PRODUCT_CODE_KEYS = ("productCode", "sku", "itemCode")
CATEGORY_KEYS = ("categories", "categoryDisplayName", "category")
SUB_CATEGORY_KEYS = ("subCategory", "subCategoryDisplayName", "subcategory")
BRAND_KEYS = ("brand", "brandName")
ENTITY_ID_KEYS = ("id", "userId", "internalUserId", "storeId", "store_id")
LIST_CONTAINER_KEYS = ("items", "data", "rows", "content")

_TRUE_STRINGS = {"1", "true", "yes", "y", "on"}
_FALSE_STRINGS = {"0", "false", "no", "n", "off", ""}


@dataclass(frozen=True)
class NormalizationIssue:
    entity: str
    field: str
    raw_value: Any
    reason: str


class _Reporter:
    def __init__(self, entity: str, issues: list[NormalizationIssue] | None) -> None:
        self.entity = entity
        self.issues = issues

    def __call__(self, field: str, raw_value: Any, reason: str) -> None:
        issue = NormalizationIssue(self.entity, field, raw_value, reason)
        if self.issues is not None:
            self.issues.append(issue)
        log_event(
            logger,
            "normalizers",
            self.entity,
            "coerced",
            level=logging.WARNING,
            field=field,
            raw_value=repr(raw_value)[:80],
            reason=reason,
        )


def _first(payload: Mapping[str, Any], keys: Iterable[str], *, skip_empty: bool = False) -> Any:
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if skip_empty and value == "":
            continue
        return value
    return _MISSING


def _to_float(value: Any, report: _Reporter, field: str, default: float | None = 0.0) -> float | None:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, bool):
        report(field, value, "boolean where a number was expected")
        return default
    try:
        number = float(value)
    except OverflowError:
        report(field, value, "not a finite number")
        return default
    except (TypeError, ValueError):
        report(field, value, "not numeric")
        return default
    if math.isnan(number) or math.isinf(number):
        report(field, value, "not a finite number")
        return default
    return number


def _to_int(value: Any, report: _Reporter, field: str) -> int | None:
    number = _to_float(value, report, field, default=None)
    if number is None:
        return None
    if not number.is_integer():
        report(field, value, "fractional id truncated")
    return int(number)


def _to_bool(value: Any, report: _Reporter, field: str, default: bool | None = False) -> bool | None:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    report(field, value, "not boolean")
    return False if default is None else default


def _to_str(value: Any, report: _Reporter, field: str, default: str | None = "") -> str | None:
    if value is _MISSING or value is None:
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    report(field, value, "not a string")
    return default


def _optional_str(value: Any, report: _Reporter, field: str) -> str | None:
    text = _to_str(value, report, field, default=None)
    return text or None


def _trimmed(value: Any, report: _Reporter, field: str) -> str | None:
    text = _to_str(value, report, field, default=None)
    if text is None:
        return None
    return text.strip() or None


def _as_mapping(payload: Any, report: _Reporter) -> Mapping[str, Any]:
    if isinstance(payload, Mapping):
        return payload
    report("<payload>", payload, "payload is not an object")
    return {}


def _enum(enum_cls: type[T], value: Any, report: _Reporter, field: str) -> T | None:
    if value is _MISSING or value is None:
        return None
    try:
        return enum_cls(value)  # type: ignore[call-arg]
    except ValueError:
        report(field, value, f"unknown {enum_cls.__name__}")
        return None


def extract_id(value: Any) -> str | None:
    """Pull an identifier out of a bare id or an object carrying one."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (str, int, float)):
        return str(value)
    if not isinstance(value, Mapping):
        return None
    for key in ENTITY_ID_KEYS:
        candidate = value.get(key)
        if candidate is None or isinstance(candidate, bool):
            continue
        if isinstance(candidate, (str, int, float)):
            return str(candidate)
    return None


def parse_store_ids(payload: Any) -> list[str]:
    if isinstance(payload, list):
        entries = payload
    elif isinstance(payload, Mapping) and isinstance(payload.get("stores"), list):
        entries = payload["stores"]
    else:
        entries = []
    store_ids: list[str] = []
    for entry in entries:
        store_id = (extract_id(entry) or "").strip()
        if store_id and store_id not in store_ids:
            store_ids.append(store_id)
    return store_ids


def list_entries(payload: Any) -> list[Any]:
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        for key in LIST_CONTAINER_KEYS:
            if isinstance(payload.get(key), list):
                return payload[key]
    return []


def normalize_list(
    payload: Any,
    normalizer: Callable[..., T],
    issues: list[NormalizationIssue] | None = None,
) -> list[T]:
    return [normalizer(entry if entry is not None else {}, issues) for entry in list_entries(payload)]


def normalize_inventory_item(payload: Any, issues: list[NormalizationIssue] | None = None) -> InventoryItem:
    report = _Reporter("inventory_item", issues)
    data = _as_mapping(payload, report)

    raw_id = _first(data, ITEM_ID_KEYS)
    inventory_item_id = data.get("inventoryItemId")
    return InventoryItem(
        id=_to_str(raw_id, report, "id") or "",
        inventory_item_id=_to_int(inventory_item_id, report, "inventoryItemId") if inventory_item_id else None,
        item_name=_to_str(_first(data, ITEM_NAME_KEYS), report, "itemName") or "",
        product_name=_optional_str(data.get("productName"), report, "productName"),
        product_code=_to_str(_first(data, PRODUCT_CODE_KEYS), report, "productCode") or "",
        sku=_to_str(data.get("sku"), report, "sku") or "",
        price=_to_float(data.get("price"), report, "price") or 0.0,
        stock_quantity=_to_float(data.get("stockQuantity"), report, "stockQuantity") or 0,
        categories=_optional_str(_first(data, CATEGORY_KEYS, skip_empty=True), report, "categories"),
        sub_category=_optional_str(_first(data, SUB_CATEGORY_KEYS, skip_empty=True), report, "subCategory"),
        brand=_optional_str(_first(data, BRAND_KEYS, skip_empty=True), report, "brand"),
        tax_rate=_to_float(data.get("taxRate"), report, "taxRate", default=None),
        tax_enabled=bool(_to_bool(data.get("taxEnabled"), report, "taxEnabled")),
        description=_optional_str(data.get("description"), report, "description"),
        image_url=_optional_str(data.get("imageUrl"), report, "imageUrl"),
        active=_to_bool(data.get("active"), report, "active", default=None),
        seasonal=_to_bool(data.get("seasonal"), report, "seasonal", default=None),
        discontinued=_to_bool(data.get("discontinued"), report, "discontinued", default=None),
        modifiers=_optional_str(data.get("modifiers"), report, "modifiers"),
        labels=_optional_str(data.get("labels"), report, "labels"),
        fees=_optional_str(data.get("fees"), report, "fees"),
        calories=_to_float(data.get("calories"), report, "calories", default=None),
        weight=_to_float(data.get("weight"), report, "weight", default=None),
        weight_unit=_optional_str(data.get("weightUnit"), report, "weightUnit"),
        popularity_score=_to_float(data.get("popularityScore"), report, "popularityScore", default=None),
    )


def normalize_master_item(payload: Any, issues: list[NormalizationIssue] | None = None) -> MasterInventoryItem:
    report = _Reporter("master_item", issues)
    data = _as_mapping(payload, report)
    return MasterInventoryItem(
        id=_to_int(data.get("id"), report, "id") or 0,
        item_name=_to_str(_first(data, ITEM_NAME_KEYS), report, "itemName") or "",
        sku=_to_str(data.get("sku"), report, "sku") or "",
        product_id=_to_int(data.get("productId"), report, "productId"),
        product_name=_optional_str(data.get("productName"), report, "productName"),
        category_id=_to_int(data.get("categoryId"), report, "categoryId"),
        category_code=_optional_str(data.get("categoryCode"), report, "categoryCode"),
        category_display_name=_optional_str(data.get("categoryDisplayName"), report, "categoryDisplayName"),
        sub_category_id=_to_int(data.get("subCategoryId"), report, "subCategoryId"),
        sub_category_code=_optional_str(data.get("subCategoryCode"), report, "subCategoryCode"),
        sub_category_display_name=_optional_str(
            data.get("subCategoryDisplayName"), report, "subCategoryDisplayName"
        ),
        brand_id=_to_int(data.get("brandId"), report, "brandId"),
        brand_name=_optional_str(data.get("brandName"), report, "brandName"),
        modifiers=_optional_str(data.get("modifiers"), report, "modifiers"),
        labels=_optional_str(data.get("labels"), report, "labels"),
        description=_optional_str(data.get("description"), report, "description"),
        image_url=_optional_str(data.get("imageUrl"), report, "imageUrl"),
        calories=_to_float(data.get("calories"), report, "calories", default=None),
        weight=_to_float(data.get("weight"), report, "weight", default=None),
        weight_unit=_optional_str(data.get("weightUnit"), report, "weightUnit"),
    )


def normalize_store_profile(payload: Any, issues: list[NormalizationIssue] | None = None) -> StoreProfile:
    report = _Reporter("store_profile", issues)
    data = _as_mapping(payload, report)
    return StoreProfile(
        id=extract_id(data) or "",
        display_name=_to_str(_first(data, ("displayName", "name")), report, "displayName") or "",
        email=_optional_str(data.get("email"), report, "email"),
        store_type=_enum(StoreType, data.get("storeType"), report, "storeType"),
        store_ethnicity=_enum(StoreEthnicity, data.get("storeEthnicity"), report, "storeEthnicity"),
        created_at=_optional_str(data.get("createdAt"), report, "createdAt"),
        updated_at=_optional_str(data.get("updatedAt"), report, "updatedAt"),
    )


def normalize_brand(payload: Any, issues: list[NormalizationIssue] | None = None) -> Brand:
    report = _Reporter("brand", issues)
    data = _as_mapping(payload, report)
    return Brand(
        id=_to_int(data.get("id"), report, "id") or 0,
        name=_to_str(data.get("name"), report, "name") or "",
        slug=_to_str(data.get("slug"), report, "slug") or "",
        created_at=_optional_str(data.get("createdAt"), report, "createdAt"),
        updated_at=_optional_str(data.get("updatedAt"), report, "updatedAt"),
    )


def normalize_category(payload: Any, issues: list[NormalizationIssue] | None = None) -> Category:
    report = _Reporter("category", issues)
    data = _as_mapping(payload, report)
    return Category(
        id=_to_int(data.get("id"), report, "id") or 0,
        code=_to_str(data.get("code"), report, "code") or "",
        display_name=_to_str(_first(data, ("displayName", "name")), report, "displayName") or "",
    )


def normalize_subcategory(payload: Any, issues: list[NormalizationIssue] | None = None) -> Subcategory:
    report = _Reporter("subcategory", issues)
    data = _as_mapping(payload, report)
    return Subcategory(
        id=_to_int(data.get("id"), report, "id") or 0,
        code=_to_str(data.get("code"), report, "code") or "",
        display_name=_to_str(_first(data, ("displayName", "name")), report, "displayName") or "",
        description=_optional_str(data.get("description"), report, "description"),
        category_id=_to_int(data.get("categoryId"), report, "categoryId"),
        category_code=_optional_str(data.get("categoryCode"), report, "categoryCode"),
        category_display_name=_optional_str(data.get("categoryDisplayName"), report, "categoryDisplayName"),
        created_at=_optional_str(data.get("createdAt"), report, "createdAt"),
        updated_at=_optional_str(data.get("updatedAt"), report, "updatedAt"),
    )


def normalize_measurement_unit(payload: Any, issues: list[NormalizationIssue] | None = None) -> MeasurementUnit:
    report = _Reporter("measurement_unit", issues)
    data = _as_mapping(payload, report)
    return MeasurementUnit(
        id=_to_int(data.get("id"), report, "id") or 0,
        code=_to_str(data.get("code"), report, "code") or "",
        display_name=_to_str(_first(data, ("displayName", "name")), report, "displayName") or "",
        unit_type=_enum(UnitType, data.get("unitType"), report, "unitType"),
    )


def normalize_docs(payload: Any, issues: list[NormalizationIssue] | None = None) -> DocsResponse:
    report = _Reporter("docs", issues)
    data = _as_mapping(payload, report)
    links = []
    for entry in list_entries(data.get("links")):
        if not isinstance(entry, Mapping):
            report("links", entry, "link is not an object")
            continue
        links.append(
            DocLink(
                name=_to_str(entry.get("name"), report, "links.name") or "",
                url=_to_str(entry.get("url"), report, "links.url") or "",
            )
        )
    return DocsResponse(links=links)


def _order_enum(enum_cls: type[T], data: Mapping[str, Any], report: _Reporter, field: str) -> T | None:
    return _enum(enum_cls, _trimmed(data.get(field), report, field), report, field)


def normalize_order_item(payload: Any, issues: list[NormalizationIssue] | None = None) -> OrderItem:
    report = _Reporter("order_item", issues)
    data = _as_mapping(payload, report)
    return OrderItem(
        id=_to_int(data.get("id"), report, "id"),
        product_id=_to_int(data.get("productId"), report, "productId") or 0,
        name=_trimmed(data.get("name"), report, "name") or "Item",
        unit_price=_to_float(data.get("unitPrice"), report, "unitPrice") or 0.0,
        quantity=_to_int(data.get("quantity"), report, "quantity") or 0,
        line_total=_to_float(data.get("lineTotal"), report, "lineTotal") or 0.0,
    )


def normalize_order_substitution(payload: Any, issues: list[NormalizationIssue] | None = None) -> OrderSubstitution:
    report = _Reporter("order_substitution", issues)
    data = _as_mapping(payload, report)
    unit_price = _to_float(data.get("replacementUnitPrice"), report, "replacementUnitPrice", default=None)
    # zero ids and quantities mean "not set" on this endpoint
    return OrderSubstitution(
        id=_to_int(data.get("id"), report, "id") or 0,
        order_item_id=_to_int(data.get("orderItemId"), report, "orderItemId") or None,
        requested_product_id=_to_int(data.get("requestedProductId"), report, "requestedProductId") or None,
        replacement_product_id=_to_int(data.get("replacementProductId"), report, "replacementProductId") or None,
        replacement_name=_trimmed(data.get("replacementName"), report, "replacementName"),
        replacement_qty=_to_int(data.get("replacementQty"), report, "replacementQty") or None,
        replacement_unit_price=unit_price or None,
        reason=_trimmed(data.get("reason"), report, "reason"),
        status=_order_enum(SubstitutionStatus, data, report, "status") or SubstitutionStatus.PENDING_CUSTOMER,
    )


def _order_fields(data: Mapping[str, Any], report: _Reporter) -> dict[str, Any]:
    """Fields shared by order summaries and details."""
    return {
        "order_id": _trimmed(data.get("orderId"), report, "orderId") or "",
        "user_id": _trimmed(data.get("userId"), report, "userId") or "",
        "store_id": _trimmed(data.get("storeId"), report, "storeId") or "",
        "status": _order_enum(OrderStatus, data, report, "status") or OrderStatus.PENDING_PAYMENT,
        "store_review_status": _order_enum(StoreReviewStatus, data, report, "storeReviewStatus"),
        "payment_collection_status": _order_enum(PaymentCollectionStatus, data, report, "paymentCollectionStatus"),
        "fulfillment_type": _trimmed(data.get("fulfillmentType"), report, "fulfillmentType"),
        "delivery_status": _trimmed(data.get("deliveryStatus"), report, "deliveryStatus"),
        "customer_name": _trimmed(data.get("customerName"), report, "customerName"),
        "customer_phone": _trimmed(data.get("customerPhone"), report, "customerPhone"),
        "pending_substitution_count": _to_int(
            data.get("pendingSubstitutionCount"), report, "pendingSubstitutionCount"
        )
        or 0,
        "total": _to_float(data.get("total"), report, "total") or 0.0,
        "pickup_window_start": _trimmed(data.get("pickupWindowStart"), report, "pickupWindowStart"),
        "pickup_window_end": _trimmed(data.get("pickupWindowEnd"), report, "pickupWindowEnd"),
        "created_at": _trimmed(data.get("createdAt"), report, "createdAt"),
    }


def normalize_order_summary(payload: Any, issues: list[NormalizationIssue] | None = None) -> OrderSummary:
    report = _Reporter("order_summary", issues)
    return OrderSummary(**_order_fields(_as_mapping(payload, report), report))


def normalize_order_detail(payload: Any, issues: list[NormalizationIssue] | None = None) -> OrderDetail:
    report = _Reporter("order_detail", issues)
    data = _as_mapping(payload, report)
    return OrderDetail(
        **_order_fields(data, report),
        has_pending_substitutions=_to_bool(
            data.get("hasPendingSubstitutions"), report, "hasPendingSubstitutions", default=None
        ),
        subtotal=_to_float(data.get("subtotal"), report, "subtotal") or 0.0,
        tax=_to_float(data.get("tax"), report, "tax") or 0.0,
        currency=_trimmed(data.get("currency"), report, "currency"),
        updated_at=_trimmed(data.get("updatedAt"), report, "updatedAt"),
        items=normalize_list(data.get("items"), normalize_order_item, issues),
        substitutions=normalize_list(data.get("substitutions"), normalize_order_substitution, issues),
    )


def normalize_order_status(payload: Any, issues: list[NormalizationIssue] | None = None) -> OrderStatusResponse:
    report = _Reporter("order_status", issues)
    data = _as_mapping(payload, report)
    return OrderStatusResponse(
        order_id=_trimmed(data.get("orderId"), report, "orderId") or "",
        status=_order_enum(OrderStatus, data, report, "status") or OrderStatus.PENDING_PAYMENT,
        store_review_status=_order_enum(StoreReviewStatus, data, report, "storeReviewStatus"),
        payment_collection_status=_order_enum(PaymentCollectionStatus, data, report, "paymentCollectionStatus"),
        updated_at=_trimmed(data.get("updatedAt"), report, "updatedAt"),
    )
