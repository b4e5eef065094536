from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake-case fields that read and write the backend's camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OperatingContext(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    subject_id: str
    internal_user_id: str
    owned_store_ids: tuple[str, ...]
    selected_store_id: str

    @model_validator(mode="after")
    def _selected_store_is_owned(self) -> "OperatingContext":
        if self.owned_store_ids and self.selected_store_id not in self.owned_store_ids:
            raise ValueError("selected_store_id must be one of owned_store_ids")
        return self

    @property
    def store_id(self) -> str:
        return self.selected_store_id


class InventoryItem(CamelModel):
    id: str
    inventory_item_id: int | None = None
    item_name: str = ""
    product_name: str | None = None
    product_code: str = ""
    sku: str = ""
    price: float = 0.0
    stock_quantity: float = 0
    categories: str | None = None
    sub_category: str | None = None
    brand: str | None = None
    tax_rate: float | None = None
    tax_enabled: bool = False
    description: str | None = None
    image_url: str | None = None
    active: bool | None = None
    seasonal: bool | None = None
    discontinued: bool | None = None
    modifiers: str | None = None
    labels: str | None = None
    fees: str | None = None
    calories: float | None = None
    weight: float | None = None
    weight_unit: str | None = None
    popularity_score: float | None = None


class MasterInventoryItem(CamelModel):
    id: int
    item_name: str = ""
    sku: str = ""
    product_id: int | None = None
    product_name: str | None = None
    category_id: int | None = None
    category_code: str | None = None
    category_display_name: str | None = None
    sub_category_id: int | None = None
    sub_category_code: str | None = None
    sub_category_display_name: str | None = None
    brand_id: int | None = None
    brand_name: str | None = None
    modifiers: str | None = None
    labels: str | None = None
    description: str | None = None
    image_url: str | None = None
    calories: float | None = None
    weight: float | None = None
    weight_unit: str | None = None


class MasterSelectionDraft(CamelModel):
    """Editable catalog selection; price and quantity stay raw text until commit."""

    inventory_item_id: int
    item_name: str
    sku: str = ""
    product_name: str | None = None
    brand_name: str | None = None
    category_display_name: str | None = None
    sub_category_display_name: str | None = None
    description: str | None = None
    image_url: str | None = None
    price: str = ""
    stock_quantity: str = ""
    tax_enabled: bool = True
    active: bool = True
    seasonal: bool = False
    discontinued: bool = False

    @classmethod
    def from_master_item(cls, item: MasterInventoryItem) -> "MasterSelectionDraft":
        return cls(
            inventory_item_id=item.id,
            item_name=item.item_name,
            product_name=item.product_name,
            sku=item.sku,
            brand_name=item.brand_name,
            category_display_name=item.category_display_name,
            sub_category_display_name=item.sub_category_display_name,
            description=item.description,
            image_url=item.image_url,
        )


class StoreType(str, Enum):
    GROCERY = "GROCERY"
    CONVENIENCE = "CONVENIENCE"


class StoreEthnicity(str, Enum):
    INDIAN = "INDIAN"
    AMERICAN = "AMERICAN"


class StoreProfile(CamelModel):
    id: str
    display_name: str = ""
    email: str | None = None
    store_type: StoreType | None = None
    store_ethnicity: StoreEthnicity | None = None
    created_at: str | None = None
    updated_at: str | None = None


class Brand(CamelModel):
    id: int
    name: str = ""
    slug: str = ""
    created_at: str | None = None
    updated_at: str | None = None


class Category(CamelModel):
    id: int
    code: str = ""
    display_name: str = ""


class UnitType(str, Enum):
    WEIGHT = "WEIGHT"
    VOLUME = "VOLUME"
    COUNT = "COUNT"


class MeasurementUnit(CamelModel):
    id: int
    code: str = ""
    display_name: str = ""
    unit_type: UnitType | None = None


class Subcategory(CamelModel):
    id: int
    code: str = ""
    display_name: str = ""
    description: str | None = None
    category_id: int | None = None
    category_code: str | None = None
    category_display_name: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


class SubcategoryWrite(CamelModel):
    code: str | None = None
    display_name: str | None = None
    description: str | None = None
    category_code: str | None = None


class DocLink(BaseModel):
    name: str = ""
    url: str = ""


class DocsResponse(BaseModel):
    links: list[DocLink] = Field(default_factory=list)


class CategoryFilters(CamelModel):
    store_type: StoreType | None = None
    store_ethnicity: StoreEthnicity | None = None


class StoreInventoryRequest(CamelModel):
    """Body for store inventory create and update calls."""

    inventory_item_id: int | None = None
    item_name: str | None = None
    product_name: str | None = None
    sku: str | None = None
    brand_name: str | None = None
    category_display_name: str | None = None
    sub_category_display_name: str | None = None
    description: str | None = None
    image_url: str | None = None
    price: float = 0.0
    stock_quantity: float = 0
    tax_enabled: bool = False
    tax_rate: float | None = None
    active: bool = True
    seasonal: bool = False
    discontinued: bool = False
    modifiers: str | None = None
    labels: str | None = None
    fees: str | None = None
    calories: float | None = None
    weight: float | None = None
    weight_unit: str | None = None

    @model_validator(mode="after")
    def _product_name_defaults_to_item_name(self) -> "StoreInventoryRequest":
        if not self.product_name and self.item_name:
            self.product_name = self.item_name
        return self

    def to_wire(self) -> dict[str, Any]:
        payload = super().to_wire()
        return {key: value for key, value in payload.items() if value != ""}


class ReconciliationFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    item: MasterSelectionDraft
    message: str


class ReconciliationSummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    added: int = 0
    updated: int = 0
    failed: tuple[ReconciliationFailure, ...] = ()

    @property
    def succeeded(self) -> int:
        return self.added + self.updated

    @property
    def failed_drafts(self) -> list[MasterSelectionDraft]:
        return [failure.item for failure in self.failed]

    @property
    def ok(self) -> bool:
        return not self.failed
