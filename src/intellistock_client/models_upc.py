from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class UpcOffer(BaseModel):
    model_config = ConfigDict(extra="allow")

    merchant: str | None = None
    domain: str | None = None
    title: str | None = None
    currency: str | None = None
    list_price: str | None = None
    price: float | None = None
    shipping: str | None = None
    condition: str | None = None
    availability: str | None = None
    link: str | None = None
    updated_t: int | None = None


class UpcItem(BaseModel):
    model_config = ConfigDict(extra="allow")

    ean: str | None = None
    title: str = ""
    description: str = ""
    upc: str | None = None
    brand: str = ""
    model: str | None = None
    color: str | None = None
    size: str | None = None
    dimension: str | None = None
    weight: str = ""
    category: str = ""
    currency: str | None = None
    lowest_recorded_price: float | None = None
    highest_recorded_price: float | None = None
    images: list[str] = Field(default_factory=list)
    offers: list[UpcOffer] = Field(default_factory=list)
    asin: str | None = None
    elid: str | None = None


class UpcItemDbResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: str
    total: int = 0
    offset: int = 0
    items: list[UpcItem] = Field(default_factory=list)
