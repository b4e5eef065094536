from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Sequence

from .models import MasterSelectionDraft, StoreInventoryRequest


@dataclass(frozen=True)
class ValidationIssue:
    row_index: int | None
    field: str
    reason: str


class ClientValidationError(ValueError):
    def __init__(self, issues: list[ValidationIssue]) -> None:
        self.issues = issues
        super().__init__(self._format_message())

    @property
    def message(self) -> str:
        return str(self)

    def _format_message(self) -> str:
        if not self.issues:
            return "Validation failed"
        issue = self.issues[0]
        location = f"row {issue.row_index}" if issue.row_index is not None else "payload"
        return f"{location} {issue.field}: {issue.reason}"


def parse_price(value: str) -> Decimal | None:
    """Non-negative decimal, or None when the text is not one."""
    text = (value or "").strip()
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    if not parsed.is_finite() or parsed < 0:
        return None
    return parsed


def parse_quantity(value: str) -> int | None:
    """Non-negative whole number, or None. "10.0" counts as whole."""
    parsed = parse_price(value)
    if parsed is None or parsed != parsed.to_integral_value():
        return None
    return int(parsed)


def draft_issues(draft: MasterSelectionDraft, row_index: int | None = None) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    if parse_price(draft.price) is None:
        issues.append(ValidationIssue(row_index, "price", f"{draft.item_name}: price must be a non-negative number"))
    if parse_quantity(draft.stock_quantity) is None:
        issues.append(
            ValidationIssue(row_index, "stock_quantity", f"{draft.item_name}: quantity must be a whole number")
        )
    return issues


def validate_draft(draft: MasterSelectionDraft, row_index: int | None = None) -> StoreInventoryRequest:
    issues = draft_issues(draft, row_index)
    if issues:
        raise ClientValidationError(issues)
    return build_request(draft)


def validate_drafts(drafts: Sequence[MasterSelectionDraft]) -> list[StoreInventoryRequest]:
    if not drafts:
        raise ClientValidationError([ValidationIssue(row_index=None, field="drafts", reason="No items selected.")])
    issues = [issue for index, draft in enumerate(drafts) for issue in draft_issues(draft, index)]
    if issues:
        raise ClientValidationError(issues)
    return [build_request(draft) for draft in drafts]


def build_request(draft: MasterSelectionDraft) -> StoreInventoryRequest:
    price = parse_price(draft.price)
    quantity = parse_quantity(draft.stock_quantity)
    return StoreInventoryRequest(
        inventory_item_id=draft.inventory_item_id,
        item_name=draft.item_name,
        product_name=draft.product_name or draft.item_name,
        sku=draft.sku,
        brand_name=draft.brand_name,
        category_display_name=draft.category_display_name,
        sub_category_display_name=draft.sub_category_display_name,
        description=draft.description,
        image_url=draft.image_url,
        price=float(price) if price is not None else 0.0,
        stock_quantity=quantity if quantity is not None else 0,
        tax_enabled=draft.tax_enabled,
        active=draft.active,
        seasonal=draft.seasonal,
        discontinued=draft.discontinued,
    )
