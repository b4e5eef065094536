"""Bulk upsert of catalog selections into the selected store's inventory.

A run validates every draft, fetches the store's inventory once as the
baseline, then creates or updates each draft concurrently. Per-item failures
are collected into the summary instead of aborting the batch; a retry is
simply another run over ``summary.failed_drafts``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Literal

from .cache_keys import InventoryKeys
from .clients.inventory_client import InventoryClient
from .context import ContextResolver
from .draft_validation import validate_draft, validate_drafts
from .entity_cache import EntityCache
from .error_mapper import error_message
from .logger import get_logger, log_event
from .models import InventoryItem, MasterSelectionDraft, ReconciliationFailure, ReconciliationSummary
from .repository import InventoryRepository

logger = get_logger(__name__)

SAVE_FAILED_MESSAGE = "Failed to save item."

Outcome = Literal["added", "updated"]


def index_by_catalog_id(items: Sequence[InventoryItem]) -> dict[int, str]:
    """Map catalog item id to the store record id. First record wins."""
    index: dict[int, str] = {}
    for item in items:
        if item.inventory_item_id is None or not item.id:
            continue
        index.setdefault(item.inventory_item_id, item.id)
    return index


class ReconciliationEngine:
    def __init__(
        self,
        repository: InventoryRepository,
        inventory: InventoryClient,
        resolver: ContextResolver,
        cache: EntityCache,
    ) -> None:
        self._repository = repository
        self._inventory = inventory
        self._resolver = resolver
        self._cache = cache

    async def reconcile(self, drafts: Sequence[MasterSelectionDraft]) -> ReconciliationSummary:
        drafts = list(drafts)
        validate_drafts(drafts)

        context = await self._resolver.resolve_context()
        baseline = await self._repository.refresh_inventory()
        existing = index_by_catalog_id(baseline)

        results = await asyncio.gather(
            *(
                self._save(context.selected_store_id, draft, existing.get(draft.inventory_item_id), row)
                for row, draft in enumerate(drafts)
            ),
            return_exceptions=True,
        )

        added = 0
        updated = 0
        failures: list[ReconciliationFailure] = []
        for draft, result in zip(drafts, results):
            if isinstance(result, Exception):
                failures.append(ReconciliationFailure(item=draft, message=error_message(result, SAVE_FAILED_MESSAGE)))
            elif isinstance(result, BaseException):
                raise result
            elif result == "updated":
                updated += 1
            else:
                added += 1

        for draft in drafts:
            record_id = existing.get(draft.inventory_item_id)
            if record_id:
                self._cache.invalidate(InventoryKeys.detail(record_id))
        self._cache.invalidate(InventoryKeys.lists())

        summary = ReconciliationSummary(added=added, updated=updated, failed=tuple(failures))
        log_event(
            logger,
            "reconciliation",
            "reconcile",
            "success" if summary.ok else "partial",
            level=logging.INFO if summary.ok else logging.WARNING,
            store_id=context.selected_store_id,
            drafts=len(drafts),
            added=summary.added,
            updated=summary.updated,
            failed=len(summary.failed),
        )
        return summary

    async def _save(
        self,
        store_id: str,
        draft: MasterSelectionDraft,
        record_id: str | None,
        row: int,
    ) -> Outcome:
        request = validate_draft(draft, row)
        if record_id:
            await self._inventory.update_store_inventory_item(store_id, record_id, request)
            return "updated"
        await self._inventory.create_store_inventory_item(store_id, request)
        return "added"
