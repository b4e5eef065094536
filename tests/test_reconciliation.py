from __future__ import annotations

import asyncio
import json
import logging

import httpx
import pytest

from fake_backend import FakeBackend, inventory_row, seed_context
from intellistock_client.cache_keys import InventoryKeys
from intellistock_client.draft_validation import ClientValidationError
from intellistock_client.exceptions import ServerError
from intellistock_client.models import InventoryItem, MasterSelectionDraft
from intellistock_client.reconciliation import SAVE_FAILED_MESSAGE, index_by_catalog_id
from intellistock_client.session import InventorySession

LIST_PATH = "/api/stores/store-1/inventory"


def _session(config, backend: FakeBackend, credential_store) -> InventorySession:
    seed_context(backend)
    return InventorySession(config, credential_store=credential_store, transport=backend.transport)


def _draft(catalog_id: int, name: str, price: str = "2.50", quantity: str = "3") -> MasterSelectionDraft:
    return MasterSelectionDraft(inventory_item_id=catalog_id, item_name=name, price=price, stock_quantity=quantity)


def test_index_by_catalog_id_keeps_first_record() -> None:
    items = [
        InventoryItem(id="r1", inventory_item_id=42, item_name="A"),
        InventoryItem(id="r2", inventory_item_id=42, item_name="A again"),
        InventoryItem(id="r3", inventory_item_id=None, item_name="Custom"),
    ]

    assert index_by_catalog_id(items) == {42: "r1"}


def test_existing_items_are_updated_and_new_ones_created(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", LIST_PATH, json=[inventory_row("r42", 42, "Basmati Rice")])
    backend.add("PUT", f"{LIST_PATH}/r42", json=inventory_row("r42", 42, "Basmati Rice"))
    backend.add("POST", LIST_PATH, json=inventory_row("r99", 99, "Masala Chai"))
    session = _session(config, backend, credential_store)

    summary = asyncio.run(session.reconcile([_draft(42, "Basmati Rice"), _draft(99, "Masala Chai")]))

    assert (summary.added, summary.updated, summary.failed) == (1, 1, ())
    assert summary.ok is True
    put = next(call for call in backend.calls if call.method == "PUT")
    body = json.loads(put.body)
    assert body["inventoryItemId"] == 42
    assert body["price"] == 2.5
    assert body["stockQuantity"] == 3
    assert body["productName"] == "Basmati Rice"


def test_rerunning_the_same_selection_only_updates(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", LIST_PATH, json=[inventory_row("r42", 42, "Basmati Rice")])
    backend.add("PUT", f"{LIST_PATH}/r42", json=inventory_row("r42", 42, "Basmati Rice"))
    backend.add("PUT", f"{LIST_PATH}/r99", json=inventory_row("r99", 99, "Masala Chai"))
    backend.add("POST", LIST_PATH, json=inventory_row("r99", 99, "Masala Chai"))
    session = _session(config, backend, credential_store)
    drafts = [_draft(42, "Basmati Rice"), _draft(99, "Masala Chai")]

    async def run():
        first = await session.reconcile(drafts)
        backend.replace(
            "GET",
            LIST_PATH,
            json=[inventory_row("r42", 42, "Basmati Rice"), inventory_row("r99", 99, "Masala Chai")],
        )
        return first, await session.reconcile(drafts)

    first, second = asyncio.run(run())

    assert (first.added, first.updated) == (1, 1)
    assert (second.added, second.updated) == (0, 2)
    assert backend.count("POST", LIST_PATH) == 1
    assert backend.count("GET", LIST_PATH) == 2


def test_partial_failure_is_reported_and_retryable(config, backend: FakeBackend, credential_store, caplog) -> None:
    backend.add("GET", LIST_PATH, json=[inventory_row("r42", 42, "Basmati Rice")])
    backend.add("PUT", f"{LIST_PATH}/r42", json=inventory_row("r42", 42, "Basmati Rice"))
    backend.add("POST", LIST_PATH, json={"message": "Duplicate SKU"}, status=409)
    backend.add("POST", LIST_PATH, json=inventory_row("r99", 99, "Masala Chai"))
    session = _session(config, backend, credential_store)

    with caplog.at_level(logging.WARNING):
        summary = asyncio.run(session.reconcile([_draft(42, "Basmati Rice"), _draft(99, "Masala Chai")]))

    assert (summary.added, summary.updated) == (0, 1)
    assert summary.ok is False
    assert [failure.message for failure in summary.failed] == ["Duplicate SKU"]
    assert [draft.inventory_item_id for draft in summary.failed_drafts] == [99]
    assert '"outcome": "partial"' in caplog.text

    retry = asyncio.run(session.reconcile(summary.failed_drafts))

    assert (retry.added, retry.updated, retry.failed) == (1, 0, ())


def test_failure_without_message_uses_fallback(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", LIST_PATH, json=[])

    def broken(request):
        raise RuntimeError()

    backend.add("POST", LIST_PATH, handler=broken)
    session = _session(config, backend, credential_store)

    summary = asyncio.run(session.reconcile([_draft(7, "Ghee")]))

    assert summary.added == 0
    assert [failure.message for failure in summary.failed] == [SAVE_FAILED_MESSAGE]


def test_invalid_draft_rejects_the_whole_batch(config, backend: FakeBackend, credential_store) -> None:
    session = _session(config, backend, credential_store)
    drafts = [_draft(42, "Basmati Rice"), _draft(99, "Masala Chai", quantity="2.5")]

    with pytest.raises(ClientValidationError) as excinfo:
        asyncio.run(session.reconcile(drafts))

    assert excinfo.value.issues[0].row_index == 1
    assert excinfo.value.issues[0].field == "stock_quantity"
    assert backend.calls == []


def test_empty_selection_is_rejected(config, backend: FakeBackend, credential_store) -> None:
    session = _session(config, backend, credential_store)

    with pytest.raises(ClientValidationError, match="No items selected"):
        asyncio.run(session.reconcile([]))


def test_baseline_failure_aborts_before_writes(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", LIST_PATH, json={"message": "down"}, status=503)
    session = _session(config, backend, credential_store)

    with pytest.raises(ServerError):
        asyncio.run(session.reconcile([_draft(42, "Basmati Rice")]))

    assert backend.count("POST", LIST_PATH) == 0
    assert backend.count("PUT", f"{LIST_PATH}/r42") == 0


def test_inventory_is_refetched_after_reconcile(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", LIST_PATH, json=[inventory_row("r42", 42, "Basmati Rice")])
    backend.add("GET", f"{LIST_PATH}/r42", json=inventory_row("r42", 42, "Basmati Rice"))
    backend.add("PUT", f"{LIST_PATH}/r42", json=inventory_row("r42", 42, "Basmati Rice", stockQuantity=3))
    session = _session(config, backend, credential_store)
    repo = session.repository

    async def run() -> None:
        await repo.inventory()
        await repo.item("r42")
        await session.reconcile([_draft(42, "Basmati Rice")])
        assert session.cache.peek(InventoryKeys.lists()).is_stale is True
        await repo.inventory()
        await repo.item("r42")

    asyncio.run(run())

    # one read before, one baseline, one after
    assert backend.count("GET", LIST_PATH) == 3
    assert backend.count("GET", f"{LIST_PATH}/r42") == 2


class _HeldInventory:
    """Store inventory whose next list read can be held open while writes land."""

    def __init__(self, rows: list[dict]) -> None:
        self.rows = rows
        self.hold_next = False
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def list(self, request: httpx.Request) -> httpx.Response:
        snapshot = list(self.rows)
        if self.hold_next:
            self.hold_next = False
            self.started.set()
            await self.release.wait()
        return httpx.Response(200, json=snapshot)

    def create(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        row = inventory_row(f"r{body['inventoryItemId']}", body["inventoryItemId"], body["itemName"])
        self.rows.append(row)
        return httpx.Response(200, json=row)

    def update(self, request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=json.loads(request.content))


def test_baseline_ignores_a_list_read_started_before_earlier_writes(
    config, backend: FakeBackend, credential_store
) -> None:
    session = _session(config, backend, credential_store)
    draft = _draft(99, "Masala Chai")

    async def run():
        inventory = _HeldInventory([inventory_row("r42", 42, "Basmati Rice")])
        backend.add("GET", LIST_PATH, handler=inventory.list)
        backend.add("POST", LIST_PATH, handler=inventory.create)
        backend.add("PUT", f"{LIST_PATH}/r99", handler=inventory.update)
        await session.resolve_context()

        inventory.hold_next = True
        screen_read = asyncio.ensure_future(session.repository.inventory())
        await inventory.started.wait()

        first = await asyncio.wait_for(session.reconcile([draft]), timeout=1)
        second = await asyncio.wait_for(session.reconcile([draft]), timeout=1)
        inventory.release.set()
        await screen_read
        return first, second

    first, second = asyncio.run(run())

    assert (first.added, first.updated) == (1, 0)
    assert (second.added, second.updated) == (0, 1)
    assert backend.count("POST", LIST_PATH) == 1
    assert [item.id for item in session.cache.get_cached(InventoryKeys.lists())] == ["r42", "r99"]


def test_saves_run_concurrently_and_a_slow_failure_does_not_hold_back_the_rest(
    config, backend: FakeBackend, credential_store
) -> None:
    drafts = [_draft(catalog_id, f"Item {catalog_id}") for catalog_id in (1, 2, 3, 4)]
    session = _session(config, backend, credential_store)
    completed: list[int] = []

    async def run():
        arrived: list[int] = []
        all_in_flight = asyncio.Event()

        async def create(request: httpx.Request) -> httpx.Response:
            catalog_id = json.loads(request.content)["inventoryItemId"]
            arrived.append(catalog_id)
            if len(arrived) == len(drafts):
                all_in_flight.set()
            await all_in_flight.wait()
            if catalog_id == 2:
                await asyncio.sleep(0.05)
                completed.append(catalog_id)
                return httpx.Response(409, json={"message": "Duplicate SKU"})
            completed.append(catalog_id)
            return httpx.Response(200, json=inventory_row(f"r{catalog_id}", catalog_id, f"Item {catalog_id}"))

        backend.add("GET", LIST_PATH, json=[])
        backend.add("POST", LIST_PATH, handler=create)
        return await asyncio.wait_for(session.reconcile(drafts), timeout=1)

    summary = asyncio.run(run())

    assert summary.added == 3
    assert [draft.inventory_item_id for draft in summary.failed_drafts] == [2]
    assert summary.failed[0].message == "Duplicate SKU"
    assert sorted(completed[:3]) == [1, 3, 4]
    assert completed[-1] == 2
