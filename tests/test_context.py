from __future__ import annotations

import asyncio

import pytest

from fake_backend import INVENTORY_URL, USER_URL, FakeBackend
from intellistock_client.clients.identity_client import IdentityClient
from intellistock_client.clients.inventory_client import InventoryClient
from intellistock_client.context import ContextResolver
from intellistock_client.credential_store import CredentialStore
from intellistock_client.exceptions import (
    ContextResolutionError,
    MissingSubjectError,
    NoOwnedStoreError,
    StoreNotOwnedError,
)
from intellistock_client.http_client import HttpClient
from intellistock_client.models import OperatingContext


def _resolver(config, backend: FakeBackend, store: CredentialStore, changes: list | None = None) -> ContextResolver:
    transport = backend.transport
    identity = IdentityClient(
        http=HttpClient(config, base_url=USER_URL, service="user", transport=transport),
        token_provider=store.get_access_token,
    )
    inventory = InventoryClient(
        http=HttpClient(config, base_url=INVENTORY_URL, service="inventory", transport=transport),
        token_provider=store.get_access_token,
    )
    hook = (lambda previous, current: changes.append((previous, current))) if changes is not None else None
    return ContextResolver(store, identity, inventory, on_store_changed=hook)


def test_cold_resolution_fills_and_persists_context(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", "/api/users/id-by-auth0", json={"internalUserId": 7})
    backend.add("GET", "/api/stores/by-owner", json={"stores": [{"id": "s1"}, {"id": "s2"}]})
    resolver = _resolver(config, backend, credential_store)

    context = asyncio.run(resolver.resolve_context())

    assert context.subject_id == "auth0|owner"
    assert context.internal_user_id == "7"
    assert context.owned_store_ids == ("s1", "s2")
    assert context.selected_store_id == "s1"
    assert credential_store.get_internal_user_id() == "7"
    assert credential_store.get_owned_store_ids() == ["s1", "s2"]
    assert credential_store.get_selected_store_id() == "s1"
    identity_call = backend.calls[0]
    assert identity_call.host == "users.test"
    assert identity_call.params == {"auth0Id": "auth0|owner"}
    assert identity_call.headers["authorization"] == "Bearer token-1"
    assert backend.calls[1].params == {"ownerId": "7"}


def test_concurrent_cold_calls_share_lookups(config, credential_store) -> None:
    backend = FakeBackend(delay=0.01)
    backend.add("GET", "/api/users/id-by-auth0", json="7")
    backend.add("GET", "/api/stores/by-owner", json=["s1"])
    resolver = _resolver(config, backend, credential_store)

    async def run():
        return await asyncio.gather(*(resolver.resolve_context() for _ in range(5)))

    contexts = asyncio.run(run())

    assert {context.selected_store_id for context in contexts} == {"s1"}
    assert backend.count("GET", "/api/users/id-by-auth0") == 1
    assert backend.count("GET", "/api/stores/by-owner") == 1


def test_warm_resolution_makes_no_calls(config, backend: FakeBackend, credential_store) -> None:
    credential_store.set_internal_user_id("7")
    credential_store.set_owned_store_ids(["s1", "s2"])
    credential_store.set_selected_store_id("s2")
    resolver = _resolver(config, backend, credential_store)

    context = asyncio.run(resolver.resolve_context())

    assert context.selected_store_id == "s2"
    assert backend.calls == []


def test_stale_selection_self_heals(config, backend: FakeBackend, credential_store) -> None:
    credential_store.set_internal_user_id("7")
    credential_store.set_owned_store_ids(["s1", "s2"])
    credential_store.set_selected_store_id("gone")
    changes: list = []
    resolver = _resolver(config, backend, credential_store, changes)

    context = asyncio.run(resolver.resolve_context())

    assert context.selected_store_id == "s1"
    assert credential_store.get_selected_store_id() == "s1"
    assert changes == [("gone", "s1")]


def test_force_refresh_bypasses_stored_ids(config, backend: FakeBackend, credential_store) -> None:
    credential_store.set_internal_user_id("old")
    credential_store.set_owned_store_ids(["s9"])
    credential_store.set_selected_store_id("s9")
    backend.add("GET", "/api/users/id-by-auth0", json={"id": 8})
    backend.add("GET", "/api/stores/by-owner", json=[{"storeId": "s3"}])
    resolver = _resolver(config, backend, credential_store)

    context = asyncio.run(resolver.resolve_context(force_refresh=True))

    assert context.internal_user_id == "8"
    assert context.owned_store_ids == ("s3",)
    assert context.selected_store_id == "s3"


def test_missing_subject_raises(config, backend: FakeBackend, tmp_path) -> None:
    store = CredentialStore(directory=tmp_path, key=config.credential_key)
    resolver = _resolver(config, backend, store)

    with pytest.raises(MissingSubjectError):
        asyncio.run(resolver.resolve_context())
    assert backend.calls == []


def test_no_owned_stores_raises_without_side_effects(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", "/api/users/id-by-auth0", json={"id": 7})
    backend.add("GET", "/api/stores/by-owner", json=[])
    resolver = _resolver(config, backend, credential_store)

    with pytest.raises(NoOwnedStoreError):
        asyncio.run(resolver.resolve_context())
    assert credential_store.get_owned_store_ids() == []
    assert credential_store.get_selected_store_id() is None


def test_identity_payload_without_id_raises(config, backend: FakeBackend, credential_store) -> None:
    backend.add("GET", "/api/users/id-by-auth0", json={"name": "no id here"})
    resolver = _resolver(config, backend, credential_store)

    with pytest.raises(ContextResolutionError):
        asyncio.run(resolver.resolve_context())
    assert credential_store.get_internal_user_id() is None


def test_select_store_validates_ownership(config, backend: FakeBackend, credential_store) -> None:
    credential_store.set_internal_user_id("7")
    credential_store.set_owned_store_ids(["s1", "s2"])
    credential_store.set_selected_store_id("s1")
    changes: list = []
    resolver = _resolver(config, backend, credential_store, changes)

    context = asyncio.run(resolver.select_store("s2"))

    assert context.selected_store_id == "s2"
    assert credential_store.get_selected_store_id() == "s2"
    assert changes == [("s1", "s2")]
    with pytest.raises(StoreNotOwnedError):
        asyncio.run(resolver.select_store("s3"))


def test_selected_store_must_be_owned() -> None:
    with pytest.raises(ValueError):
        OperatingContext(subject_id="a", internal_user_id="7", owned_store_ids=("s1",), selected_store_id="s2")
