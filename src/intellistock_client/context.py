"""Operating context resolution: subject -> internal user -> owned stores -> selection.

The credential store acts as a cache in front of two lookups (identity and
store ownership). Fields found in storage are trusted, except the selected
store which is checked against the owned stores on every call. Missing fields
are resolved in dependency order and written back. Concurrent callers that
need the same missing field share one in-flight lookup.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from .clients.identity_client import IdentityClient
from .clients.inventory_client import InventoryClient
from .credential_store import CredentialStore
from .exceptions import ContextResolutionError, MissingSubjectError, NoOwnedStoreError, StoreNotOwnedError
from .logger import get_logger, log_event
from .models import OperatingContext
from .normalizers import extract_id, parse_store_ids
from .single_flight import SingleFlight

logger = get_logger(__name__)

StoreChangedHook = Callable[[str | None, str], None]


class ContextResolver:
    def __init__(
        self,
        store: CredentialStore,
        identity: IdentityClient,
        inventory: InventoryClient,
        on_store_changed: StoreChangedHook | None = None,
    ) -> None:
        self._store = store
        self._identity = identity
        self._inventory = inventory
        self._on_store_changed = on_store_changed
        self._flights: SingleFlight[object] = SingleFlight()

    async def resolve_context(self, force_refresh: bool = False) -> OperatingContext:
        subject_id = self._store.get_subject_id()
        if not subject_id:
            raise MissingSubjectError()

        internal_user_id = None if force_refresh else self._store.get_internal_user_id()
        owned_store_ids = [] if force_refresh else self._store.get_owned_store_ids()
        stored_selection = self._store.get_selected_store_id()

        if not internal_user_id:
            internal_user_id = await self._flights.do(
                f"internal_user_id:{subject_id}",
                lambda: self._lookup_internal_user_id(subject_id),
            )

        if not owned_store_ids:
            owner_id = internal_user_id
            owned_store_ids = await self._flights.do(
                f"owned_store_ids:{owner_id}",
                lambda: self._lookup_owned_store_ids(owner_id),
            )

        selected_store_id = self._validated_selection(stored_selection, owned_store_ids)
        return OperatingContext(
            subject_id=subject_id,
            internal_user_id=internal_user_id,
            owned_store_ids=tuple(owned_store_ids),
            selected_store_id=selected_store_id,
        )

    async def select_store(self, store_id: str) -> OperatingContext:
        context = await self.resolve_context()
        if store_id not in context.owned_store_ids:
            raise StoreNotOwnedError(store_id)
        if store_id == context.selected_store_id:
            return context
        self._store.set_selected_store_id(store_id)
        log_event(logger, "context", "select_store", "changed", store_id=store_id)
        self._notify_store_changed(context.selected_store_id, store_id)
        return context.model_copy(update={"selected_store_id": store_id})

    def reset(self) -> None:
        self._flights.cancel_all()

    def _validated_selection(self, stored: str | None, owned_store_ids: list[str]) -> str:
        if stored is not None and stored in owned_store_ids:
            return stored
        selected = owned_store_ids[0]
        self._store.set_selected_store_id(selected)
        if stored is not None:
            log_event(
                logger,
                "context",
                "select_store",
                "self_healed",
                level=logging.WARNING,
                previous_store_id=stored,
                store_id=selected,
            )
            self._notify_store_changed(stored, selected)
        return selected

    def _notify_store_changed(self, previous: str | None, current: str) -> None:
        if self._on_store_changed is not None:
            self._on_store_changed(previous, current)

    async def _lookup_internal_user_id(self, subject_id: str) -> str:
        payload = await self._identity.internal_user_id(subject_id)
        internal_user_id = (extract_id(payload) or "").strip()
        if not internal_user_id:
            log_event(logger, "context", "resolve_user", "error", level=logging.ERROR, reason="no id in payload")
            raise ContextResolutionError("Unable to resolve internal user id from the authenticated subject.")
        self._store.set_internal_user_id(internal_user_id)
        log_event(logger, "context", "resolve_user", "filled", internal_user_id=internal_user_id)
        return internal_user_id

    async def _lookup_owned_store_ids(self, owner_id: str) -> list[str]:
        payload = await self._inventory.stores_by_owner(owner_id)
        store_ids = parse_store_ids(payload)
        if not store_ids:
            log_event(logger, "context", "resolve_stores", "error", level=logging.ERROR, owner_id=owner_id)
            raise NoOwnedStoreError()
        self._store.set_owned_store_ids(store_ids)
        log_event(logger, "context", "resolve_stores", "filled", owner_id=owner_id, store_count=len(store_ids))
        return store_ids
