from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import httpx

from ._version import __version__
from .cache_keys import STORE_SCOPED_PREFIXES
from .clients.identity_client import IdentityClient
from .clients.inventory_client import InventoryClient
from .clients.order_client import OrderClient
from .clients.upc_client import UpcClient
from .config import ClientConfig
from .context import ContextResolver
from .credential_store import CredentialStore
from .entity_cache import EntityCache, SnapshotFile
from .http_client import HttpClient
from .logger import get_logger, log_event
from .models import MasterSelectionDraft, OperatingContext, ReconciliationSummary
from .models_upc import UpcItemDbResponse
from .reconciliation import ReconciliationEngine
from .repository import InventoryRepository

logger = get_logger(__name__)

CACHE_SNAPSHOT_FILENAME = "entity-cache.json"


@dataclass
class InventorySession:
    """Wires storage, transports, context resolution, cache, repository and engine.

    ``transport`` replaces the network for every service client; tests pass an
    ``httpx.MockTransport``.
    """

    config: ClientConfig
    credential_store: CredentialStore | None = None
    cache: EntityCache | None = None
    transport: httpx.AsyncBaseTransport | None = None
    _http_clients: list[HttpClient] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        self.credential_store = self.credential_store or CredentialStore(
            directory=self.config.storage_dir, key=self.config.credential_key
        )
        if self.cache is None:
            snapshot = (
                SnapshotFile(self.config.storage_dir / CACHE_SNAPSHOT_FILENAME, buster=__version__)
                if self.config.persist_cache
                else None
            )
            self.cache = EntityCache(snapshot=snapshot)

        token_provider = self.credential_store.get_access_token
        self.identity_client = IdentityClient(
            http=self._http(self.config.user_base_url, "user"), token_provider=token_provider
        )
        inventory_http = self._http(self.config.inventory_base_url, "inventory")
        self.inventory_client = InventoryClient(http=inventory_http, token_provider=token_provider)
        self.order_client = OrderClient(http=inventory_http, token_provider=token_provider)
        self.upc_client = UpcClient(http=self._http(self.config.upc_base_url, "upc"))
        self.resolver = ContextResolver(
            self.credential_store,
            self.identity_client,
            self.inventory_client,
            on_store_changed=self._store_changed,
        )
        self.repository = InventoryRepository(
            self.cache, self.inventory_client, self.resolver, self.order_client
        )
        self.engine = ReconciliationEngine(self.repository, self.inventory_client, self.resolver, self.cache)

    def _http(self, base_url: str, service: str) -> HttpClient:
        http = HttpClient(self.config, base_url=base_url, service=service, transport=self.transport)
        self._http_clients.append(http)
        return http

    def _store_changed(self, previous: str | None, current: str) -> None:
        for prefix in STORE_SCOPED_PREFIXES:
            self.cache.evict(prefix)
        log_event(logger, "session", "store_changed", "cache_evicted", previous_store_id=previous, store_id=current)

    async def __aenter__(self) -> "InventorySession":
        self.init()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def init(self) -> None:
        self.cache.init()

    @property
    def is_signed_in(self) -> bool:
        return bool(self.credential_store.get_access_token() and self.credential_store.get_subject_id())

    def sign_in(self, access_token: str, subject_id: str) -> None:
        previous_subject = self.credential_store.get_subject_id()
        subject_changed = bool(previous_subject) and previous_subject != subject_id
        if subject_changed:
            # another user's ids and cached data must not leak into this session
            self.resolver.reset()
            self.credential_store.clear_context()
            self.cache.clear()
        self.credential_store.set_access_token(access_token)
        self.credential_store.set_subject_id(subject_id)
        log_event(logger, "session", "sign_in", "success", subject_changed=subject_changed)

    def sign_out(self) -> None:
        self.resolver.reset()
        self.credential_store.clear()
        self.cache.clear()
        log_event(logger, "session", "sign_out", "success")

    async def aclose(self) -> None:
        await self.cache.aclose()
        for http in self._http_clients:
            await http.aclose()

    async def resolve_context(self, force_refresh: bool = False) -> OperatingContext:
        return await self.resolver.resolve_context(force_refresh=force_refresh)

    async def select_store(self, store_id: str) -> OperatingContext:
        return await self.resolver.select_store(store_id)

    async def reconcile(self, drafts: Sequence[MasterSelectionDraft]) -> ReconciliationSummary:
        return await self.engine.reconcile(drafts)

    async def lookup_upc(self, product_code: str) -> UpcItemDbResponse:
        return await self.upc_client.lookup(product_code)
