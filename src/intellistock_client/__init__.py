from ._version import __version__
from .cache_keys import CachePolicy, CatalogKeys, DocsKeys, InventoryKeys, OrderKeys, ReferenceKeys, StoreKeys
from .config import ClientConfig, ConfigError, load_config
from .context import ContextResolver
from .credential_store import CredentialRecord, CredentialStore
from .draft_validation import ClientValidationError, ValidationIssue, validate_draft, validate_drafts
from .entity_cache import CacheSnapshot, EntityCache, Expired, Fresh, Missing, SnapshotFile, Stale
from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    ContextError,
    ContextResolutionError,
    CredentialStoreError,
    ForbiddenError,
    MissingSubjectError,
    NoOwnedStoreError,
    NotFoundError,
    RateLimitError,
    ServerError,
    StoreNotOwnedError,
    TransportError,
    UnauthorizedError,
    UpcLookupError,
    ValidationError,
)
from .http_client import HttpClient
from .logger import configure_logging
from .models import (
    Brand,
    Category,
    CategoryFilters,
    DocsResponse,
    InventoryItem,
    MasterInventoryItem,
    MasterSelectionDraft,
    MeasurementUnit,
    OperatingContext,
    ReconciliationFailure,
    ReconciliationSummary,
    StoreInventoryRequest,
    StoreProfile,
    Subcategory,
    SubcategoryWrite,
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
    SubstitutionProposal,
    SubstitutionStatus,
)
from .models_upc import UpcItem, UpcItemDbResponse
from .normalizers import NormalizationIssue
from .reconciliation import ReconciliationEngine
from .repository import InventoryRepository
from .session import InventorySession
from .tracing import TraceContext

__all__ = [
    "ApiError",
    "AuthError",
    "Brand",
    "CachePolicy",
    "CacheSnapshot",
    "CatalogKeys",
    "Category",
    "CategoryFilters",
    "ClientConfig",
    "ClientValidationError",
    "ConfigError",
    "ConflictError",
    "ContextError",
    "ContextResolutionError",
    "ContextResolver",
    "CredentialRecord",
    "CredentialStore",
    "CredentialStoreError",
    "DocsKeys",
    "DocsResponse",
    "EntityCache",
    "Expired",
    "ForbiddenError",
    "Fresh",
    "HttpClient",
    "InventoryItem",
    "InventoryKeys",
    "InventoryRepository",
    "InventorySession",
    "MasterInventoryItem",
    "MasterSelectionDraft",
    "MeasurementUnit",
    "Missing",
    "MissingSubjectError",
    "NoOwnedStoreError",
    "NormalizationIssue",
    "NotFoundError",
    "OperatingContext",
    "OrderDetail",
    "OrderItem",
    "OrderKeys",
    "OrderStatus",
    "OrderStatusResponse",
    "OrderSubstitution",
    "OrderSummary",
    "PaymentCollectionStatus",
    "RateLimitError",
    "ReconciliationEngine",
    "ReconciliationFailure",
    "ReconciliationSummary",
    "ReferenceKeys",
    "ServerError",
    "SnapshotFile",
    "Stale",
    "StoreInventoryRequest",
    "StoreKeys",
    "StoreNotOwnedError",
    "StoreProfile",
    "StoreReviewStatus",
    "Subcategory",
    "SubcategoryWrite",
    "SubstitutionProposal",
    "SubstitutionStatus",
    "TraceContext",
    "TransportError",
    "UnauthorizedError",
    "UpcItem",
    "UpcItemDbResponse",
    "UpcLookupError",
    "ValidationError",
    "ValidationIssue",
    "__version__",
    "configure_logging",
    "load_config",
    "validate_draft",
    "validate_drafts",
]
