from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ApiError(Exception):
    code: str
    message: str
    details: object | None
    trace_id: str | None
    status_code: int
    raw_payload: object | None = None

    def __str__(self) -> str:
        trace = f" trace_id={self.trace_id}" if self.trace_id else ""
        return f"[{self.status_code}] {self.code}: {self.message}{trace}"


class UnauthorizedError(ApiError):
    pass


class ForbiddenError(ApiError):
    pass


class NotFoundError(ApiError):
    pass


class ValidationError(ApiError):
    pass


class AuthError(UnauthorizedError):
    """Authentication failed or the stored credential is no longer valid."""


class PermissionError(ForbiddenError):
    """The authenticated user may not touch the requested store."""


class ConflictError(ApiError):
    """409 or conflict-style errors."""


class RateLimitError(ApiError):
    """429 throttling error."""


class ServerError(ApiError):
    """5xx server-side failures."""


class TransportError(ApiError):
    """Network/transport failure before an HTTP response was returned."""


class ContextError(Exception):
    """The operating context (user, store) could not be established."""


class MissingSubjectError(ContextError):
    def __init__(self, message: str = "Missing authenticated subject id. Please sign in again.") -> None:
        super().__init__(message)


class NoOwnedStoreError(ContextError):
    def __init__(self, message: str = "No stores found for this owner.") -> None:
        super().__init__(message)


class ContextResolutionError(ContextError):
    pass


class StoreNotOwnedError(ContextError):
    def __init__(self, store_id: str) -> None:
        self.store_id = store_id
        super().__init__(f"Store {store_id} is not owned by the current user.")


class CredentialStoreError(RuntimeError):
    pass


class UpcLookupError(Exception):
    default_message = "Failed to fetch product details. Please try again."

    def __init__(self, message: str | None = None, *, product_code: str | None = None) -> None:
        self.message = message or self.default_message
        self.product_code = product_code
        super().__init__(self.message)


class UpcInvalidQueryError(UpcLookupError):
    default_message = "Invalid query: missing required parameters. Please check the product code format."


class UpcNotFoundError(UpcLookupError):
    default_message = "Product not found. Please check the UPC code and try again."


class UpcRateLimitError(UpcLookupError):
    default_message = "Request limit exceeded. Please try again later."


class UpcServerError(UpcLookupError):
    default_message = "Server error. Please try again later."


class UpcNetworkError(UpcLookupError):
    default_message = "Network error. Please check your connection and try again."
