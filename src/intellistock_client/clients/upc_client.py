from __future__ import annotations

import logging
from dataclasses import dataclass

from pydantic import ValidationError as PydanticValidationError

from ..exceptions import (
    ApiError,
    TransportError,
    UpcInvalidQueryError,
    UpcLookupError,
    UpcNetworkError,
    UpcNotFoundError,
    UpcRateLimitError,
    UpcServerError,
)
from ..logger import get_logger, log_event
from ..models_upc import UpcItemDbResponse
from .base import BaseClient

logger = get_logger(__name__)

_CODE_ERRORS: dict[str, type[UpcLookupError]] = {
    "INVALID_QUERY": UpcInvalidQueryError,
    "NOT_FOUND": UpcNotFoundError,
    "EXCEED_LIMIT": UpcRateLimitError,
    "SERVER_ERR": UpcServerError,
}

_STATUS_ERRORS: dict[int, type[UpcLookupError]] = {
    400: UpcInvalidQueryError,
    404: UpcNotFoundError,
    429: UpcRateLimitError,
    500: UpcServerError,
}


@dataclass
class UpcClient(BaseClient):
    """Third-party UPC lookup. Every failure surfaces as a ``UpcLookupError``."""

    def _auth_headers(self) -> dict[str, str]:
        # the public UPC service must never see our bearer token
        return {"Content-Type": "application/json"}

    async def lookup(self, product_code: str) -> UpcItemDbResponse:
        code = (product_code or "").strip()
        if not code:
            raise UpcInvalidQueryError(product_code=product_code)
        try:
            payload = await self._request("GET", "/lookup", params={"upc": code}, operation="upc.lookup")
        except TransportError as exc:
            raise self._log_failure(
                UpcNetworkError(
                    "Request timed out. Please check your connection and try again."
                    if exc.code == "TIMEOUT"
                    else None,
                    product_code=code,
                )
            ) from exc
        except ApiError as exc:
            raise self._log_failure(self._error_for_api_error(exc, code)) from exc

        try:
            response = UpcItemDbResponse.model_validate(payload if isinstance(payload, dict) else {})
        except PydanticValidationError as exc:
            raise self._log_failure(UpcLookupError(product_code=code)) from exc
        if response.code != "OK":
            raise self._log_failure(_CODE_ERRORS.get(response.code, UpcLookupError)(product_code=code))
        if response.total == 0 or not response.items:
            raise self._log_failure(UpcNotFoundError(product_code=code))
        return response

    @staticmethod
    def _error_for_api_error(error: ApiError, code: str) -> UpcLookupError:
        mapped = _STATUS_ERRORS.get(error.status_code)
        if mapped is not None:
            return mapped(product_code=code)
        payload = error.raw_payload if isinstance(error.raw_payload, dict) else {}
        response_code = payload.get("code")
        if isinstance(response_code, str) and response_code in _CODE_ERRORS:
            return _CODE_ERRORS[response_code](product_code=code)
        message = payload.get("message")
        return UpcLookupError(message if isinstance(message, str) and message else None, product_code=code)

    @staticmethod
    def _log_failure(error: UpcLookupError) -> UpcLookupError:
        log_event(
            logger,
            "upc",
            "lookup",
            type(error).__name__,
            level=logging.WARNING,
            product_code=error.product_code,
            message=error.message,
        )
        return error
