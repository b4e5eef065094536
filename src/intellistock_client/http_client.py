from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any

import httpx

from .config import ClientConfig
from .error_mapper import map_error
from .exceptions import TransportError
from .logger import get_logger, log_event
from .tracing import REQUEST_ID_HEADER, TraceContext

logger = get_logger(__name__)

JsonPayload = dict[str, Any] | list[Any] | None


@dataclass
class LastOperation:
    service: str
    operation: str
    duration_ms: int
    result: str
    request_id: str | None


class HttpClient:
    """Async JSON transport for one backend service."""

    def __init__(
        self,
        config: ClientConfig,
        *,
        base_url: str,
        service: str,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        trace: TraceContext | None = None,
    ) -> None:
        self.config = config
        self.service = service
        self.base_url = base_url.rstrip("/")
        self.trace = trace or TraceContext(service=service)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=config.timeout_seconds,
            verify=config.verify_ssl,
            limits=httpx.Limits(max_connections=config.max_connections),
            transport=transport,
        )
        self.last_operation: LastOperation | None = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: dict[str, str] | None = None,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        retry_mutation: bool = False,
        operation: str = "unknown",
    ) -> JsonPayload:
        normalized_method = method.upper()
        normalized_path = path if path.startswith(("/", "http://", "https://")) else f"/{path}"
        request_id = self.trace.next_request_id()
        request_headers = {"Accept": "application/json", REQUEST_ID_HEADER: request_id}
        if headers:
            request_headers.update(headers)
        clean_params = {key: value for key, value in (params or {}).items() if value is not None} or None

        can_retry = normalized_method in {"GET", "HEAD"} or retry_mutation
        attempts = self.config.retries + 1 if can_retry else 1

        log_event(
            logger,
            self.service,
            operation,
            "request",
            request_id=request_id,
            method=normalized_method,
            path=normalized_path,
            params=clean_params,
            headers=request_headers,
        )
        started = time.monotonic()
        response: httpx.Response | None = None
        for attempt in range(attempts):
            try:
                response = await self._client.request(
                    normalized_method,
                    normalized_path,
                    headers=request_headers,
                    json=json_body,
                    params=clean_params,
                )
            except (httpx.TimeoutException, httpx.TransportError) as exc:
                if attempt >= attempts - 1:
                    self._record_operation(operation, started, "error", request_id)
                    log_event(
                        logger,
                        self.service,
                        operation,
                        "transport_error",
                        request_id=request_id,
                        method=normalized_method,
                        path=normalized_path,
                        duration_ms=self._elapsed_ms(started),
                        message=str(exc),
                    )
                    raise TransportError(
                        code="TIMEOUT" if isinstance(exc, httpx.TimeoutException) else "TRANSPORT_ERROR",
                        message=str(exc) or "Network error",
                        details={"type": type(exc).__name__},
                        trace_id=self.trace.trace_id,
                        status_code=0,
                        raw_payload=None,
                    ) from exc
            else:
                if response.status_code < 500 or attempt >= attempts - 1:
                    break
            await asyncio.sleep(self.config.retry_backoff_seconds * (2**attempt))

        if response is None:
            raise RuntimeError("HTTP request finished without a response")

        self.trace.update_from_headers(response.headers)
        if response.is_success:
            self._record_operation(operation, started, "success", request_id)
            log_event(
                logger,
                self.service,
                operation,
                "response",
                request_id=request_id,
                method=normalized_method,
                path=normalized_path,
                status=response.status_code,
                duration_ms=self._elapsed_ms(started),
            )
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError:
                return None

        payload: Any
        try:
            payload = response.json()
        except ValueError:
            payload = {"message": response.text}
        if not isinstance(payload, dict):
            payload = {"message": response.text, "details": payload}
        self.trace.update_from_payload(payload)
        self._record_operation(operation, started, "error", request_id)
        log_event(
            logger,
            self.service,
            operation,
            "error",
            request_id=request_id,
            method=normalized_method,
            path=normalized_path,
            status=response.status_code,
            duration_ms=self._elapsed_ms(started),
            message=payload.get("message"),
        )
        raise map_error(response.status_code, payload, self.trace.trace_id)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _record_operation(self, operation: str, started: float, result: str, request_id: str | None) -> None:
        self.last_operation = LastOperation(
            service=self.service,
            operation=operation,
            duration_ms=self._elapsed_ms(started),
            result=result,
            request_id=request_id,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
