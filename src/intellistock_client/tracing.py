from __future__ import annotations

import itertools
import time
import uuid
from dataclasses import dataclass, field
from typing import Mapping

REQUEST_ID_HEADER = "X-Request-ID"
TRACE_HEADER_ALIASES = ("X-Trace-ID", "X-Trace-Id", "X-Request-ID", "x-request-id")


@dataclass
class TraceContext:
    """Per-service request id sequence plus the last trace id the server echoed."""

    service: str
    trace_id: str | None = None
    _counter: itertools.count = field(default_factory=lambda: itertools.count(1), repr=False)

    def next_request_id(self) -> str:
        return f"{self.service}-{int(time.time() * 1000)}-{next(self._counter)}"

    def ensure(self) -> str:
        if not self.trace_id:
            self.trace_id = str(uuid.uuid4())
        return self.trace_id

    def update_from_headers(self, headers: Mapping[str, str]) -> None:
        for key in TRACE_HEADER_ALIASES:
            trace_id = headers.get(key)
            if trace_id:
                self.trace_id = trace_id
                return

    def update_from_payload(self, payload: Mapping[str, object]) -> None:
        trace_id = payload.get("trace_id")
        if isinstance(trace_id, str) and trace_id:
            self.trace_id = trace_id
