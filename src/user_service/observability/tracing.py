"""
user_service.observability.tracing

Trace-context propagation for asynchronous work.

Responsibilities:
- Serialize the current trace context (W3C `traceparent`/`baggage` via OpenTelemetry,
  plus the request correlation id) into a plain string mapping.
- Restore that context on the consumer side so its logs and spans join the
  producer's trace.

The mapping travels as message attributes on the event bus and inside the task
payload on the task queue (which has no per-message headers).
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager

import structlog
from opentelemetry import context as otel_context
from opentelemetry import propagate

REQUEST_ID_KEY = "x-request-id"


def inject_trace_context(carrier: Mapping[str, str] | None = None) -> dict[str, str]:
    out = dict(carrier or {})
    propagate.inject(out)
    request_id = structlog.contextvars.get_contextvars().get("request_id")
    if request_id:
        out.setdefault(REQUEST_ID_KEY, str(request_id))
    return out


@contextmanager
def extracted_trace_context(carrier: Mapping[str, str] | None) -> Iterator[None]:
    carrier = dict(carrier or {})
    token = otel_context.attach(propagate.extract(carrier))
    try:
        request_id = carrier.get(REQUEST_ID_KEY)
        if request_id:
            with structlog.contextvars.bound_contextvars(request_id=request_id):
                yield
        else:
            yield
    finally:
        otel_context.detach(token)


# --- Module Notes -----------------------------------------------------------
# Without an OpenTelemetry SDK installed the propagator writes no `traceparent`;
# the request id still links producer and consumer log lines.
