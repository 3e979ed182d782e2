"""
user_service.observability.logging

JSON logging shared by the API process and the worker process.

Responsibilities:
- Route structlog and stdlib records (uvicorn, arq, sqlalchemy) to one JSON stream on stdout.
- Stamp every line with the emitting service name and any bound request/trace context.
- Keep chatty client libraries quiet; their request lines carry the Telegram bot token.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

# Floors applied regardless of the configured level.
_THIRD_PARTY_LEVELS = {
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
}


def configure_logging(*, service_name: str, level: str) -> None:
    """
    Configure the process-wide log pipeline. Re-entrant: every `create_app`
    call in the test suite runs it again.
    """

    root_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=root_level, force=True)
    for name, floor in _THIRD_PARTY_LEVELS.items():
        logging.getLogger(name).setLevel(max(floor, root_level))

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _service_field(service_name),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _service_field(service_name: str):
    # "user-service" vs "user-service-worker"; an explicit `service=` on the event wins.
    def processor(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


# --- Module Notes -----------------------------------------------------------
# request_id/path/method are bound per request in `observability.middleware`;
# bus consumers and task handlers rebind request_id from propagated metadata
# (`observability.tracing`).
