"""
user_service.api.__main__

Entrypoint for running the HTTP API via `python -m user_service.api`.

Responsibilities:
- Load settings.
- Create the app.
- Start uvicorn with structlog-compatible logging config and a bounded
  graceful-shutdown window.
"""

from __future__ import annotations

import math

import uvicorn

from user_service.api.app import create_app
from user_service.settings import get_settings


def main() -> None:
    settings = get_settings()
    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,  # structlog
        timeout_graceful_shutdown=math.ceil(settings.shutdown_grace_seconds),
    )


if __name__ == "__main__":
    main()
