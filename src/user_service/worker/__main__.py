"""
user_service.worker.__main__

Entrypoint for running the worker via `python -m user_service.worker`.
"""

from __future__ import annotations

import asyncio

from user_service.observability.logging import configure_logging
from user_service.settings import get_settings
from user_service.worker.runner import WorkerProcess


async def _main() -> None:
    settings = get_settings()
    configure_logging(service_name=settings.worker_name, level=settings.log_level)
    process = WorkerProcess(settings)
    process.setup_signal_handlers()
    await process.run()


def main() -> None:
    asyncio.run(_main())


if __name__ == "__main__":
    main()
