"""
Command-line entry point: ``python -m reconsuite`` or ``reconsuite``.

Serves the FastAPI application with uvicorn on ``HOST:PORT`` from the
settings.
"""

from __future__ import annotations

import uvicorn

from reconsuite.config import get_settings
from reconsuite.core.logging import configure_logging


def main() -> None:
    settings = get_settings()
    configure_logging()
    uvicorn.run(
        "reconsuite.main:app",
        host=settings.HOST,
        port=settings.PORT,
        log_level="debug" if settings.DEBUG else "info",
    )


if __name__ == "__main__":
    main()
