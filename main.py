"""Run the Rua API under uvicorn."""

import os

import uvicorn
from loguru import logger

from rua.api.main import app
from rua.core.config import get_settings
from rua.core.logging import setup_logging

# Route uvicorn's own loggers through Loguru
UVICORN_LOG_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {
        "default": {"class": "rua.core.logging.InterceptHandler"},
    },
    "loggers": {
        name: {"handlers": ["default"], "level": "INFO", "propagate": False}
        for name in ("uvicorn", "uvicorn.error", "uvicorn.access")
    },
}


def main() -> None:
    """Serve the application on the configured host and port."""
    settings = get_settings()
    setup_logging(settings)

    # Container platforms inject the port to bind
    port = int(os.environ.get("PORT", settings.api_port))

    if settings.debug:
        logger.info(
            "Starting Uvicorn on http://{}:{} (development mode with auto-reload)",
            settings.api_host,
            port,
        )
        uvicorn.run(
            "rua.api.main:app",
            host=settings.api_host,
            port=port,
            reload=True,
            log_config=UVICORN_LOG_CONFIG,
        )
    else:
        logger.info("Starting Uvicorn on http://{}:{}", settings.api_host, port)
        uvicorn.run(
            app,
            host=settings.api_host,
            port=port,
            log_config=UVICORN_LOG_CONFIG,
        )


if __name__ == "__main__":
    main()
