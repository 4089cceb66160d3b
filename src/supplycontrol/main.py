"""Main entry point for the supply control API server."""

import logging

import uvicorn

from supplycontrol.config import settings
from supplycontrol.logging_config import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    """Configure logging and serve the API."""
    setup_logging()

    from supplycontrol.api.app import app

    logger.info(f"Serving supply control on {settings.api_host}:{settings.api_port}")
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_config=None)


if __name__ == "__main__":
    main()
