#!/usr/bin/env python3
"""
Run the land registry web server.
"""

import logging

import uvicorn

from utils.config import Config
from utils.logging import setup_logging


logger = logging.getLogger(__name__)


def main():
    """Start the web server."""
    config = Config.load()
    setup_logging(config.log_level, config.log_format)

    logger.info("Starting land registry on http://%s:%s", config.host, config.port)
    logger.info("Data directory: %s", config.data_dir)

    uvicorn.run(
        "web.app:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_config=None,
    )


if __name__ == "__main__":
    main()
