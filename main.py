"""
Production entrypoint for the land registry.

Binds to 0.0.0.0:$PORT.
"""

import logging
import os

import uvicorn

from utils.config import Config
from utils.logging import setup_logging


if __name__ == "__main__":
    config = Config.load()
    setup_logging(config.log_level, config.log_format)
    port = int(os.getenv("PORT", "8000"))
    logging.getLogger(__name__).info("Starting land registry on port %d", port)

    # Import app here to ensure clean module loading
    from web.app import app

    uvicorn.run(app, host="0.0.0.0", port=port, log_config=None)
