"""
ASGI entry point for uvicorn
This module exposes the FastAPI app for use with uvicorn command line
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from config_loader import load_config, setup_logging
from connection import ChartToolConnection
from api.main_api import ChartToolAPI

# Load configuration
config = load_config(os.environ.get('CONFIG_FILE', 'config/config.yaml'))
setup_logging(config)

logger = logging.getLogger(__name__)

logger.info("Initializing application components...")

# Exactly one connection for the whole process
connection = ChartToolConnection(config)

api = ChartToolAPI(connection, config)

@asynccontextmanager
async def lifespan(app):
    """Start the stream transport on startup and release it on shutdown"""
    logger.info("Starting up application...")
    connection.start()
    yield
    logger.info("Shutting down application...")
    await asyncio.to_thread(connection.shutdown)
    logger.info("Application shut down complete")

api.app.router.lifespan_context = lifespan

# Expose the FastAPI app for uvicorn
app = api.app

logger.info("ASGI app ready for uvicorn")
