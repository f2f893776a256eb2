"""
Relay Server - orchestrates the chart tool connection and the local bridge API
"""

import asyncio
import logging
from typing import Dict, Optional
import uvicorn

# Local imports
from config_loader import load_config, setup_logging
from connection import ChartToolConnection
from api.main_api import ChartToolAPI

logger = logging.getLogger(__name__)

class RelayServer:
    """Owns the single ChartToolConnection of the process and serves it to the UI"""

    def __init__(self, config_path: str = "config/config.yaml", config: Optional[Dict] = None):
        self.config = config if config is not None else load_config(config_path)
        setup_logging(self.config)

        self.connection = ChartToolConnection(self.config)
        self.api = ChartToolAPI(self.connection, self.config)
        self.server: Optional[uvicorn.Server] = None

    async def start(self):
        """Start the stream transport, optionally connect, then serve the bridge API"""
        logger.info("Starting chart tool relay...")

        try:
            self.connection.start()

            if self.config['discovery']['auto_connect_on_start']:
                # Discovery blocks for up to timeout_ms, keep it off the server loop
                result = await asyncio.to_thread(self.connection.discover_and_connect)
                logger.info(f"Startup discovery: {result}")

            await self._start_api_server()

        except Exception as e:
            logger.error(f"Relay startup failed: {e}")
            await self.stop()
            raise

    async def stop(self):
        """Stop the API server and release the stream"""
        logger.info("Stopping relay...")
        if self.server is not None:
            self.server.should_exit = True
        await asyncio.to_thread(self.connection.shutdown)
        logger.info("Relay stopped")

    async def _start_api_server(self):
        """Start the FastAPI server"""
        config = uvicorn.Config(
            self.api.app,
            host=self.config['api']['host'],
            port=self.config['api']['port'],
            log_level="info",
            access_log=False  # Frame polling would flood the access log
        )

        self.server = uvicorn.Server(config)

        logger.info(f"Starting bridge API on {self.config['api']['host']}:{self.config['api']['port']}")
        logger.info(f"API documentation: http://localhost:{self.config['api']['port']}/docs")
        logger.info(f"Discovery: UDP port {self.config['discovery']['port']}, timeout {self.config['discovery']['timeout_ms']}ms")

        await self.server.serve()
