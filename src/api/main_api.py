"""
Main FastAPI application setup
Local HTTP bridge between the polling UI and the chart tool connection
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from typing import Dict
import logging

from connection import ChartToolConnection
from .bridge_routes import create_bridge_routes
from .system_routes import create_system_routes

logger = logging.getLogger(__name__)

class ChartToolAPI:
    """Local HTTP API exposing the chart tool connection to the UI"""

    def __init__(self, connection: ChartToolConnection, config: Dict):
        self.connection = connection
        self.config = config
        self.app = FastAPI(
            title="Chart Tool Relay",
            description="Discovers the chart tool on the LAN and relays its latest frame to polling clients",
            version="1.0.0"
        )
        self._setup_middleware()
        self._setup_routes()

    def _setup_middleware(self):
        origins = self.config.get('api', {}).get('cors_origins', ['*'])
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"]
        )

    def _setup_routes(self):
        """Setup FastAPI routes using modular approach"""
        self.app.include_router(create_bridge_routes(self.connection))
        self.app.include_router(create_system_routes(self.connection))
        logger.debug("Bridge and system routes registered")
