"""
API module for the chart tool bridge and monitoring
"""

from .main_api import ChartToolAPI
from .bridge_routes import create_bridge_routes
from .system_routes import create_system_routes

__all__ = ['ChartToolAPI', 'create_bridge_routes', 'create_system_routes']
