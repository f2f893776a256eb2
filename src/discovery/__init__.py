"""
Discovery module for locating the chart tool on the local network
"""

from .models import DiscoveredServer, DiscoveryError
from .network_discovery import NetworkDiscovery, GLOBAL_BROADCAST

__all__ = ['DiscoveredServer', 'DiscoveryError', 'NetworkDiscovery', 'GLOBAL_BROADCAST']
