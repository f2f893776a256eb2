"""
Discovery data structures and models
"""

from typing import Optional
from dataclasses import dataclass

class DiscoveryError(RuntimeError):
    """Raised when discovery cannot run at all (e.g. no UDP socket could be allocated)"""

@dataclass(frozen=True)
class DiscoveredServer:
    """Represents a chart tool that answered the discovery broadcast"""
    stream_url: str
    info_url: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None
    address: Optional[str] = None  # Sender IP of the discovery response
