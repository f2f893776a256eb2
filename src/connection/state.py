"""
Connection state of the chart tool stream
"""

from enum import Enum

class ConnectionState(Enum):
    """Lifecycle of the single chart tool connection"""
    DISCONNECTED = "disconnected"
    DISCOVERING = "discovering"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"
    ERROR = "error"
