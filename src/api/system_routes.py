"""
System health and monitoring API routes
"""

from fastapi import APIRouter
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime, timezone
import logging

from connection import ChartToolConnection, ConnectionState

logger = logging.getLogger(__name__)

# Response models
class HealthResponse(BaseModel):
    status: str
    state: str
    stream_url: Optional[str]
    transport_running: bool
    has_frame: bool
    frames_received: int
    last_frame_at: Optional[datetime]
    last_error: Optional[str]
    discovery_port: int
    timestamp: datetime

class DiscoveryTargetsResponse(BaseModel):
    port: int
    targets: List[str]

def _health_status(state: str) -> str:
    if state == ConnectionState.CONNECTED.value:
        return "healthy"
    if state == ConnectionState.ERROR.value:
        return "degraded"
    return "idle"

def create_system_routes(connection: ChartToolConnection):
    """Create system monitoring routes"""
    router = APIRouter(prefix="/api/system", tags=["system"])

    @router.get("/health", response_model=HealthResponse)
    def system_health():
        """Connection and snapshot store health"""
        status = connection.get_status()
        return HealthResponse(
            status=_health_status(status['state']),
            state=status['state'],
            stream_url=status['stream_url'],
            transport_running=status['transport_running'],
            has_frame=status['has_frame'],
            frames_received=status['frames_received'],
            last_frame_at=datetime.fromisoformat(status['last_frame_at']) if status['last_frame_at'] else None,
            last_error=status['last_error'],
            discovery_port=status['discovery_port'],
            timestamp=datetime.now(timezone.utc)
        )

    @router.get("/discovery/targets", response_model=DiscoveryTargetsResponse)
    def discovery_targets():
        """Broadcast addresses the next discovery attempt would use"""
        targets = connection.discovery.broadcast_targets()
        return DiscoveryTargetsResponse(port=connection.discovery_config['port'], targets=targets)

    return router
