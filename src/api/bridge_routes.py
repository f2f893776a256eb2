"""
Chart tool bridge routes
The polling UI drives the connection and reads the latest frame through these endpoints
"""

from fastapi import APIRouter, HTTPException, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, ValidationError
import logging

from connection import ChartToolConnection, ConnectResult
from .frame_models import FrameUpdate, FrameSummaryResponse, summarize_frame

logger = logging.getLogger(__name__)

# Request models
class ConnectRequest(BaseModel):
    url: str

class CommandRequest(BaseModel):
    text: str

# Response models
class ConnectResponse(BaseModel):
    result: str
    kind: str
    state: str

class StateResponse(BaseModel):
    state: str

class ErrorResponse(BaseModel):
    error: str

class CommandResponse(BaseModel):
    result: str

def _connect_response(result: ConnectResult, connection: ChartToolConnection) -> ConnectResponse:
    return ConnectResponse(
        result=result.to_sentinel(),
        kind=result.kind.value,
        state=connection.get_connection_state()
    )

def create_bridge_routes(connection: ChartToolConnection):
    """Create the chart tool bridge routes"""
    router = APIRouter(prefix="/api/charttool", tags=["charttool"])

    # Plain `def` endpoints run on the worker threadpool, so the blocking
    # discovery wait never stalls the server loop.

    @router.post("/discover", response_model=ConnectResponse)
    def discover_and_connect():
        """Discover the chart tool on the LAN and open its stream"""
        result = connection.discover_and_connect_result()
        logger.info(f"discover_and_connect -> {result.to_sentinel()}")
        return _connect_response(result, connection)

    @router.post("/connect", response_model=ConnectResponse)
    def connect_with_url(request: ConnectRequest):
        """Open the stream at a known URL, bypassing discovery"""
        result = connection.connect_with_url_result(request.url)
        logger.info(f"connect_with_url({request.url}) -> {result.to_sentinel()}")
        return _connect_response(result, connection)

    @router.post("/disconnect", response_model=StateResponse)
    def disconnect():
        connection.disconnect()
        return StateResponse(state=connection.get_connection_state())

    @router.post("/command", response_model=CommandResponse)
    def send_command(request: CommandRequest):
        """Pass a text control message through to the chart tool"""
        return CommandResponse(result=connection.send_command(request.text))

    @router.get("/state", response_model=StateResponse)
    def get_connection_state():
        return StateResponse(state=connection.get_connection_state())

    @router.get("/frame", response_class=PlainTextResponse)
    def get_latest_frame_json():
        """Latest frame text exactly as received, empty body before the first frame"""
        return PlainTextResponse(connection.get_latest_frame_json())

    @router.get("/frame/summary", response_model=FrameSummaryResponse)
    def get_frame_summary():
        frame = connection.get_latest_frame_json()
        if not frame:
            return Response(status_code=204)
        try:
            update = FrameUpdate.model_validate_json(frame)
        except ValidationError as e:
            logger.warning(f"Latest frame does not parse: {e.error_count()} errors")
            raise HTTPException(status_code=422, detail=f"Latest frame does not parse: {e.error_count()} errors")
        return summarize_frame(update)

    @router.get("/error", response_model=ErrorResponse)
    def get_last_error():
        return ErrorResponse(error=connection.get_last_error())

    @router.get("/debug-log", response_class=PlainTextResponse)
    def get_discover_debug_log():
        return PlainTextResponse(connection.get_discover_debug_log())

    return router
