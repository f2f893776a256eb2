"""
Consumer-side models for frame_update payloads
The relay forwards frames verbatim; these are only used to summarize them
"""

from pydantic import BaseModel
from typing import Any, Dict, List, Optional

class FrameNote(BaseModel):
    id: int
    note_type: int
    time: float
    distance: float
    degree: float
    delta: float
    radius_multiplier: float
    kind: str
    base: Dict[str, Any] = {}  # Authoring parameters, fields vary by note kind

class FrameUpdate(BaseModel):
    type: str = "frame_update"
    timestamp: float
    start_chart_time: float
    start_distance: float
    cur_degree: float
    speed: float
    notes: List[FrameNote] = []

class FrameSummaryResponse(BaseModel):
    type: str
    timestamp: float
    start_chart_time: float
    start_distance: float
    cur_degree: float
    speed: float
    note_count: int
    note_kinds: Dict[str, int]
    first_note_time: Optional[float] = None
    last_note_time: Optional[float] = None

def summarize_frame(frame: FrameUpdate) -> FrameSummaryResponse:
    kinds: Dict[str, int] = {}
    for note in frame.notes:
        kinds[note.kind] = kinds.get(note.kind, 0) + 1

    times = [note.time for note in frame.notes]
    return FrameSummaryResponse(
        type=frame.type,
        timestamp=frame.timestamp,
        start_chart_time=frame.start_chart_time,
        start_distance=frame.start_distance,
        cur_degree=frame.cur_degree,
        speed=frame.speed,
        note_count=len(frame.notes),
        note_kinds=kinds,
        first_note_time=min(times) if times else None,
        last_note_time=max(times) if times else None
    )
