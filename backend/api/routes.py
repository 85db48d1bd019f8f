"""REST API routes for Fountain Booth."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from config import APP_ID, DEFAULT_DATA_TYPE, FRAME_WINDOW_MAX
from fountain.models import FountainProfile, PayloadTooSmallError, WireFormat

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

# Injected by main.py at startup
_fountain_manager = None


def init_routes(fountain_manager) -> None:
    """Inject service dependencies into the routes module."""
    global _fountain_manager
    _fountain_manager = fountain_manager


@router.get("/health")
async def health():
    return {"status": "ok", "app_id": APP_ID}


# --- Broadcasts (display side) ---

class BroadcastRequestBody(BaseModel):
    data: Any
    data_type: str = Field(default=DEFAULT_DATA_TYPE, min_length=1, pattern=r"^[A-Za-z0-9-]+$")
    profile: FountainProfile = FountainProfile.FAST
    wire_format: WireFormat | None = None


@router.post("/broadcasts")
async def create_broadcast(body: BroadcastRequestBody):
    """Encode a payload and start a broadcast session."""
    if body.data is None:
        raise HTTPException(status_code=400, detail="No data to broadcast")
    try:
        info = await _fountain_manager.start_broadcast(
            data=body.data,
            data_type=body.data_type,
            profile=body.profile,
            wire_format=body.wire_format,
        )
    except PayloadTooSmallError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "broadcast": info.model_dump(mode="json"),
        "message": f"Generated session {info.session_id} with {info.k} blocks",
    }


@router.get("/broadcasts")
async def list_broadcasts():
    broadcasts = _fountain_manager.get_broadcasts()
    return {"broadcasts": [b.model_dump(mode="json") for b in broadcasts]}


@router.get("/broadcasts/{session_id}")
async def get_broadcast(session_id: str):
    info = _fountain_manager.get_broadcast(session_id)
    if info is None:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return {"broadcast": info.model_dump(mode="json")}


@router.get("/broadcasts/{session_id}/cycle")
async def get_cycle(session_id: str):
    """The rotating frame list a display loops over."""
    try:
        frames = await _fountain_manager.build_cycle(session_id)
    except KeyError:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return {"session_id": session_id, "frames": frames}


@router.get("/broadcasts/{session_id}/frames")
async def get_frames(session_id: str, start: int = 0, count: int = 10):
    """A window of the endless frame stream."""
    try:
        frames = await _fountain_manager.frame_window(session_id, start=start, count=count)
    except KeyError:
        raise HTTPException(status_code=404, detail="Broadcast not found")
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"start must be >= 0 and count between 1 and {FRAME_WINDOW_MAX}",
        )
    return {"session_id": session_id, "start": start, "frames": frames}


@router.delete("/broadcasts/{session_id}")
async def stop_broadcast(session_id: str):
    if not _fountain_manager.stop_broadcast(session_id):
        raise HTTPException(status_code=404, detail="Broadcast not found")
    return {"status": "stopped"}


# --- Scans (scanner side) ---

class ScanBody(BaseModel):
    raw: str


@router.post("/scans")
async def submit_scan(body: ScanBody):
    """Feed one scanned QR text to the collector."""
    result = await _fountain_manager.ingest(body.raw)
    return result.model_dump(mode="json")


@router.get("/scans")
async def list_scans():
    scans = await _fountain_manager.get_scans()
    return {"scans": [s.model_dump(mode="json") for s in scans]}


@router.get("/scans/{session_id}")
async def get_scan(session_id: str):
    progress = await _fountain_manager.get_scan(session_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Scan session not found")
    return {"scan": progress.model_dump(mode="json")}


@router.get("/scans/{session_id}/payload")
async def get_scan_payload(session_id: str):
    """Restored data of a completed scan."""
    progress = await _fountain_manager.get_scan(session_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="Scan session not found")
    try:
        data = await _fountain_manager.get_data(session_id)
    except LookupError:
        raise HTTPException(status_code=409, detail=f"Scan session is {progress.state.value}")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"session_id": session_id, "data": data}


@router.delete("/scans/{session_id}")
async def cancel_scan(session_id: str):
    if not await _fountain_manager.cancel_scan(session_id):
        raise HTTPException(status_code=404, detail="Scan session not found")
    return {"status": "cancelled"}
