
from fastapi import FastAPI, HTTPException
from pathlib import Path
import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from app.logging_config import setup_logging
from app.models import (
    AssignRequest,
    AssignResponse,
    LinkageConflictModel,
    PinStatus,
    SessionInfo,
    UsageStatsModel,
)
from engines.allocator import AllocationSession, AssignmentResult, InMemoryAssignmentStore
from engines.exceptions import ChipFormatError

APP_NAME = "PinMux"

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=APP_NAME,
    version="0.1.0",
    description="PinMux API — Chip description → Pin capabilities → Conflict-free function assignment"
)

# One session per loaded chip; assignment tables outlive sessions in the store
SESSIONS: Dict[str, AllocationSession] = {}
STORE = InMemoryAssignmentStore()


def _data_dir() -> Path:
    return Path(os.environ.get("PINMUX_DATA_DIR", "data"))


def _load_profile(path: Path) -> dict:
    if not path.exists():
        raise FileNotFoundError(str(path))
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _get_session(session_id: str) -> AllocationSession:
    session = SESSIONS.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return session


def _open_session(raw: Any) -> SessionInfo:
    try:
        session = AllocationSession(raw, store=STORE)
    except ChipFormatError as e:
        raise HTTPException(status_code=400, detail=f"Invalid chip description: {e}")

    session_id = uuid.uuid4().hex[:10]
    SESSIONS[session_id] = session
    logger.info(f"Opened session {session_id} for {session.chip_id}")

    return SessionInfo(
        session_id=session_id,
        chip_id=session.chip_id,
        pins=len(session.chip.pins),
        peripherals=list(session.chip.peripherals),
        warnings=session.warnings,
        assignments=session.assignments,
    )


def _to_response(result: AssignmentResult) -> AssignResponse:
    return AssignResponse(
        committed=result.committed,
        assignments=result.table,
        conflicts=[
            LinkageConflictModel(signal=c.signal, target_pin=c.target_pin, occupant=c.occupant)
            for c in result.conflicts
        ],
        reason=result.reason,
    )


@app.get("/health")
def health():
    return {
        "status": "ok",
        "service": APP_NAME,
        "sessions": len(SESSIONS),
        "utc": datetime.now(timezone.utc).isoformat()
    }


@app.get("/profiles/chips")
def list_chips():
    chips_dir = _data_dir() / "chips"
    if not chips_dir.exists():
        return {"chips": []}
    chips = sorted([p.stem for p in chips_dir.glob("*.json")])
    return {"chips": chips}


@app.post("/sessions", response_model=SessionInfo)
def create_session(chip: Dict[str, Any]):
    return _open_session(chip)


@app.post("/sessions/profile/{chip_id}", response_model=SessionInfo)
def create_session_from_profile(chip_id: str):
    try:
        raw = _load_profile(_data_dir() / "chips" / f"{chip_id}.json")
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"Chip profile not found: {chip_id}")
    return _open_session(raw)


@app.delete("/sessions/{session_id}")
def close_session(session_id: str):
    """Drop the session; its assignment table stays in the store for the next load."""
    session = _get_session(session_id)
    del SESSIONS[session_id]
    logger.info(f"Closed session {session_id} for {session.chip_id}")
    return {"session_id": session_id, "closed": True}


@app.get("/sessions/{session_id}/chip")
def get_chip(session_id: str):
    return _get_session(session_id).chip.model_dump()


@app.get("/sessions/{session_id}/pins")
def list_pins(session_id: str):
    session = _get_session(session_id)
    return {
        "pins": [
            PinStatus(
                name=name,
                type=cap.type,
                fixed=cap.fixed,
                functions=cap.functions,
                assignment=session.current_assignment(name),
            )
            for name, cap in session.chip.pins.items()
        ]
    }


@app.get("/sessions/{session_id}/pins/{pin}", response_model=PinStatus)
def get_pin(session_id: str, pin: str):
    session = _get_session(session_id)
    cap = session.chip.pins.get(pin)
    if cap is None:
        raise HTTPException(status_code=404, detail=f"Unknown pin: {pin}")
    return PinStatus(
        name=pin,
        type=cap.type,
        fixed=cap.fixed,
        functions=cap.functions,
        assignment=session.current_assignment(pin),
    )


@app.put("/sessions/{session_id}/pins/{pin}", response_model=AssignResponse)
def assign_pin(session_id: str, pin: str, request: AssignRequest):
    """
    Assign (or clear, with an empty function) one pin.

      - 404: unknown session or pin
      - 422: the pin is fixed or does not offer the function
      - 409: linked remap blocked; nothing was changed
    """
    session = _get_session(session_id)
    if pin not in session.chip.pins:
        raise HTTPException(status_code=404, detail=f"Unknown pin: {pin}")

    result = session.assign(pin, request.function)

    if result.conflicts:
        raise HTTPException(status_code=409, detail=_to_response(result).model_dump())
    if not result.committed:
        raise HTTPException(status_code=422, detail=result.reason)
    return _to_response(result)


@app.delete("/sessions/{session_id}/pins/{pin}", response_model=AssignResponse)
def clear_pin(session_id: str, pin: str):
    session = _get_session(session_id)
    if pin not in session.chip.pins:
        raise HTTPException(status_code=404, detail=f"Unknown pin: {pin}")
    result = session.clear(pin)
    if not result.committed:
        raise HTTPException(status_code=422, detail=result.reason)
    return _to_response(result)


@app.get("/sessions/{session_id}/assignments")
def get_assignments(session_id: str):
    return {"assignments": _get_session(session_id).assignments}


@app.get("/sessions/{session_id}/stats", response_model=UsageStatsModel)
def usage_stats(session_id: str):
    stats = _get_session(session_id).usage_stats()
    return UsageStatsModel(occupied=stats.occupied, total=stats.total)
