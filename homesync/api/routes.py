"""
Push ingestion routes.

PATCH /api/  body {uuid, <capability>: <value>, ...}
    Routes pushed state to the bridge for `uuid` and answers with the
    updated device, or 404 with a plain-text diagnostic.
GET /        Lists the synchronised devices.
"""

import json
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel

from .auth import AuthorizationError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Response Models ============

class DeviceSummary(BaseModel):
    """A synchronised device as listed by the status route."""
    id: Any = None
    name: str
    uuid: str
    type: Optional[str] = None
    bridged: bool = False
    capabilities: List[str] = []


class ListenerStatus(BaseModel):
    name: str
    status: str
    message: str
    devices: List[DeviceSummary] = []


# ============ Dependencies ============

def get_engine(request: Request):
    return request.app.state.engine


async def require_push_auth(request: Request) -> None:
    """Bearer-token gate, active only when an authorizer is configured."""
    authorizer = request.app.state.authorizer
    if authorizer is None:
        return
    try:
        request.state.claims = await authorizer.authorize(request.headers.get("authorization"))
    except AuthorizationError as e:
        logger.debug(f"Direct Connect API rejected request: {e}")
        raise HTTPException(status_code=e.status_code, detail=str(e))


# ============ Routes ============

@router.get("/", response_model=ListenerStatus)
async def status(request: Request, engine=Depends(get_engine)):
    display_name = request.app.state.display_name
    devices = []
    for uuid, entry in engine.snapshot().items():
        device = entry.get("device") or {}
        devices.append(DeviceSummary(
            id=device.get("id"),
            name=entry["display_identity"],
            uuid=uuid,
            type=device.get("type"),
            bridged=entry["bridged"],
            capabilities=entry["capabilities"],
        ))

    message = "Direct Connect API Running" if devices else "No devices synchronised"
    return ListenerStatus(name=display_name, status="running", message=message, devices=devices)


@router.patch("/api/", dependencies=[Depends(require_push_auth)])
@router.patch("/api", dependencies=[Depends(require_push_auth)], include_in_schema=False)
async def update_device(request: Request, engine=Depends(get_engine)):
    """Apply a pushed state change to one device."""
    display_name = request.app.state.display_name

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return PlainTextResponse("ERROR: Request body is not valid JSON", status_code=400)

    if not isinstance(payload, dict) or not isinstance(payload.get("uuid"), str):
        return PlainTextResponse("ERROR: Request body must be an object with a uuid", status_code=400)

    uuid = payload["uuid"]

    if not engine.bridges():
        logger.warning(f"No devices synchronised from {display_name}")
        return PlainTextResponse(f"WARNING: No devices synchronised from {display_name}", status_code=404)

    bridge = engine.get_bridge(uuid)
    if bridge is None:
        record = engine.get_record(uuid)
        if record is not None and record.device_snapshot is not None:
            device = record.device_snapshot
            logger.warning(f"Device with type: ({device.name} | {device.type}) not found")
            return PlainTextResponse(
                f"WARNING: Device with type: ({device.name} | {device.type}) not found",
                status_code=404,
            )
        logger.warning(f"Device with uuid: {uuid} not found")
        return PlainTextResponse(f"WARNING: Device with uuid: {uuid} not found", status_code=404)

    outcome = bridge.push_update(payload)
    if outcome.rejected:
        logger.debug(f"({bridge.name}) rejected pushed entries: {outcome.rejected}")

    return JSONResponse(bridge.snapshot())
