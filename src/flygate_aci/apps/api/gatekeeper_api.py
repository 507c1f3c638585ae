"""Gatekeeper lock-state endpoints and the realtime WebSocket channel."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, Request, WebSocket
from fastapi.websockets import WebSocketDisconnect
from pydantic import BaseModel

from flygate_aci.apps.api.auth import require_admin_token
from flygate_aci.services.gatekeeper.broadcast import WebSocketObserver
from flygate_aci.services.gatekeeper.service import Gatekeeper

router = APIRouter()
ws_router = APIRouter()
_log = logging.getLogger("flygate_aci.api.ws")


def _get_gatekeeper(request: Request) -> Gatekeeper:
    return request.app.state.ctx.gatekeeper


class LockRequest(BaseModel):
    reason: str | None = None


@router.get("/state")
async def lock_state(gatekeeper: Gatekeeper = Depends(_get_gatekeeper)) -> dict[str, Any]:
    return gatekeeper.snapshot().as_dict()


@router.get("/config")
async def gate_config(gatekeeper: Gatekeeper = Depends(_get_gatekeeper)) -> dict[str, Any]:
    return gatekeeper.public_config()


# manual overrides run on the event loop: the gatekeeper queue is not thread-safe
@router.post("/unlock", dependencies=[Depends(require_admin_token)])
async def manual_unlock(gatekeeper: Gatekeeper = Depends(_get_gatekeeper)) -> dict[str, Any]:
    state = gatekeeper.manual_unlock()
    return {"status": "OK", "state": state.as_dict()}


@router.post("/lock", dependencies=[Depends(require_admin_token)])
async def manual_lock(
    body: LockRequest | None = Body(default=None),
    gatekeeper: Gatekeeper = Depends(_get_gatekeeper),
) -> dict[str, Any]:
    state = gatekeeper.manual_lock(body.reason if body else None)
    return {"status": "OK", "state": state.as_dict()}


@ws_router.websocket("/ws")
async def lock_state_ws(websocket: WebSocket) -> None:
    broadcaster = websocket.app.state.ctx.broadcaster
    await websocket.accept()
    observer = WebSocketObserver(websocket)
    try:
        await broadcaster.connect(observer)
        while True:
            # inbound frames of any kind are ignored; receiving only detects the close
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                _log.debug("observer closed the connection")
                break
    except WebSocketDisconnect:
        _log.debug("observer closed the connection")
    finally:
        await broadcaster.disconnect(observer)
