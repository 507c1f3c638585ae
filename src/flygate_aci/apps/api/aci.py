"""Device trust endpoints: status, nonce issuance, handshake, USB attach/detach, registry."""
from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from flygate_aci.apps.api.auth import require_admin_token
from flygate_aci.apps.api.errors import ApiError
from flygate_aci.build_info import BUILD_INFO
from flygate_aci.config.settings import AciSettings
from flygate_aci.services.aci.session import DeviceSession, HandshakePayload
from flygate_aci.services.crypto.primitives import load_verification_key, pem_from_base64_der
from flygate_aci.services.trust.registry import TrustRegistry

router = APIRouter()


def _get_session(request: Request) -> DeviceSession:
    return request.app.state.ctx.session


def _get_registry(request: Request) -> TrustRegistry:
    return request.app.state.ctx.registry


def _get_settings(request: Request) -> AciSettings:
    return request.app.state.ctx.settings


class HandshakePayloadIn(BaseModel):
    nonce: str
    ts: int
    device_id: str


class HandshakeRequest(BaseModel):
    payload: HandshakePayloadIn
    signature_b64: str


class RegisterDeviceRequest(BaseModel):
    device_id: str | None = None
    device_name: str | None = None
    public_key_pem: str | None = None
    public_key_base64: str | None = None
    public_key_jwk: dict[str, Any] | None = None


@router.get("/health")
async def health() -> dict[str, Any]:
    return {
        "status": "OK",
        "service": "FlyGate ACI Console",
        "version": BUILD_INFO.version,
        "timestamp": int(time.time() * 1000),
        "ready": True,
    }


@router.get("/status")
def status(session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    return session.get_status().as_dict()


@router.get("/capabilities")
def capabilities(session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    duty_state, apps = session.get_capabilities()
    return {"dutyState": duty_state.value, "apps": [app.as_dict() for app in apps]}


@router.get("/devices")
def devices(registry: TrustRegistry = Depends(_get_registry)) -> dict[str, Any]:
    return {"devices": [device.as_dict() for device in registry.list_devices()]}


@router.get("/nonce")
def issue_nonce(
    device_id: str | None = Query(default=None),
    session: DeviceSession = Depends(_get_session),
    settings: AciSettings = Depends(_get_settings),
) -> dict[str, Any]:
    if not device_id and not settings.allow_unbound_nonce:
        raise ApiError(400, "Missing device_id query parameter")
    result = session.issue_nonce(device_id or None)
    if not result.ok:
        raise ApiError.from_rejection(403, result)
    grant = result.value
    return {"nonce": grant.nonce, "ttl_seconds": grant.ttl_seconds}


@router.post("/handshake")
def handshake(body: HandshakeRequest, session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    payload = HandshakePayload(nonce=body.payload.nonce, ts=body.payload.ts, device_id=body.payload.device_id)
    result = session.verify_handshake(payload, body.signature_b64)
    if not result.ok:
        raise ApiError.from_rejection(403, result)
    state = session.get_status()
    return {
        "status": "OK",
        "duty_state": state.duty_state.value,
        "apps_unlocked": state.active_app_ids,
        "device_id": result.value.device_id,
        "device_name": result.value.device_name,
    }


@router.post("/usb/attached/{device_id}")
def usb_attached(device_id: str, session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    result = session.on_device_attached(device_id)
    if not result.ok:
        raise ApiError.from_rejection(404, result)
    grant = result.value
    return {
        "status": "OK",
        "message": f"Device {device_id} attached. Awaiting handshake.",
        "nonce": grant.nonce,
        "ttl_seconds": grant.ttl_seconds,
        "state": session.get_status().as_dict(),
    }


@router.post("/usb/detached")
def usb_detached(session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    state = session.on_device_detached()
    return {"status": "OK", "message": "Device detached. Back to ON_DUTY.", "state": state.as_dict()}


@router.post("/simulate/attach/{device_id}", dependencies=[Depends(require_admin_token)])
def simulate_attach(device_id: str, session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    result = session.simulate_attach(device_id)
    if not result.ok:
        raise ApiError.from_rejection(404, result)
    return {
        "status": "OK",
        "message": f"Trusted device {result.value.device_name} attached. Flight Mode enabled.",
        "state": session.get_status().as_dict(),
    }


@router.post("/simulate/detach", dependencies=[Depends(require_admin_token)])
def simulate_detach(session: DeviceSession = Depends(_get_session)) -> dict[str, Any]:
    state = session.on_device_detached()
    return {"status": "OK", "message": "Device detached. Back to ON_DUTY.", "state": state.as_dict()}


@router.post("/devices/register", dependencies=[Depends(require_admin_token)])
def register_device(body: RegisterDeviceRequest, registry: TrustRegistry = Depends(_get_registry)) -> dict[str, Any]:
    if not body.device_id or not body.device_name:
        raise ApiError(400, "Missing device_id or device_name")

    pem = body.public_key_pem
    if not pem and body.public_key_base64:
        pem = pem_from_base64_der(body.public_key_base64)
    if not pem and body.public_key_jwk:
        raise ApiError(400, "JWK format not yet supported. Please provide public_key_pem or public_key_base64")
    if not pem:
        raise ApiError(400, "Missing public key. Provide public_key_pem (PEM format) or public_key_base64 (base64 DER)")
    try:
        load_verification_key(pem)
    except ValueError as exc:
        raise ApiError(400, f"Invalid public key: {exc}") from exc

    registry.upsert(body.device_id, body.device_name, pem)
    return {"status": "OK", "message": f"Device {body.device_name} registered.", "device_id": body.device_id}
