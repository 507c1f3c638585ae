"""Device trust handshake: nonce issuance, signature check and duty-state transitions."""
from __future__ import annotations

import hmac
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Any, Callable

from flygate_aci.config.catalog import AppCapability, apps_for
from flygate_aci.config.const import DEFAULT_NONCE_TTL_SECONDS, NONCE_ENTROPY_BYTES
from flygate_aci.services.crypto.primitives import canonical_handshake_payload, verify_signature
from flygate_aci.services.enums import DutyState, HandshakeError
from flygate_aci.services.results import Accepted, Rejected, Result
from flygate_aci.services.trust.registry import TrustedDevice, TrustRegistry

__all__ = [
    "DeviceSession",
    "DeviceSessionState",
    "HandshakeGrant",
    "HandshakePayload",
    "NonceGrant",
    "PendingNonce",
]

_log = logging.getLogger("flygate_aci.session")


def _app_ids(duty_state: DutyState) -> list[str]:
    return [app.app_id for app in apps_for(duty_state)]


@dataclass(slots=True)
class PendingNonce:
    value: str
    issued_at: float
    bound_device_id: str | None = None


@dataclass(slots=True)
class DeviceSessionState:
    duty_state: DutyState
    last_transition_epoch: int
    active_app_ids: list[str]
    attached_device_id: str | None = None
    attached_device_name: str | None = None
    last_handshake_ok: bool = False
    last_error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "dutyState": self.duty_state.value,
            "trustedDeviceAttached": self.attached_device_id is not None,
            "trustedDeviceId": self.attached_device_id,
            "trustedDeviceName": self.attached_device_name,
            "lastTransitionEpoch": self.last_transition_epoch,
            "activeApps": list(self.active_app_ids),
            "lastHandshakeOk": self.last_handshake_ok,
            "lastError": self.last_error,
        }


@dataclass(frozen=True, slots=True)
class HandshakePayload:
    nonce: str
    ts: int
    device_id: str

    def canonical_bytes(self) -> bytes:
        return canonical_handshake_payload(nonce=self.nonce, ts=self.ts, device_id=self.device_id)


@dataclass(frozen=True, slots=True)
class NonceGrant:
    nonce: str
    ttl_seconds: int
    device_id: str | None = None


@dataclass(frozen=True, slots=True)
class HandshakeGrant:
    device_id: str
    device_name: str


@dataclass
class DeviceSession:
    """
    Owns the console duty state and the single outstanding handshake nonce.

    The registry is consulted before the session lock is taken so that no
    code path holds two guards at once.
    """

    registry: TrustRegistry
    nonce_ttl_seconds: int = DEFAULT_NONCE_TTL_SECONDS
    clock: Callable[[], float] = time.time
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _pending: PendingNonce | None = field(default=None, init=False, repr=False)
    _state: DeviceSessionState = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._state = DeviceSessionState(
            duty_state=DutyState.ON_DUTY,
            last_transition_epoch=self._epoch_ms(),
            active_app_ids=_app_ids(DutyState.ON_DUTY),
        )

    def _epoch_ms(self) -> int:
        return int(self.clock() * 1000)

    # ------------------------------------------------------------------
    # Read-only snapshots
    # ------------------------------------------------------------------
    def get_status(self) -> DeviceSessionState:
        with self._lock:
            return replace(self._state, active_app_ids=list(self._state.active_app_ids))

    def get_capabilities(self) -> tuple[DutyState, tuple[AppCapability, ...]]:
        with self._lock:
            duty_state = self._state.duty_state
        return duty_state, apps_for(duty_state)

    def has_pending_nonce(self) -> bool:
        with self._lock:
            return self._pending is not None

    # ------------------------------------------------------------------
    # Nonce issuance
    # ------------------------------------------------------------------
    def issue_nonce(self, device_id: str | None = None) -> Result[NonceGrant]:
        if device_id is not None and self.registry.lookup(device_id) is None:
            with self._lock:
                return self._reject(HandshakeError.UNKNOWN_DEVICE, device_id=device_id)
        value = secrets.token_urlsafe(NONCE_ENTROPY_BYTES)
        with self._lock:
            self._pending = PendingNonce(value=value, issued_at=self.clock(), bound_device_id=device_id)
        _log.info("nonce issued bound_device=%s ttl=%ss", device_id or "-", self.nonce_ttl_seconds)
        return Accepted(NonceGrant(nonce=value, ttl_seconds=self.nonce_ttl_seconds, device_id=device_id))

    def on_device_attached(self, device_id: str) -> Result[NonceGrant]:
        """Physical attachment: issue a nonce bound to the device, duty state untouched."""
        result = self.issue_nonce(device_id)
        if result.ok:
            _log.info("device attached device_id=%s, awaiting handshake", device_id)
        return result

    # ------------------------------------------------------------------
    # Handshake
    # ------------------------------------------------------------------
    def verify_handshake(self, payload: HandshakePayload, signature_b64: str) -> Result[HandshakeGrant]:
        device = self.registry.lookup(payload.device_id)
        with self._lock:
            pending = self._pending
            if pending is None:
                return self._reject(HandshakeError.NO_NONCE_ISSUED, device_id=payload.device_id)
            if not hmac.compare_digest(payload.nonce.encode("utf-8"), pending.value.encode("utf-8")):
                return self._reject(HandshakeError.INVALID_NONCE, device_id=payload.device_id)
            now = self.clock()
            if now - pending.issued_at > self.nonce_ttl_seconds:
                self._pending = None
                return self._reject(HandshakeError.NONCE_EXPIRED, device_id=payload.device_id)
            if pending.bound_device_id is not None and payload.device_id != pending.bound_device_id:
                return self._reject(HandshakeError.DEVICE_MISMATCH, device_id=payload.device_id)
            if abs(now - payload.ts) > self.nonce_ttl_seconds:
                return self._reject(HandshakeError.STALE_TIMESTAMP, device_id=payload.device_id)
            if device is None:
                return self._reject(HandshakeError.UNTRUSTED_DEVICE, device_id=payload.device_id)
            if device.public_key_pem:
                if not verify_signature(device.public_key_pem, signature_b64, payload.canonical_bytes()):
                    return self._reject(HandshakeError.BAD_SIGNATURE, device_id=payload.device_id)
            else:
                _log.warning("device %s has no verification key, signature not checked", device.device_id)
            self._pending = None
            self._enter_flight_mode(device)
        _log.info("handshake accepted device_id=%s, FLIGHT_MODE enabled", device.device_id)
        return Accepted(HandshakeGrant(device_id=device.device_id, device_name=device.device_name))

    def simulate_attach(self, device_id: str) -> Result[HandshakeGrant]:
        """Operator bypass of the handshake for bench testing."""
        device = self.registry.lookup(device_id)
        with self._lock:
            if device is None:
                return self._reject(HandshakeError.UNKNOWN_DEVICE, device_id=device_id)
            self._pending = None
            self._enter_flight_mode(device)
        _log.warning("simulated attach device_id=%s, handshake bypassed", device_id)
        return Accepted(HandshakeGrant(device_id=device.device_id, device_name=device.device_name))

    # ------------------------------------------------------------------
    # Detachment
    # ------------------------------------------------------------------
    def on_device_detached(self) -> DeviceSessionState:
        with self._lock:
            self._pending = None
            state = self._state
            if state.duty_state != DutyState.ON_DUTY:
                state.duty_state = DutyState.ON_DUTY
                state.last_transition_epoch = self._epoch_ms()
            state.attached_device_id = None
            state.attached_device_name = None
            state.active_app_ids = _app_ids(DutyState.ON_DUTY)
            state.last_handshake_ok = False
            state.last_error = None
            snapshot = replace(state, active_app_ids=list(state.active_app_ids))
        _log.info("device detached, back to ON_DUTY")
        return snapshot

    # ------------------------------------------------------------------
    # Internal helpers; callers hold self._lock
    # ------------------------------------------------------------------
    def _enter_flight_mode(self, device: TrustedDevice) -> None:
        state = self._state
        state.attached_device_id = device.device_id
        state.attached_device_name = device.device_name
        state.duty_state = DutyState.FLIGHT_MODE
        state.active_app_ids = _app_ids(DutyState.FLIGHT_MODE)
        state.last_transition_epoch = self._epoch_ms()
        state.last_handshake_ok = True
        state.last_error = None

    def _reject(self, reason: HandshakeError, *, device_id: str | None) -> Rejected:
        self._state.last_handshake_ok = False
        self._state.last_error = reason.message
        _log.warning("handshake rejected reason=%s device_id=%s", reason.value, device_id or "-")
        return Rejected(reason)
