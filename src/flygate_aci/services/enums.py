"""Enumerations for duty/lock states and the rejection reasons of both state machines."""
from __future__ import annotations

from enum import Enum

__all__ = [
    "DutyState",
    "LockState",
    "HandshakeError",
    "GateError",
]


class _StrEnum(str, Enum):
    """Simple ``str``-backed enum compatible with Python 3.10."""

    def __str__(self) -> str:  # pragma: no cover - convenience for logging only
        return str(self.value)


class DutyState(_StrEnum):
    OFF_DUTY = "OFF_DUTY"
    ON_DUTY = "ON_DUTY"
    FLIGHT_MODE = "FLIGHT_MODE"


class LockState(_StrEnum):
    LOCKED = "LOCKED"
    UNLOCKED = "UNLOCKED"


class HandshakeError(_StrEnum):
    UNKNOWN_DEVICE = "UnknownDevice"
    NO_NONCE_ISSUED = "NoNonceIssued"
    INVALID_NONCE = "InvalidNonce"
    NONCE_EXPIRED = "NonceExpired"
    DEVICE_MISMATCH = "DeviceMismatch"
    STALE_TIMESTAMP = "StaleTimestamp"
    UNTRUSTED_DEVICE = "UntrustedDevice"
    BAD_SIGNATURE = "BadSignature"

    @property
    def message(self) -> str:
        return _HANDSHAKE_MESSAGES[self]


class GateError(_StrEnum):
    NONCE_MISMATCH = "NonceMismatch"
    ACI_ID_MISMATCH = "AciIdMismatch"
    TTL_EXPIRED = "TtlExpired"
    ASSERTION_TOO_OLD = "AssertionTooOld"
    INVALID_SIGNATURE = "InvalidSignature"
    NOT_ON_DUTY = "NotOnDuty"
    AUTHORITY_UNREACHABLE = "AuthorityUnreachable"
    MALFORMED_ASSERTION = "MalformedAssertion"

    @property
    def message(self) -> str:
        return _GATE_MESSAGES[self]


_HANDSHAKE_MESSAGES = {
    HandshakeError.UNKNOWN_DEVICE: "Unknown device_id",
    HandshakeError.NO_NONCE_ISSUED: "No nonce issued",
    HandshakeError.INVALID_NONCE: "Invalid nonce",
    HandshakeError.NONCE_EXPIRED: "Nonce expired",
    HandshakeError.DEVICE_MISMATCH: "Nonce was issued for a different device",
    HandshakeError.STALE_TIMESTAMP: "Timestamp outside allowed window",
    HandshakeError.UNTRUSTED_DEVICE: "Device is not trusted",
    HandshakeError.BAD_SIGNATURE: "Signature verification failed",
}

_GATE_MESSAGES = {
    GateError.NONCE_MISMATCH: "Nonce mismatch",
    GateError.ACI_ID_MISMATCH: "ACI ID mismatch",
    GateError.TTL_EXPIRED: "TTL expired",
    GateError.ASSERTION_TOO_OLD: "Assertion too old",
    GateError.INVALID_SIGNATURE: "Invalid HMAC signature",
    GateError.NOT_ON_DUTY: "Duty state is not ON_DUTY",
    GateError.AUTHORITY_UNREACHABLE: "FlyGate unreachable",
    GateError.MALFORMED_ASSERTION: "Malformed duty assertion",
}
