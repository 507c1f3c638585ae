"""Companion-device side of the trust handshake (used by the CLI and bench tests)."""
from __future__ import annotations

import base64
import time
from typing import Any

from flygate_aci.services.crypto.primitives import canonical_handshake_payload, sign_bytes

__all__ = ["build_handshake_request"]


def build_handshake_request(private_key: Any, *, nonce: str, device_id: str, ts: int | None = None) -> dict[str, Any]:
    """Return the JSON body for ``POST /api/aci/handshake``."""
    if ts is None:
        ts = int(time.time())
    signature = sign_bytes(private_key, canonical_handshake_payload(nonce=nonce, ts=ts, device_id=device_id))
    return {
        "payload": {"nonce": nonce, "ts": ts, "device_id": device_id},
        "signature_b64": base64.b64encode(signature).decode("ascii"),
    }
