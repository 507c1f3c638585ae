"""
Stateless crypto helpers shared by the device handshake and the gatekeeper.

Wire contract for handshake signatures: the signed bytes are the UTF-8 JSON
encoding of ``{"device_id", "nonce", "ts"}`` with keys sorted and no
whitespace, e.g. ``{"device_id":"D1","nonce":"abc","ts":1700000000}``.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import textwrap
from typing import Any, Mapping, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from flygate_aci.config.const import ASSERTION_FIELD_DELIMITER

__all__ = [
    "VerificationKey",
    "canonical_json",
    "canonical_handshake_payload",
    "load_verification_key",
    "pem_from_base64_der",
    "verify_signature",
    "sign_bytes",
    "assertion_signing_string",
    "compute_assertion_hmac",
    "hmac_matches",
]

VerificationKey = Union[ed25519.Ed25519PublicKey, ec.EllipticCurvePublicKey, rsa.RSAPublicKey]


def canonical_json(obj: Mapping[str, Any]) -> bytes:
    return json.dumps(obj, separators=(",", ":"), sort_keys=True, ensure_ascii=False).encode("utf-8")


def canonical_handshake_payload(*, nonce: str, ts: int, device_id: str) -> bytes:
    return canonical_json({"device_id": device_id, "nonce": nonce, "ts": ts})


def pem_from_base64_der(value: str) -> str:
    """Wrap a base64 DER SubjectPublicKeyInfo into a PEM block."""
    body = "".join(value.split())
    lines = "\n".join(textwrap.wrap(body, 64))
    return f"-----BEGIN PUBLIC KEY-----\n{lines}\n-----END PUBLIC KEY-----\n"


def load_verification_key(public_key_pem: str) -> VerificationKey:
    """Parse a PEM public key; raises ``ValueError`` for unreadable or unsupported keys."""
    try:
        key = serialization.load_pem_public_key(public_key_pem.strip().encode("ascii"))
    except (ValueError, TypeError, UnicodeEncodeError, UnsupportedAlgorithm) as exc:
        raise ValueError(f"unreadable public key: {exc}") from exc
    if not isinstance(key, (ed25519.Ed25519PublicKey, ec.EllipticCurvePublicKey, rsa.RSAPublicKey)):
        raise ValueError(f"unsupported public key type: {type(key).__name__}")
    return key


def _b64decode(value: str) -> bytes:
    text = value.strip()
    padded = text + "=" * (-len(text) % 4)
    if "-" in text or "_" in text:
        return base64.urlsafe_b64decode(padded)
    return base64.b64decode(padded, validate=True)


def verify_signature(public_key_pem: str, signature_b64: str, data: bytes) -> bool:
    """Check a base64 signature over ``data``; never raises for bad input."""
    try:
        key = load_verification_key(public_key_pem)
        signature = _b64decode(signature_b64)
    except (ValueError, binascii.Error):
        return False
    try:
        if isinstance(key, ed25519.Ed25519PublicKey):
            key.verify(signature, data)
        elif isinstance(key, ec.EllipticCurvePublicKey):
            size = (key.curve.key_size + 7) // 8
            if len(signature) == 2 * size:
                # raw r||s as produced by WebCrypto
                r = int.from_bytes(signature[:size], "big")
                s = int.from_bytes(signature[size:], "big")
                signature = encode_dss_signature(r, s)
            key.verify(signature, data, ec.ECDSA(hashes.SHA256()))
        else:
            key.verify(signature, data, padding.PKCS1v15(), hashes.SHA256())
    except InvalidSignature:
        return False
    return True


def sign_bytes(private_key: Any, data: bytes) -> bytes:
    """Companion-device side of :func:`verify_signature`."""
    if isinstance(private_key, ed25519.Ed25519PrivateKey):
        return private_key.sign(data)
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return private_key.sign(data, ec.ECDSA(hashes.SHA256()))
    if isinstance(private_key, rsa.RSAPrivateKey):
        return private_key.sign(data, padding.PKCS1v15(), hashes.SHA256())
    raise TypeError(f"unsupported private key type: {type(private_key).__name__}")


def _format_field(value: Any) -> str:
    # integral floats render without a fraction, matching the authority's encoder
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def assertion_signing_string(
    *,
    aci_id: str,
    nonce: str,
    issued_at: str,
    ttl_seconds: float,
    device_id: str,
    user_id: str,
    user_role: str,
    duty_state: str,
) -> str:
    fields = (aci_id, nonce, issued_at, ttl_seconds, device_id, user_id, user_role, duty_state)
    return ASSERTION_FIELD_DELIMITER.join(_format_field(item) for item in fields)


def compute_assertion_hmac(secret: str, signing_string: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), signing_string.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("ascii")


def hmac_matches(expected: str, supplied: str) -> bool:
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))
