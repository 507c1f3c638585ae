from .session import DeviceSession, DeviceSessionState, HandshakeGrant, HandshakePayload, NonceGrant, PendingNonce

__all__ = [
    "DeviceSession",
    "DeviceSessionState",
    "HandshakeGrant",
    "HandshakePayload",
    "NonceGrant",
    "PendingNonce",
]
