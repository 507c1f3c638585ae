"""FlyGate Aviation Control Interface: device trust handshake and duty gatekeeper."""
