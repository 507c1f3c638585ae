# src/flygate_aci/config/const.py
from __future__ import annotations

# Hard defaults; environment/config file values override them (see settings.py)
DEFAULT_ACI_ID: str = "aci-pi4-001"
DEFAULT_FLYGATE_BASE_URL: str = "http://flygate.local:5000"
DEFAULT_POLL_INTERVAL_MS: int = 2000
DEFAULT_DUTY_TTL_MAX_SECONDS: int = 60
DEFAULT_FLYGATE_TIMEOUT_SECONDS: float = 5.0
DEFAULT_OBSERVER_SEND_TIMEOUT_SECONDS: float = 2.0
DEFAULT_NONCE_TTL_SECONDS: int = 30
DEFAULT_ADMIN_TOKEN: str = "dev-local-token"

# Path of the duty assertion endpoint on the FlyGate authority
FLYGATE_DUTY_PATH: str = "/api/duty"

# Delimiter of the canonical duty assertion string that is HMAC-signed
ASSERTION_FIELD_DELIMITER: str = "|"

NONCE_ENTROPY_BYTES: int = 24
POLL_NONCE_BYTES: int = 16

# Companion devices provisioned with the tablet image
SEED_TRUSTED_DEVICES: tuple[tuple[str, str], ...] = (
    ("FlyGateAgent-iPad-0001", "Pilot iPad (FlyGate)"),
    ("FlyGateAgent-iPad-0002", "Co-Pilot iPad (FlyGate)"),
)
