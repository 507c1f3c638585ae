"""Data shapes owned or received by the gatekeeper."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel

from flygate_aci.services.crypto.primitives import assertion_signing_string
from flygate_aci.services.enums import LockState

__all__ = ["AciLockState", "AuthorityStatus", "DutyAssertion", "DutyUser", "isoformat", "parse_timestamp"]


def isoformat(moment: datetime | None) -> str | None:
    if moment is None:
        return None
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    moment = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


class DutyUser(BaseModel):
    id: str
    role: str


class DutyAssertion(BaseModel):
    """Signed claim from FlyGate that a crew member is on duty."""

    aci_id: str
    nonce: str
    issued_at: str
    ttl_seconds: float
    device_id: str
    user: DutyUser
    duty_state: str
    signature: str

    def issued_at_datetime(self) -> datetime:
        return parse_timestamp(self.issued_at)

    def signing_string(self) -> str:
        return assertion_signing_string(
            aci_id=self.aci_id,
            nonce=self.nonce,
            issued_at=self.issued_at,
            ttl_seconds=self.ttl_seconds,
            device_id=self.device_id,
            user_id=self.user.id,
            user_role=self.user.role,
            duty_state=self.duty_state,
        )


@dataclass(slots=True)
class AuthorityStatus:
    reachable: bool = False
    last_seen_at: datetime | None = None


@dataclass(slots=True)
class AciLockState:
    aci_id: str
    lock_state: LockState = LockState.LOCKED
    last_verified_at: datetime | None = None
    last_error: str | None = None
    authority: AuthorityStatus = field(default_factory=AuthorityStatus)

    def copy(self) -> "AciLockState":
        return AciLockState(
            aci_id=self.aci_id,
            lock_state=self.lock_state,
            last_verified_at=self.last_verified_at,
            last_error=self.last_error,
            authority=AuthorityStatus(self.authority.reachable, self.authority.last_seen_at),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "aci_id": self.aci_id,
            "lock_state": self.lock_state.value,
            "last_verified_at": isoformat(self.last_verified_at),
            "last_error": self.last_error,
            "flygate": {
                "reachable": self.authority.reachable,
                "last_seen_at": isoformat(self.authority.last_seen_at),
            },
        }
