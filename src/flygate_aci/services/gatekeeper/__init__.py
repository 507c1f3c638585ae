from .broadcast import Broadcaster, Observer, WebSocketObserver
from .client import FlyGateClient, FlyGateHttpError
from .models import AciLockState, AuthorityStatus, DutyAssertion, DutyUser
from .service import Gatekeeper

__all__ = [
    "Broadcaster",
    "Observer",
    "WebSocketObserver",
    "FlyGateClient",
    "FlyGateHttpError",
    "AciLockState",
    "AuthorityStatus",
    "DutyAssertion",
    "DutyUser",
    "Gatekeeper",
]
