from __future__ import annotations

import pytest
from cryptography.hazmat.primitives.asymmetric import ed25519

from flygate_aci.services.crypto.keys import public_key_pem


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def device_key() -> ed25519.Ed25519PrivateKey:
    return ed25519.Ed25519PrivateKey.generate()


@pytest.fixture()
def device_pem(device_key: ed25519.Ed25519PrivateKey) -> str:
    return public_key_pem(device_key)


class FakeClock:
    """Mutable wall clock in unix seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
