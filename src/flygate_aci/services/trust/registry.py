"""In-memory table of companion devices allowed to run the trust handshake."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Iterable

from flygate_aci.config.const import SEED_TRUSTED_DEVICES
from flygate_aci.config.settings import DeviceSeed

__all__ = ["TrustedDevice", "TrustRegistry"]

_log = logging.getLogger("flygate_aci.trust")


@dataclass(frozen=True, slots=True)
class TrustedDevice:
    device_id: str
    device_name: str
    public_key_pem: str | None = None

    @property
    def has_key(self) -> bool:
        return bool(self.public_key_pem)

    def as_dict(self) -> dict[str, Any]:
        return {"deviceId": self.device_id, "deviceName": self.device_name, "hasKey": self.has_key}


class TrustRegistry:
    """
    Known device identities keyed by ``device_id``.

    Entries are only ever added or overwritten; there is no removal path.
    """

    def __init__(self, seeds: Iterable[DeviceSeed] | None = None) -> None:
        self._lock = threading.Lock()
        self._devices: dict[str, TrustedDevice] = {}
        for device_id, device_name in SEED_TRUSTED_DEVICES:
            self._devices[device_id] = TrustedDevice(device_id=device_id, device_name=device_name)
        for seed in seeds or ():
            self._devices[seed.device_id] = TrustedDevice(seed.device_id, seed.device_name, seed.public_key_pem)

    def lookup(self, device_id: str) -> TrustedDevice | None:
        with self._lock:
            return self._devices.get(device_id)

    def upsert(self, device_id: str, device_name: str, public_key_pem: str | None = None) -> TrustedDevice:
        device = TrustedDevice(device_id=device_id, device_name=device_name, public_key_pem=public_key_pem)
        with self._lock:
            existed = device_id in self._devices
            self._devices[device_id] = device
        _log.info("trusted device %s device_id=%s has_key=%s", "updated" if existed else "registered", device_id, device.has_key)
        return device

    def list_devices(self) -> list[TrustedDevice]:
        with self._lock:
            return list(self._devices.values())
