"""Wiring of the owned state objects; one context per running API process."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from flygate_aci.config.settings import AciSettings, load_device_seeds
from flygate_aci.services.aci.session import DeviceSession
from flygate_aci.services.gatekeeper.broadcast import Broadcaster
from flygate_aci.services.gatekeeper.client import FlyGateClient
from flygate_aci.services.gatekeeper.models import AciLockState
from flygate_aci.services.gatekeeper.service import Gatekeeper
from flygate_aci.services.trust.registry import TrustRegistry

__all__ = ["AciContext", "build_context"]

_log = logging.getLogger("flygate_aci.context")


@dataclass(slots=True)
class AciContext:
    settings: AciSettings
    registry: TrustRegistry
    session: DeviceSession
    gatekeeper: Gatekeeper
    broadcaster: Broadcaster

    async def start(self) -> None:
        await self.broadcaster.start()
        await self.gatekeeper.start()

    async def stop(self) -> None:
        await self.gatekeeper.stop()
        await self.broadcaster.stop()


def build_context(
    settings: AciSettings,
    *,
    client: FlyGateClient | None = None,
    session_clock: Callable[[], float] | None = None,
    gate_clock: Callable[[], datetime] | None = None,
) -> AciContext:
    seeds = list(settings.extra_devices)
    seeds.extend(load_device_seeds(settings.trusted_devices_file))
    registry = TrustRegistry(seeds)
    _log.info("trust registry loaded devices=%d", len(registry.list_devices()))

    session = DeviceSession(
        registry=registry,
        nonce_ttl_seconds=settings.nonce_ttl_seconds,
        clock=session_clock or time.time,
    )

    events: asyncio.Queue[AciLockState] = asyncio.Queue()
    gate_kwargs = {"clock": gate_clock} if gate_clock is not None else {}
    gatekeeper = Gatekeeper(settings, client=client, events=events, **gate_kwargs)
    broadcaster = Broadcaster(events, gatekeeper.snapshot)
    return AciContext(
        settings=settings,
        registry=registry,
        session=session,
        gatekeeper=gatekeeper,
        broadcaster=broadcaster,
    )
