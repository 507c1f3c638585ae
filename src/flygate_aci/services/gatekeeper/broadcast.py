from __future__ import annotations

"""
Realtime fan-out of gatekeeper lock-state changes to WebSocket observers.
"""

import asyncio
import json
import logging
from typing import Callable, Protocol

from fastapi import WebSocket
from fastapi.websockets import WebSocketState

from flygate_aci.config.const import DEFAULT_OBSERVER_SEND_TIMEOUT_SECONDS

from .models import AciLockState

__all__ = ["Broadcaster", "Observer", "WebSocketObserver"]

_log = logging.getLogger("flygate_aci.broadcast")


class Observer(Protocol):
    @property
    def is_open(self) -> bool: ...

    async def send_text(self, message: str) -> None: ...


class WebSocketObserver:
    """
    Adapt FastAPI's WebSocket to the minimal observer protocol.
    """

    def __init__(self, ws: WebSocket):
        self._ws = ws

    @property
    def is_open(self) -> bool:
        return self._ws.client_state == WebSocketState.CONNECTED and self._ws.application_state == WebSocketState.CONNECTED

    async def send_text(self, message: str) -> None:
        await self._ws.send_text(message)


def _encode(kind: str, state: AciLockState) -> str:
    return json.dumps({"type": kind, "data": state.as_dict()}, ensure_ascii=False)


class Broadcaster:
    """
    Pushes every event from the gatekeeper queue to all open observers.

    A new observer receives a ``snapshot`` message before any event that is
    published after its registration; both happen under the same lock.  Every
    send is bounded by ``send_timeout``; an observer that misses it is dropped.
    """

    def __init__(
        self,
        events: asyncio.Queue[AciLockState],
        snapshot: Callable[[], AciLockState],
        *,
        send_timeout: float = DEFAULT_OBSERVER_SEND_TIMEOUT_SECONDS,
    ) -> None:
        self._events = events
        self._snapshot = snapshot
        self._send_timeout = send_timeout
        self._observers: list[Observer] = []
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    async def start(self) -> None:
        if self._task and not self._task.done():
            return
        self._task = asyncio.create_task(self._pump(), name="flygate-broadcast-pump")
        _log.info("broadcaster started")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _log.info("broadcaster stopped")
    async def connect(self, observer: Observer) -> None:
        async with self._lock:
            self._observers.append(observer)
            if not await self._send(observer, _encode("snapshot", self._snapshot())):
                self._observers.remove(observer)
        _log.debug("observer connected total=%d", len(self._observers))

    async def disconnect(self, observer: Observer) -> None:
        async with self._lock:
            if observer in self._observers:
                self._observers.remove(observer)
        _log.debug("observer disconnected total=%d", len(self._observers))

    async def publish(self, state: AciLockState) -> int:
        """Send one state change to every open observer; returns how many received it."""
        message = _encode("state_change", state)
        async with self._lock:
            targets = [observer for observer in self._observers if observer.is_open]
            results = await asyncio.gather(*(self._send(observer, message) for observer in targets))
            for observer, ok in zip(targets, results):
                if not ok and observer in self._observers:
                    self._observers.remove(observer)
        delivered = sum(results)
        _log.info("lock state %s broadcast to %d observer(s)", state.lock_state.value, delivered)
        return delivered

    async def _send(self, observer: Observer, message: str) -> bool:
        # a stalled or broken observer is dropped so it cannot hold the lock
        try:
            await asyncio.wait_for(observer.send_text(message), timeout=self._send_timeout)
        except asyncio.TimeoutError:
            _log.warning("observer did not accept a message within %ss, dropping it", self._send_timeout)
            return False
        except Exception:
            _log.debug("send to observer failed", exc_info=True)
            return False
        return True

    async def _pump(self) -> None:
        while True:
            state = await self._events.get()
            try:
                await self.publish(state)
            finally:
                self._events.task_done()
