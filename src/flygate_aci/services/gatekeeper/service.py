"""
Gatekeeper: polls the FlyGate authority for signed duty assertions and derives
the console lock state.

Every failure path ends in LOCKED.  State changes are pushed onto an
``asyncio.Queue`` that the realtime broadcaster drains; a poll only produces an
event when the lock state flips, manual overrides always produce one.
"""
from __future__ import annotations

import asyncio
import hmac
import logging
import secrets
import threading
from datetime import datetime, timezone
from typing import Any, Callable

from pydantic import ValidationError

from flygate_aci.config.const import POLL_NONCE_BYTES
from flygate_aci.config.settings import AciSettings
from flygate_aci.services.crypto.primitives import compute_assertion_hmac, hmac_matches
from flygate_aci.services.enums import DutyState, GateError, LockState
from flygate_aci.services.results import Accepted, Rejected, Result

from .client import FlyGateClient, FlyGateHttpError
from .models import AciLockState, DutyAssertion

__all__ = ["Gatekeeper", "DISABLED_MESSAGE"]

_log = logging.getLogger("flygate_aci.gatekeeper")

DISABLED_MESSAGE = "Gatekeeper disabled - no shared secret configured"
MANUAL_LOCK_MESSAGE = "Manually locked"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Gatekeeper:
    def __init__(
        self,
        settings: AciSettings,
        *,
        client: FlyGateClient | None = None,
        events: asyncio.Queue[AciLockState] | None = None,
        clock: Callable[[], datetime] = _now,
    ) -> None:
        self._settings = settings
        self._client = client or FlyGateClient(
            base_url=settings.flygate_base_url,
            timeout=settings.flygate_timeout_seconds,
        )
        self.events: asyncio.Queue[AciLockState] = events if events is not None else asyncio.Queue()
        self._clock = clock
        self._lock = threading.Lock()
        self._task: asyncio.Task | None = None
        self._state = AciLockState(
            aci_id=settings.aci_id,
            last_error=None if settings.gatekeeper_enabled else DISABLED_MESSAGE,
        )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def enabled(self) -> bool:
        return self._settings.gatekeeper_enabled

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def snapshot(self) -> AciLockState:
        with self._lock:
            return self._state.copy()

    def public_config(self) -> dict[str, Any]:
        config = self._settings.public_dict()
        config.update(enabled=self.enabled, running=self.running)
        return config

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> None:
        if self.running:
            return
        if not self.enabled:
            _log.warning("no FLYGATE_ACI_SHARED_SECRET configured - gatekeeper disabled, console stays LOCKED")
            return
        self._task = asyncio.create_task(self._run(), name="flygate-gatekeeper-poll")
        _log.info(
            "gatekeeper started polling %s every %sms",
            self._settings.flygate_base_url,
            self._settings.poll_interval_ms,
        )

    async def stop(self) -> None:
        """Cancel the poll task; the current lock state is left as it is."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _log.info("gatekeeper stopped polling")

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        interval = self._settings.poll_interval_seconds
        while True:
            started = loop.time()
            try:
                await self.poll_once()
            except Exception:  # pragma: no cover - poll_once maps known failures itself
                _log.warning("gatekeeper poll crashed", exc_info=True)
                self._set_locked("Gatekeeper poll failed")
            # fixed cadence: the poll duration counts against the interval
            await asyncio.sleep(max(0.0, interval - (loop.time() - started)))

    # ------------------------------------------------------------------
    # Poll cycle
    # ------------------------------------------------------------------
    async def poll_once(self) -> Result[AciLockState]:
        nonce = secrets.token_hex(POLL_NONCE_BYTES)
        timeout = self._settings.flygate_timeout_seconds
        try:
            body = await asyncio.wait_for(
                self._client.fetch_duty_assertion(nonce=nonce, aci_id=self._settings.aci_id),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return self._mark_unreachable(f"no answer within {timeout:g}s")
        except FlyGateHttpError as exc:
            return self._mark_unreachable(str(exc))

        with self._lock:
            self._state.authority.reachable = True
            self._state.authority.last_seen_at = self._clock()

        try:
            assertion = DutyAssertion.model_validate(body)
        except ValidationError as exc:
            return self._reject(Rejected(GateError.MALFORMED_ASSERTION, detail=f"{exc.error_count()} invalid field(s)"))

        verdict = self.validate_assertion(assertion, nonce)
        if not verdict.ok:
            return self._reject(verdict)
        self._set_unlocked()
        _log.debug("duty assertion verified user=%s device=%s", assertion.user.id, assertion.device_id)
        return Accepted(self.snapshot())

    def validate_assertion(self, assertion: DutyAssertion, expected_nonce: str) -> Result[DutyAssertion]:
        """Run the six assertion checks in order; the first failure wins."""
        if not hmac.compare_digest(assertion.nonce.encode("utf-8"), expected_nonce.encode("utf-8")):
            return Rejected(GateError.NONCE_MISMATCH)
        if assertion.aci_id != self._settings.aci_id:
            return Rejected(GateError.ACI_ID_MISMATCH)

        try:
            issued_at = assertion.issued_at_datetime()
        except ValueError:
            return Rejected(GateError.MALFORMED_ASSERTION, detail=f"issued_at={assertion.issued_at!r}")
        age = (self._clock() - issued_at).total_seconds()
        if age > assertion.ttl_seconds:
            return Rejected(GateError.TTL_EXPIRED)
        if age > self._settings.duty_ttl_max_seconds:
            return Rejected(GateError.ASSERTION_TOO_OLD)

        secret = self._settings.shared_secret
        if not secret:
            return Rejected(GateError.INVALID_SIGNATURE, detail="no shared secret configured")
        expected = compute_assertion_hmac(secret, assertion.signing_string())
        if not hmac_matches(expected, assertion.signature):
            return Rejected(GateError.INVALID_SIGNATURE)

        if assertion.duty_state != DutyState.ON_DUTY.value:
            return Rejected(GateError.NOT_ON_DUTY, detail=assertion.duty_state)
        return Accepted(assertion)

    # ------------------------------------------------------------------
    # Manual overrides
    # ------------------------------------------------------------------
    def manual_unlock(self) -> AciLockState:
        with self._lock:
            if self.enabled:
                self._state.lock_state = LockState.UNLOCKED
                self._state.last_verified_at = self._clock()
                self._state.last_error = None
            self._emit()
            snapshot = self._state.copy()
        if self.enabled:
            _log.warning("console manually unlocked")
        else:
            _log.warning("manual unlock refused: %s", DISABLED_MESSAGE)
        return snapshot

    def manual_lock(self, reason: str | None = None) -> AciLockState:
        with self._lock:
            self._state.lock_state = LockState.LOCKED
            self._state.last_error = reason or MANUAL_LOCK_MESSAGE
            self._emit()
            snapshot = self._state.copy()
        _log.warning("console manually locked reason=%s", snapshot.last_error)
        return snapshot

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def _mark_unreachable(self, detail: str) -> Rejected:
        with self._lock:
            self._state.authority.reachable = False
        return self._reject(Rejected(GateError.AUTHORITY_UNREACHABLE, detail=detail))

    def _reject(self, verdict: Rejected) -> Rejected:
        _log.info("duty assertion rejected reason=%s: %s", verdict.reason.value, verdict.message)
        self._set_locked(verdict.message)
        return verdict

    def _set_locked(self, error: str) -> None:
        with self._lock:
            previous = self._state.lock_state
            self._state.lock_state = LockState.LOCKED
            self._state.last_error = error
            if previous != LockState.LOCKED:
                self._emit()

    def _set_unlocked(self) -> None:
        with self._lock:
            previous = self._state.lock_state
            self._state.lock_state = LockState.UNLOCKED
            self._state.last_verified_at = self._clock()
            self._state.last_error = None
            if previous != LockState.UNLOCKED:
                self._emit()

    def _emit(self) -> None:
        # callers hold self._lock so queue order matches transition order
        self.events.put_nowait(self._state.copy())
