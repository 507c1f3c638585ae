from __future__ import annotations

import asyncio

import httpx
import pytest

from flygate_aci.services.enums import GateError, LockState
from flygate_aci.services.gatekeeper import Gatekeeper
from flygate_aci.services.gatekeeper.service import DISABLED_MESSAGE

from .gatekeeper_helpers import NOW, SECRET, authority, drain, make_assertion, make_gatekeeper, make_settings


@pytest.mark.anyio
async def test_valid_assertion_unlocks_once():
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion(nonce))

    result = await gatekeeper.poll_once()
    assert result.ok
    state = gatekeeper.snapshot()
    assert state.lock_state is LockState.UNLOCKED
    assert state.last_verified_at == NOW
    assert state.last_error is None
    assert state.authority.reachable and state.authority.last_seen_at == NOW

    events = drain(gatekeeper.events)
    assert [event.lock_state for event in events] == [LockState.UNLOCKED]

    assert (await gatekeeper.poll_once()).ok
    assert drain(gatekeeper.events) == []


@pytest.mark.anyio
@pytest.mark.parametrize(
    "overrides, reason",
    [
        ({"nonce": "someone-else"}, GateError.NONCE_MISMATCH),
        ({"aci_id": "aci-other"}, GateError.ACI_ID_MISMATCH),
        ({"age": 40, "ttl_seconds": 30}, GateError.TTL_EXPIRED),
        ({"age": 70, "ttl_seconds": 120}, GateError.ASSERTION_TOO_OLD),
        ({"signature": "AAAA"}, GateError.INVALID_SIGNATURE),
        ({"duty_state": "OFF_DUTY"}, GateError.NOT_ON_DUTY),
    ],
)
async def test_failed_check_locks(overrides, reason):
    overrides = dict(overrides)

    def respond(nonce):
        return make_assertion(overrides.pop("nonce", nonce), **overrides)

    gatekeeper = make_gatekeeper(respond)
    gatekeeper.manual_unlock()
    drain(gatekeeper.events)

    result = await gatekeeper.poll_once()
    assert not result.ok
    assert result.reason is reason
    state = gatekeeper.snapshot()
    assert state.lock_state is LockState.LOCKED
    assert state.last_error.startswith(reason.message)
    assert state.authority.reachable
    assert [event.lock_state for event in drain(gatekeeper.events)] == [LockState.LOCKED]


@pytest.mark.anyio
async def test_checks_run_in_order():
    # wrong nonce and wrong signature: the nonce check reports first
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion("other", signature="AAAA"))
    assert (await gatekeeper.poll_once()).reason is GateError.NONCE_MISMATCH


@pytest.mark.anyio
async def test_wrong_secret_is_invalid_signature():
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion(nonce, secret="not-" + SECRET))
    result = await gatekeeper.poll_once()
    assert result.reason is GateError.INVALID_SIGNATURE
    assert gatekeeper.snapshot().last_error == "Invalid HMAC signature"


@pytest.mark.anyio
async def test_ttl_boundary_is_inclusive():
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion(nonce, age=30, ttl_seconds=30))
    assert (await gatekeeper.poll_once()).ok


@pytest.mark.anyio
async def test_slow_authority_counts_as_unreachable():
    async def respond(nonce):
        await asyncio.sleep(1)
        return make_assertion(nonce)

    gatekeeper = make_gatekeeper(respond, flygate_timeout_seconds=0.05)
    gatekeeper.manual_unlock()

    result = await gatekeeper.poll_once()
    assert result.reason is GateError.AUTHORITY_UNREACHABLE
    state = gatekeeper.snapshot()
    assert state.lock_state is LockState.LOCKED
    assert not state.authority.reachable
    assert "unreachable" in state.last_error


@pytest.mark.anyio
async def test_http_error_counts_as_unreachable():
    gatekeeper = make_gatekeeper(lambda nonce: httpx.Response(500, text="boom"))
    result = await gatekeeper.poll_once()
    assert result.reason is GateError.AUTHORITY_UNREACHABLE
    assert "HTTP 500" in gatekeeper.snapshot().last_error


@pytest.mark.anyio
async def test_connection_error_counts_as_unreachable():
    def respond(nonce):
        raise httpx.ConnectError("refused")

    gatekeeper = make_gatekeeper(respond)
    assert (await gatekeeper.poll_once()).reason is GateError.AUTHORITY_UNREACHABLE
    assert not gatekeeper.snapshot().authority.reachable


@pytest.mark.anyio
async def test_malformed_body_locks():
    gatekeeper = make_gatekeeper(lambda nonce: {"nonce": nonce})
    result = await gatekeeper.poll_once()
    assert result.reason is GateError.MALFORMED_ASSERTION
    state = gatekeeper.snapshot()
    assert state.lock_state is LockState.LOCKED
    assert state.authority.reachable


@pytest.mark.anyio
async def test_unparsable_issued_at_is_malformed():
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion(nonce, issued_at="yesterday"))
    assert (await gatekeeper.poll_once()).reason is GateError.MALFORMED_ASSERTION


@pytest.mark.anyio
async def test_without_secret_gatekeeper_stays_locked():
    gatekeeper = make_gatekeeper(lambda nonce: make_assertion(nonce), shared_secret="")
    assert not gatekeeper.enabled
    assert gatekeeper.snapshot().last_error == DISABLED_MESSAGE

    await gatekeeper.start()
    assert not gatekeeper.running

    state = gatekeeper.manual_unlock()
    assert state.lock_state is LockState.LOCKED
    assert len(drain(gatekeeper.events)) == 1

    # even a correctly signed assertion cannot unlock without a configured secret
    assert (await gatekeeper.poll_once()).reason is GateError.INVALID_SIGNATURE


def test_manual_overrides_always_emit():
    gatekeeper = Gatekeeper(make_settings(), client=authority(lambda nonce: {}), clock=lambda: NOW)
    gatekeeper.manual_lock()
    gatekeeper.manual_lock("maintenance")
    unlocked = gatekeeper.manual_unlock()

    events = drain(gatekeeper.events)
    assert [event.lock_state for event in events] == [LockState.LOCKED, LockState.LOCKED, LockState.UNLOCKED]
    assert events[0].last_error == "Manually locked"
    assert events[1].last_error == "maintenance"
    assert unlocked.last_verified_at == NOW


def test_snapshot_is_a_copy():
    gatekeeper = Gatekeeper(make_settings(), client=authority(lambda nonce: {}), clock=lambda: NOW)
    snapshot = gatekeeper.snapshot()
    snapshot.lock_state = LockState.UNLOCKED
    snapshot.authority.reachable = True
    assert gatekeeper.snapshot().lock_state is LockState.LOCKED
    assert not gatekeeper.snapshot().authority.reachable


def test_public_config_hides_secret():
    gatekeeper = Gatekeeper(make_settings(), client=authority(lambda nonce: {}), clock=lambda: NOW)
    config = gatekeeper.public_config()
    assert config["aci_id"] == "aci-test-001"
    assert config["enabled"] is True
    assert SECRET not in str(config)


@pytest.mark.anyio
async def test_poll_loop_runs_and_stop_keeps_state():
    seen = []

    def respond(nonce):
        seen.append(nonce)
        return make_assertion(nonce)

    gatekeeper = make_gatekeeper(respond)
    await gatekeeper.start()
    assert gatekeeper.running
    for _ in range(100):
        if len(seen) >= 2:
            break
        await asyncio.sleep(0.01)
    await gatekeeper.stop()

    assert not gatekeeper.running
    assert len(seen) >= 2
    assert len(set(seen)) == len(seen)
    assert gatekeeper.snapshot().lock_state is LockState.UNLOCKED


@pytest.mark.anyio
async def test_failing_polls_from_locked_emit_nothing():
    responses = iter([httpx.Response(503, text="busy"), {"nonce": "bad"}, httpx.Response(503, text="busy")])
    gatekeeper = make_gatekeeper(lambda nonce: next(responses))

    for _ in range(3):
        assert not (await gatekeeper.poll_once()).ok
    assert gatekeeper.snapshot().lock_state is LockState.LOCKED
    assert drain(gatekeeper.events) == []


@pytest.mark.anyio
async def test_poll_cadence_includes_request_time():
    loop = asyncio.get_running_loop()
    started = []

    async def respond(nonce):
        started.append(loop.time())
        await asyncio.sleep(0.1)
        return make_assertion(nonce)

    gatekeeper = make_gatekeeper(respond, poll_interval_ms=200)
    await gatekeeper.start()
    for _ in range(200):
        if len(started) >= 3:
            break
        await asyncio.sleep(0.01)
    await gatekeeper.stop()

    gaps = [later - earlier for earlier, later in zip(started, started[1:3])]
    assert len(gaps) == 2
    # a sleep of the full interval after each poll would space requests 0.3s apart
    assert all(0.15 < gap < 0.27 for gap in gaps)
