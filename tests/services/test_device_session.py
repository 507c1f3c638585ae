from __future__ import annotations

import base64

import pytest

from flygate_aci.services.aci import DeviceSession, HandshakePayload
from flygate_aci.services.crypto.keys import generate_device_key
from flygate_aci.services.crypto.primitives import sign_bytes
from flygate_aci.services.enums import DutyState, HandshakeError
from flygate_aci.services.trust import TrustRegistry

DEVICE_ID = "FlyGateAgent-Test-01"


def _signed(key, nonce: str, ts: float, device_id: str = DEVICE_ID):
    payload = HandshakePayload(nonce=nonce, ts=int(ts), device_id=device_id)
    signature = base64.b64encode(sign_bytes(key, payload.canonical_bytes())).decode("ascii")
    return payload, signature


@pytest.fixture()
def registry(device_pem):
    registry = TrustRegistry()
    registry.upsert(DEVICE_ID, "Test iPad", device_pem)
    return registry


@pytest.fixture()
def session(registry, clock):
    return DeviceSession(registry=registry, nonce_ttl_seconds=30, clock=clock)


def test_initial_state_is_on_duty_without_device(session):
    status = session.get_status()
    assert status.duty_state is DutyState.ON_DUTY
    assert status.attached_device_id is None
    assert status.as_dict()["trustedDeviceAttached"] is False
    assert not session.has_pending_nonce()


def test_successful_handshake_enters_flight_mode(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    clock.advance(10)
    result = session.verify_handshake(*_signed(device_key, nonce, clock()))

    assert result.ok
    assert result.value.device_name == "Test iPad"
    status = session.get_status()
    assert status.duty_state is DutyState.FLIGHT_MODE
    assert status.attached_device_id == DEVICE_ID
    assert status.last_handshake_ok and status.last_error is None
    assert status.last_transition_epoch == int(clock() * 1000)
    duty_state, apps = session.get_capabilities()
    assert duty_state is DutyState.FLIGHT_MODE
    assert [app.app_id for app in apps] == status.active_app_ids


def test_replayed_handshake_is_rejected(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    clock.advance(10)
    request = _signed(device_key, nonce, clock())
    assert session.verify_handshake(*request).ok

    clock.advance(1)
    replay = session.verify_handshake(*request)
    assert not replay.ok
    assert replay.reason is HandshakeError.NO_NONCE_ISSUED


def test_nonce_valid_at_exact_ttl(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    clock.advance(30)
    assert session.verify_handshake(*_signed(device_key, nonce, clock())).ok


def test_expired_nonce_is_consumed(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    clock.advance(31)
    result = session.verify_handshake(*_signed(device_key, nonce, clock()))
    assert result.reason is HandshakeError.NONCE_EXPIRED
    assert not session.has_pending_nonce()
    assert session.get_status().last_error == "Nonce expired"


def test_wrong_nonce_keeps_pending_nonce(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    result = session.verify_handshake(*_signed(device_key, "not-" + nonce, clock()))
    assert result.reason is HandshakeError.INVALID_NONCE
    assert session.has_pending_nonce()
    assert session.verify_handshake(*_signed(device_key, nonce, clock())).ok


def test_new_nonce_replaces_previous(session, device_key, clock):
    first = session.issue_nonce(DEVICE_ID).value.nonce
    second = session.issue_nonce(DEVICE_ID).value.nonce
    assert first != second
    assert session.verify_handshake(*_signed(device_key, first, clock())).reason is HandshakeError.INVALID_NONCE


def test_bound_nonce_rejects_other_device(session, registry, clock):
    other_key = generate_device_key()
    registry.upsert("Other-01", "Other", None)
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    result = session.verify_handshake(*_signed(other_key, nonce, clock(), device_id="Other-01"))
    assert result.reason is HandshakeError.DEVICE_MISMATCH
    assert session.get_status().duty_state is DutyState.ON_DUTY


def test_stale_device_timestamp(session, device_key, clock):
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    result = session.verify_handshake(*_signed(device_key, nonce, clock() - 120))
    assert result.reason is HandshakeError.STALE_TIMESTAMP


def test_unbound_nonce_with_unknown_device_is_untrusted(session, device_key, clock):
    nonce = session.issue_nonce().value.nonce
    result = session.verify_handshake(*_signed(device_key, nonce, clock(), device_id="Nobody"))
    assert result.reason is HandshakeError.UNTRUSTED_DEVICE


def test_bad_signature_is_rejected(session, clock):
    intruder = generate_device_key()
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    result = session.verify_handshake(*_signed(intruder, nonce, clock()))
    assert result.reason is HandshakeError.BAD_SIGNATURE
    status = session.get_status()
    assert status.duty_state is DutyState.ON_DUTY
    assert not status.last_handshake_ok
    assert status.last_error == "Signature verification failed"


def test_keyless_seed_device_skips_signature(session, clock):
    nonce = session.issue_nonce("FlyGateAgent-iPad-0001").value.nonce
    payload = HandshakePayload(nonce=nonce, ts=int(clock()), device_id="FlyGateAgent-iPad-0001")
    assert session.verify_handshake(payload, "anything").ok


def test_unknown_device_cannot_get_nonce(session):
    result = session.issue_nonce("Nobody")
    assert result.reason is HandshakeError.UNKNOWN_DEVICE
    assert not session.has_pending_nonce()


def test_attach_issues_bound_nonce_without_changing_state(session):
    grant = session.on_device_attached(DEVICE_ID)
    assert grant.ok and grant.value.device_id == DEVICE_ID
    assert session.has_pending_nonce()
    assert session.get_status().duty_state is DutyState.ON_DUTY


def test_detach_returns_to_on_duty_and_is_idempotent(session, clock):
    assert session.simulate_attach(DEVICE_ID).ok
    clock.advance(5)
    first = session.on_device_detached()
    assert first.duty_state is DutyState.ON_DUTY
    assert first.attached_device_id is None
    clock.advance(5)
    second = session.on_device_detached()
    assert second.last_transition_epoch == first.last_transition_epoch


def test_attachment_matches_flight_mode(session, device_key, clock):
    def consistent():
        status = session.get_status()
        return (status.attached_device_id is not None) == (status.duty_state is DutyState.FLIGHT_MODE)

    assert consistent()
    nonce = session.issue_nonce(DEVICE_ID).value.nonce
    session.verify_handshake(*_signed(device_key, nonce, clock()))
    assert consistent()
    session.on_device_detached()
    assert consistent()
    session.simulate_attach(DEVICE_ID)
    assert consistent()


def test_simulate_attach_unknown_device(session):
    assert session.simulate_attach("Nobody").reason is HandshakeError.UNKNOWN_DEVICE
