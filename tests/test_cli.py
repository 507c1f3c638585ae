from __future__ import annotations

import base64
import json

from typer.testing import CliRunner

from flygate_aci.apps.cli.main import app
from flygate_aci.services.crypto.primitives import canonical_handshake_payload, verify_signature

runner = CliRunner()


def test_keygen_then_sign(tmp_path):
    result = runner.invoke(app, ["device", "keygen", "--out", str(tmp_path), "--kind", "p256"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / "device.key").exists()
    pem = (tmp_path / "device.pub").read_text(encoding="utf-8")

    result = runner.invoke(
        app,
        ["device", "sign", "--device-id", "Pad-1", "--nonce", "abc", "--key", str(tmp_path / "device.key"), "--ts", "1700000000"],
    )
    assert result.exit_code == 0, result.output
    body = json.loads(result.output)
    assert body["payload"] == {"nonce": "abc", "ts": 1700000000, "device_id": "Pad-1"}
    data = canonical_handshake_payload(nonce="abc", ts=1700000000, device_id="Pad-1")
    assert verify_signature(pem, body["signature_b64"], data)
    assert base64.b64decode(body["signature_b64"])


def test_keygen_rejects_unknown_kind(tmp_path):
    result = runner.invoke(app, ["device", "keygen", "--out", str(tmp_path), "--kind", "dsa"])
    assert result.exit_code != 0
    assert not (tmp_path / "device.key").exists()
