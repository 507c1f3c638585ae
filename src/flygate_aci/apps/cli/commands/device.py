"""Companion-device commands: key provisioning and the trust handshake."""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import typer

from flygate_aci.services.aci.device import build_handshake_request
from flygate_aci.services.crypto.keys import generate_device_key, load_private_key, public_key_pem, write_pem, write_private_key

app = typer.Typer(help="Act as a FlyGate companion device")


@app.command("keygen")
def keygen(
    out: Path = typer.Option(Path("keys"), "--out", help="directory for device.key / device.pub"),
    kind: str = typer.Option("ed25519", "--kind", help="ed25519 | p256 | rsa"),
):
    """Generate a device key pair; register device.pub with the console."""
    try:
        key = generate_device_key(kind)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    write_private_key(out / "device.key", key)
    write_pem(out / "device.pub", public_key_pem(key))
    typer.echo(f"wrote {out / 'device.key'} and {out / 'device.pub'}")


@app.command("sign")
def sign(
    device_id: str = typer.Option(..., "--device-id"),
    nonce: str = typer.Option(..., "--nonce"),
    key: Path = typer.Option(..., "--key", exists=True, dir_okay=False),
    ts: int = typer.Option(None, "--ts", help="unix seconds; defaults to now"),
):
    """Print a signed handshake body for a nonce obtained out of band."""
    body = build_handshake_request(load_private_key(key), nonce=nonce, device_id=device_id, ts=ts)
    typer.echo(json.dumps(body, indent=2))


@app.command("handshake")
def handshake(
    device_id: str = typer.Option(..., "--device-id"),
    key: Path = typer.Option(..., "--key", exists=True, dir_okay=False),
    base_url: str = typer.Option("http://127.0.0.1:5000", "--base-url"),
    timeout: float = typer.Option(5.0, "--timeout"),
):
    """Fetch a nonce, sign it and complete the handshake against a running console."""
    private_key = load_private_key(key)
    try:
        with httpx.Client(base_url=base_url, timeout=timeout) as client:
            issued = client.get("/api/aci/nonce", params={"device_id": device_id})
            if issued.status_code != 200:
                typer.echo(f"nonce refused ({issued.status_code}): {issued.text}", err=True)
                raise typer.Exit(1)
            body = build_handshake_request(private_key, nonce=issued.json()["nonce"], device_id=device_id)
            result = client.post("/api/aci/handshake", json=body)
    except httpx.RequestError as exc:
        typer.echo(f"console unreachable: {exc}", err=True)
        raise typer.Exit(2)
    typer.echo(json.dumps(result.json(), indent=2, ensure_ascii=False))
    if result.status_code != 200:
        raise typer.Exit(1)
