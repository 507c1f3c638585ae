import typer

from flygate_aci.apps.cli.commands import api, device

app = typer.Typer(help="FlyGate ACI console tools")
app.add_typer(api.app, name="api")
app.add_typer(device.app, name="device")


if __name__ == "__main__":
    app()
