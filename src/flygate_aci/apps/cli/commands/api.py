# src/flygate_aci/apps/cli/commands/api.py
import logging
import os

import typer
import uvicorn

from flygate_aci.config.settings import load_settings

app = typer.Typer(help="HTTP API of the ACI console")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", "--host"),
    port: int = typer.Option(5000, "--port"),
    reload: bool = typer.Option(False, "--reload", help="auto-reload for development"),
    config: str = typer.Option(None, "--config", help="YAML settings file; defaults to $ACI_CONFIG"),
):
    """Run the ACI HTTP API (FastAPI)."""
    if config:
        os.environ["ACI_CONFIG"] = config
    settings = load_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not settings.gatekeeper_enabled:
        typer.echo("warning: FLYGATE_ACI_SHARED_SECRET is not set, the console will stay LOCKED", err=True)
    uvicorn.run("flygate_aci.apps.api.server:create_app", factory=True, host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
