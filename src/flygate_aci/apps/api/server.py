# src/flygate_aci/apps/api/server.py
from __future__ import annotations

from contextlib import asynccontextmanager
import time

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flygate_aci.apps.api import aci, gatekeeper_api
from flygate_aci.apps.api.errors import install_error_handlers
from flygate_aci.build_info import BUILD_INFO
from flygate_aci.config.settings import AciSettings, load_settings
from flygate_aci.services.context import AciContext, build_context
from flygate_aci.services.gatekeeper.client import FlyGateClient


def create_app(
    settings: AciSettings | None = None,
    *,
    client: FlyGateClient | None = None,
    context: AciContext | None = None,
) -> FastAPI:
    """
    Build the ACI API.  The context (registry, device session, gatekeeper,
    broadcaster) is created here and published on ``app.state.ctx``.
    """
    if context is None:
        context = build_context(settings or load_settings(), client=client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await context.start()
        try:
            yield
        finally:
            await context.stop()

    app = FastAPI(title="FlyGate ACI API", lifespan=lifespan, version=BUILD_INFO.version)
    app.state.ctx = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],  # console dev server
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-ACI-Token", "Authorization"],
        allow_credentials=False,
    )
    install_error_handlers(app)

    app.include_router(aci.router, prefix="/api/aci")
    app.include_router(gatekeeper_api.router, prefix="/api/gatekeeper")
    app.include_router(gatekeeper_api.ws_router)

    # --- health endpoints (no auth; used by orchestrators/probes) ---
    @app.get("/health/live")
    async def health_live():
        return {"ok": True, "ts": time.time(), "version": BUILD_INFO.version}

    return app
