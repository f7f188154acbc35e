"""FastAPI REST API — acts as a local monitoring host.

Endpoints:
    GET  /health       — Server status
    GET  /temperature  — Coolant temperature (runs the host update probe)
    POST /commands     — Send a hex command to the controller
    POST /pwm-sync     — Send the PWM sync enable command

Security:
    - Localhost-only by default (bind 127.0.0.1)
    - Optional token auth via --token flag (X-API-Token header)
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from gaii.__version__ import __version__
from gaii.commands import PWM_SYNC_ENABLE_REPORT, encode_command
from gaii.exceptions import InvalidEncoding, SendError
from gaii.plugin import GaiiPlugin

log = logging.getLogger(__name__)

app = FastAPI(title="GA II coolant monitor", version=__version__)

# ── Shared plugin instance (set by CLI serve command) ─────────────────

_plugin: Optional[GaiiPlugin] = None


def configure_plugin(plugin: Optional[GaiiPlugin]) -> None:
    """Attach the running plugin.  Called by CLI serve command."""
    global _plugin  # noqa: PLW0603
    _plugin = plugin


# ── Token auth middleware (optional, enabled via --token) ─────────────

_api_token: str | None = None


def configure_auth(token: str | None) -> None:
    """Set the API token. Called by CLI serve command."""
    global _api_token  # noqa: PLW0603
    _api_token = token


@app.middleware("http")
async def check_token(request: Request, call_next):
    """Reject requests without valid token (if token is configured)."""
    if _api_token and request.url.path != "/health":
        if request.headers.get("X-API-Token") != _api_token:
            return JSONResponse(status_code=401, content={"detail": "Invalid token"})
    return await call_next(request)


# ── Pydantic models ──────────────────────────────────────────────────

class TemperatureResponse(BaseModel):
    value: Optional[float]
    running: bool


class CommandRequest(BaseModel):
    hex: str


class CommandResponse(BaseModel):
    sent: bool


# ── Helpers ───────────────────────────────────────────────────────────

def _require_plugin() -> GaiiPlugin:
    if _plugin is None or _plugin.channel is None:
        raise HTTPException(status_code=503, detail="Cooler plugin not loaded")
    return _plugin


def _send(plugin: GaiiPlugin, report: bytes) -> CommandResponse:
    err: Optional[SendError] = plugin.channel.try_send(report)
    if err is not None:
        raise HTTPException(status_code=502, detail=f"Send failed: {err}")
    return CommandResponse(sent=True)


# ── Endpoints ────────────────────────────────────────────────────────

@app.get("/health")
def health() -> dict:
    """Health check (always accessible, no auth required)."""
    return {"status": "ok", "version": __version__}


@app.get("/temperature")
def temperature() -> TemperatureResponse:
    """Current coolant temperature; null while the cooler is unavailable."""
    plugin = _require_plugin()
    plugin.update()
    sensor = plugin.sensor
    if sensor is None:
        return TemperatureResponse(value=None, running=False)
    return TemperatureResponse(value=sensor.value, running=sensor.is_running)


@app.post("/commands")
def send_command(body: CommandRequest) -> CommandResponse:
    """Encode and send one command report."""
    plugin = _require_plugin()
    try:
        report = encode_command(body.hex)
    except InvalidEncoding as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _send(plugin, report)


@app.post("/pwm-sync")
def pwm_sync() -> CommandResponse:
    """Send the PWM sync enable command."""
    return _send(_require_plugin(), PWM_SYNC_ENABLE_REPORT)
