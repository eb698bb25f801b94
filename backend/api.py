"""
Hedgebase API Endpoints
"""

import os
import sys

from fastapi import APIRouter, HTTPException, Query
from loguru import logger
from pydantic import BaseModel

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from core.hedgebase.controller import HabitatController

router = APIRouter()

# Habitat controller (set by app.py during startup)
controller: HabitatController | None = None


class HeaterRequest(BaseModel):
    """Request body for the manual heat lamp toggle."""
    on: bool


def _require_controller() -> HabitatController:
    if controller is None or not controller.running:
        raise HTTPException(status_code=503, detail="Habitat controller not running")
    return controller


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Hedgebase",
        "version": "0.1.0",
        "controller_running": controller is not None and controller.running,
    }


@router.get("/api/status")
async def get_status():
    """Current temperature, zone, heater, connection and display state."""
    return _require_controller().status()


@router.post("/api/heater")
async def set_heater(request: HeaterRequest):
    """Manually switch the heat lamp.

    Only allowed while automatic control is idle (sensor connected and the
    temperature within the comfort range).
    """
    ctrl = _require_controller()
    if not ctrl.view.toggle_enabled.value:
        raise HTTPException(
            status_code=409,
            detail="Heater toggle disabled outside the comfort range or without a sensor",
        )

    logger.info(f"Manual heat lamp request: {'on' if request.on else 'off'}")
    ctrl.request_heater(request.on)
    return {"success": True, "requested": request.on}


@router.post("/api/telemetry/resend")
async def resend_telemetry():
    """Write the next reading to the store regardless of the debounce window."""
    ctrl = _require_controller()
    ctrl.request_resend()
    return {"success": True}


@router.get("/api/events")
async def get_events(hours: int = Query(24, ge=1, le=168)):
    """Recent control events (heater transitions, alerts, commands)."""
    ctrl = _require_controller()
    events = ctrl.history.get_control_events(hours=hours)
    return {"events": events, "count": len(events)}
