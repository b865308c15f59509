# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Alerts API — Current health-monitor windows and alert state.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from prompt_catalog.api.errors import ServiceUnavailableAPIError

router = APIRouter(prefix="/api", tags=["alerts"])


@router.get("/alerts")
async def get_alerts(request: Request):
    monitor = getattr(request.app.state, "health_monitor", None)
    if monitor is None:
        raise ServiceUnavailableAPIError("health monitor is disabled")
    return {"policies": await monitor.alert_states()}
