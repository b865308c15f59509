# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Usage API — Record a usage / feedback event.
"""

from __future__ import annotations

from fastapi import APIRouter, Request

from prompt_catalog.api.schemas import UsageEventRequest, UsageResponse

router = APIRouter(prefix="/api", tags=["usage"])


@router.post("/usage", response_model=UsageResponse)
async def record_usage(body: UsageEventRequest, request: Request):
    """An unknown prompt_id is accepted; the response carries a warning."""
    result = await request.app.state.usage_recorder.record(body.to_event())
    return result.to_dict()
