# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Retrieval Agent Webhook — Ranked prompt lookup for the conversational agent.

Request:  {"phase": "Design", "query": "learning objectives", "limit": 5,
           "usage_event": {"prompt_id": "...", "feedback_rating": 4}}
Response: {"prompts": [...ranked active prompts...], "total": N, "usage": {...}}

The phase is validated first; the usage event, when present, is then recorded
before the search so the returned aggregates already include it.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Request

from prompt_catalog.api.prompts import parse_phase
from prompt_catalog.api.schemas import (
    PromptOut,
    RankedPromptOut,
    UsageResponse,
    WebhookRequest,
    WebhookResponse,
)

logger = logging.getLogger("catalog.api.webhook")

router = APIRouter(prefix="/api", tags=["webhook"])


@router.post("/webhook", response_model=WebhookResponse)
async def agent_webhook(body: WebhookRequest, request: Request):
    phase = parse_phase(body.phase)

    usage = None
    if body.usage_event is not None:
        result = await request.app.state.usage_recorder.record(body.usage_event.to_event())
        usage = UsageResponse(**result.to_dict())

    ranked = await request.app.state.ranker.search(
        phase=phase,
        query=body.query,
        limit=body.limit,
    )
    prompts = [
        RankedPromptOut(**PromptOut.from_record(r.record).model_dump(), score=r.score)
        for r in ranked
    ]
    return WebhookResponse(prompts=prompts, total=len(prompts), usage=usage)
