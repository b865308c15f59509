# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Prompts API — Read access to current state and version history.
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Query, Request

from prompt_catalog.api.errors import InvalidPhaseAPIError, PromptNotFoundError
from prompt_catalog.api.schemas import HistoryOut, PromptOut
from prompt_catalog.protocols.records import Phase

router = APIRouter(prefix="/api/prompts", tags=["prompts"])


def parse_phase(value: Optional[str]) -> Optional[Phase]:
    if not value:
        return None
    try:
        return Phase.parse(value)
    except ValueError:
        raise InvalidPhaseAPIError(value)


@router.get("", response_model=List[PromptOut])
async def list_prompts(
    request: Request,
    phase: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
    offset: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
):
    repo = request.app.state.repo
    records = await repo.list_prompts(
        phase=parse_phase(phase),
        active_only=not include_inactive,
        offset=offset,
        limit=limit,
    )
    return [PromptOut.from_record(r) for r in records]


@router.get("/{prompt_id}", response_model=PromptOut)
async def get_prompt(prompt_id: str, request: Request):
    record = await request.app.state.repo.get_prompt(prompt_id)
    if record is None:
        raise PromptNotFoundError(prompt_id)
    return PromptOut.from_record(record)


@router.get("/{prompt_id}/history", response_model=List[HistoryOut])
async def get_history(prompt_id: str, request: Request):
    """All versions of a prompt, oldest first."""
    entries = await request.app.state.repo.list_history(prompt_id)
    if not entries:
        raise PromptNotFoundError(prompt_id)
    return [HistoryOut.from_entry(e) for e in entries]
