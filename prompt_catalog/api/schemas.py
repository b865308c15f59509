# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
API Request/Response Schemas — Pydantic models for the catalog HTTP API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from prompt_catalog.protocols.records import HistoryEntry, PromptRecord, UsageEvent


# ── Usage ─────────────────────────────────────────────────────


class UsageEventRequest(BaseModel):
    """Request body for POST /api/usage (and the webhook's usage_event)."""
    prompt_id: str = Field(..., min_length=1)
    user_email: Optional[str] = None
    timestamp: Optional[datetime] = Field(None, description="Defaults to server time")
    addie_phase_context: Optional[str] = None
    course_context: Optional[str] = None
    feedback_rating: Optional[int] = Field(None, ge=1, le=5)
    feedback_text: Optional[str] = None
    generation_successful: bool = True

    def to_event(self) -> UsageEvent:
        data = self.model_dump(exclude_none=True)
        return UsageEvent(**data)


class UsageResponse(BaseModel):
    usage_id: str
    prompt_id: str
    counters_updated: bool
    usage_count: Optional[int] = None
    avg_rating: Optional[float] = None
    warning: Optional[str] = None


# ── Catalog ───────────────────────────────────────────────────


class PromptOut(BaseModel):
    prompt_id: str
    addie_phase: str
    sub_category: Optional[str] = None
    prompt_name: str
    prompt_text: str
    tags: List[str] = Field(default_factory=list)
    prerequisites: Optional[str] = None
    expected_output: Optional[str] = None
    version: int
    version_notes: Optional[str] = None
    author: Optional[str] = None
    created_date: Optional[date] = None
    last_modified_date: datetime
    is_active: bool
    usage_count: Optional[int] = None
    avg_rating: Optional[float] = None

    @classmethod
    def from_record(cls, record: PromptRecord) -> "PromptOut":
        return cls(
            prompt_id=record.prompt_id,
            addie_phase=record.addie_phase.value,
            sub_category=record.sub_category,
            prompt_name=record.prompt_name,
            prompt_text=record.prompt_text,
            tags=record.tags,
            prerequisites=record.prerequisites,
            expected_output=record.expected_output,
            version=record.version,
            version_notes=record.version_notes,
            author=record.author,
            created_date=record.created_date,
            last_modified_date=record.last_modified_date,
            is_active=record.is_active,
            usage_count=record.usage_count,
            avg_rating=record.avg_rating,
        )


class HistoryOut(BaseModel):
    history_id: str
    prompt_id: str
    version: int
    addie_phase: str
    prompt_text: str
    change_type: str
    changed_by: Optional[str] = None
    changed_date: datetime
    version_notes: Optional[str] = None
    previous_version: Optional[int] = None

    @classmethod
    def from_entry(cls, entry: HistoryEntry) -> "HistoryOut":
        return cls(
            history_id=entry.history_id,
            prompt_id=entry.prompt_id,
            version=entry.version,
            addie_phase=entry.addie_phase.value,
            prompt_text=entry.prompt_text,
            change_type=entry.change_type.value,
            changed_by=entry.changed_by,
            changed_date=entry.changed_date,
            version_notes=entry.version_notes,
            previous_version=entry.previous_version,
        )


# ── Webhook ───────────────────────────────────────────────────


class WebhookRequest(BaseModel):
    """Request body for POST /api/webhook."""
    phase: Optional[str] = Field(None, description="ADDIE phase filter")
    query: Optional[str] = Field(None, description="Free-text keywords")
    limit: int = Field(default=5, ge=1, le=50)
    usage_event: Optional[UsageEventRequest] = None

    @model_validator(mode="after")
    def _require_phase_or_query(self) -> "WebhookRequest":
        if not (self.phase or (self.query and self.query.strip())):
            raise ValueError("at least one of 'phase' or 'query' is required")
        return self


class RankedPromptOut(PromptOut):
    score: float


class WebhookResponse(BaseModel):
    prompts: List[RankedPromptOut]
    total: int
    usage: Optional[UsageResponse] = None


# ── Ingestion ─────────────────────────────────────────────────


class IngestionResponse(BaseModel):
    batch_id: str
    status: str
    bucket: Optional[str] = None
    object_key: str
    counts: Dict[str, int] = Field(default_factory=dict)
    errors: List[Dict[str, Any]] = Field(default_factory=list)
