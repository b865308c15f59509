# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Catalog Records — Typed values shared by parser, reconciler, writer and storage.

Storage rows (prompt_catalog/storage/models.py) are converted to and from these
plain dataclasses at the repository boundary, so reconciliation never touches
an ORM session.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional


class Phase(str, Enum):
    """The five ADDIE lifecycle stages."""
    ANALYSIS = "Analysis"
    DESIGN = "Design"
    DEVELOPMENT = "Development"
    IMPLEMENTATION = "Implementation"
    EVALUATION = "Evaluation"

    @classmethod
    def parse(cls, value: str) -> "Phase":
        """Case-insensitive lookup; raises ValueError for anything else."""
        normalized = value.strip().lower()
        for phase in cls:
            if phase.value.lower() == normalized:
                return phase
        raise ValueError(f"unknown phase {value!r}")


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ARCHIVED = "ARCHIVED"


class Action(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    NONE = "NONE"
    ARCHIVED = "ARCHIVED"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class CandidateRecord:
    """One validated row of an uploaded batch."""

    prompt_id: str
    addie_phase: Phase
    prompt_name: str
    prompt_text: str
    sub_category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    prerequisites: Optional[str] = None
    expected_output: Optional[str] = None
    version_notes: Optional[str] = None
    author: Optional[str] = None
    created_date: Optional[date] = None
    embedding: Optional[List[float]] = None
    row: Optional[int] = None


@dataclass
class PromptRecord:
    """Current state of one prompt (one row of the ``prompts`` table)."""

    prompt_id: str
    addie_phase: Phase
    prompt_name: str
    prompt_text: str
    version: int
    last_modified_date: datetime
    is_active: bool = True
    sub_category: Optional[str] = None
    tags: List[str] = field(default_factory=list)
    prerequisites: Optional[str] = None
    expected_output: Optional[str] = None
    version_notes: Optional[str] = None
    author: Optional[str] = None
    created_date: Optional[date] = None
    usage_count: Optional[int] = None
    avg_rating: Optional[float] = None
    embedding: Optional[List[float]] = None


@dataclass
class HistoryEntry:
    """One immutable version transition (one row of ``prompt_history``)."""

    prompt_id: str
    version: int
    addie_phase: Phase
    prompt_text: str
    change_type: ChangeType
    changed_by: Optional[str] = None
    changed_date: datetime = field(default_factory=utcnow)
    version_notes: Optional[str] = None
    previous_version: Optional[int] = None
    history_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class UsageEvent:
    """One usage / feedback event (one row of ``prompt_usage``)."""

    prompt_id: str
    user_email: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)
    addie_phase_context: Optional[str] = None
    course_context: Optional[str] = None
    feedback_rating: Optional[int] = None
    feedback_text: Optional[str] = None
    generation_successful: bool = True
    usage_id: str = field(default_factory=lambda: str(uuid.uuid4()))


@dataclass
class UsageTotals:
    """Derived usage aggregates of a prompt after a usage event is applied."""

    usage_count: int
    avg_rating: Optional[float] = None
