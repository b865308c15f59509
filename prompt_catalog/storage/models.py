# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Prompt Catalog Data Models — Warehouse tables.

  prompts          — current state, one row per prompt_id
  prompt_history   — append-only version transitions
  prompt_usage     — append-only usage / feedback events
  ingestion_runs   — append-only audit of every pipeline invocation

History and usage are partitioned by timestamp in production DDL;
create_all() builds them unpartitioned for development.
"""

from __future__ import annotations

import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    SmallInteger,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase

PHASE_VALUES = ("Analysis", "Design", "Development", "Implementation", "Evaluation")
CHANGE_TYPE_VALUES = ("INSERT", "UPDATE", "DELETE", "ARCHIVED")


def _in_list(column: str, values: tuple) -> str:
    return f"{column} IN (" + ", ".join(f"'{v}'" for v in values) + ")"


class Base(DeclarativeBase):
    """Shared declarative base for all catalog models."""
    pass


# ── Current state ─────────────────────────────────────────────


class PromptRow(Base):
    """
    Latest version of each prompt.

    Content columns are written only by the Catalog Writer;
    usage_count / avg_rating only by the Usage Recorder.
    """

    __tablename__ = "prompts"

    prompt_id = Column(String(128), primary_key=True)
    addie_phase = Column(String(32), nullable=False, index=True)
    sub_category = Column(String(256), nullable=True)
    prompt_name = Column(String(512), nullable=False)
    prompt_text = Column(Text, nullable=False)
    tags = Column(ARRAY(String), nullable=False, default=list)
    prerequisites = Column(Text, nullable=True)
    expected_output = Column(Text, nullable=True)
    version = Column(Integer, nullable=False)
    version_notes = Column(Text, nullable=True)
    author = Column(String(256), nullable=True)
    created_date = Column(Date, nullable=True)
    last_modified_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    usage_count = Column(Integer, nullable=True)
    avg_rating = Column(Float, nullable=True)
    embedding = Column(ARRAY(Float), nullable=True)

    __table_args__ = (
        CheckConstraint(_in_list("addie_phase", PHASE_VALUES), name="ck_prompts_phase"),
        CheckConstraint("version >= 1", name="ck_prompts_version"),
        Index("idx_prompts_phase_active", "addie_phase", "is_active"),
    )

    def __repr__(self):
        return f"<Prompt {self.prompt_id} v{self.version}>"


# ── History ───────────────────────────────────────────────────


class PromptHistoryRow(Base):
    """Never updated or deleted once written."""

    __tablename__ = "prompt_history"

    history_id = Column(String(64), primary_key=True)
    prompt_id = Column(String(128), nullable=False)
    version = Column(Integer, nullable=False)
    addie_phase = Column(String(32), nullable=False)
    prompt_text = Column(Text, nullable=False)
    changed_by = Column(String(256), nullable=True)
    changed_date = Column(DateTime(timezone=True), nullable=False)
    change_type = Column(String(16), nullable=False)
    version_notes = Column(Text, nullable=True)
    previous_version = Column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("prompt_id", "version", name="uq_prompt_history_prompt_version"),
        CheckConstraint(
            _in_list("change_type", CHANGE_TYPE_VALUES), name="ck_prompt_history_change_type",
        ),
        Index("idx_prompt_history_changed_date", "changed_date"),
    )


# ── Analytics ─────────────────────────────────────────────────


class PromptUsageRow(Base):
    __tablename__ = "prompt_usage"

    usage_id = Column(String(64), primary_key=True)
    prompt_id = Column(String(128), nullable=False, index=True)
    user_email = Column(String(320), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    addie_phase_context = Column(String(32), nullable=True)
    course_context = Column(String(512), nullable=True)
    feedback_rating = Column(SmallInteger, nullable=True)
    feedback_text = Column(Text, nullable=True)
    generation_successful = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            "feedback_rating IS NULL OR feedback_rating BETWEEN 1 AND 5",
            name="ck_prompt_usage_rating",
        ),
        Index("idx_prompt_usage_timestamp", "timestamp"),
    )


# ── Ingestion audit ───────────────────────────────────────────


class IngestionRun(Base):
    """One row per pipeline invocation, including rejected and failed ones."""

    __tablename__ = "ingestion_runs"

    run_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bucket = Column(String(256), nullable=True)
    object_key = Column(String(1024), nullable=False)
    etag = Column(String(128), nullable=True)
    uploaded_by = Column(String(256), nullable=True)
    status = Column(String(16), nullable=False)  # applied / partial / rejected / failed
    counts = Column(JSONB, nullable=False, default=dict)
    errors = Column(JSONB, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_ingestion_runs_object", "bucket", "object_key"),
    )
