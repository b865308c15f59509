# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Prompt Catalog Test Fixtures — Shared mocks and helpers for all catalog tests.
"""

from __future__ import annotations

import copy
import csv
import io
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import fakeredis
import fakeredis.aioredis
import pytest

from prompt_catalog.core.errors import WriteConflictError
from prompt_catalog.parsers.batch_validator import BatchValidator
from prompt_catalog.parsers.registry import ParserRegistry
from prompt_catalog.pipeline.catalog_writer import CatalogWriter
from prompt_catalog.pipeline.ingestion import IngestionPipeline
from prompt_catalog.pipeline.reconciler import PlanItem, VersionReconciler
from prompt_catalog.protocols.records import (
    Action,
    ChangeType,
    HistoryEntry,
    Phase,
    PromptRecord,
    UsageEvent,
    UsageTotals,
)
from prompt_catalog.resilience.retry import RetryManager, RetryPolicy
from prompt_catalog.services.notifier import Alert, Notifier

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


# ── Mock Repository ───────────────────────────────────────────


class MockCatalogRepository:
    """
    In-memory mock of CatalogRepository for unit tests.

    commit_change enforces the same version check as the warehouse: INSERT
    collides with an existing prompt_id, UPDATE/ARCHIVED need the expected
    version. ``before_commit`` runs ahead of the check to simulate a
    concurrent writer; ``fail_with`` makes every commit raise.
    """

    def __init__(self):
        self.prompts: Dict[str, PromptRecord] = {}
        self.history: List[HistoryEntry] = []
        self.usage: List[UsageEvent] = []
        self.runs: List[Any] = []
        self.commit_calls: List[PlanItem] = []
        self.before_commit: Optional[Callable[[PlanItem], Awaitable[None]]] = None
        self.fail_with: Optional[Exception] = None
        self.fail_for: Dict[str, Exception] = {}

    def seed(self, record: PromptRecord) -> PromptRecord:
        """Place a prompt with a contiguous INSERT/UPDATE history up to its version."""
        self.prompts[record.prompt_id] = copy.deepcopy(record)
        for v in range(1, record.version + 1):
            self.history.append(HistoryEntry(
                prompt_id=record.prompt_id,
                version=v,
                addie_phase=record.addie_phase,
                prompt_text=record.prompt_text,
                change_type=ChangeType.INSERT if v == 1 else ChangeType.UPDATE,
                changed_by="seed",
                changed_date=T0,
                previous_version=v - 1 if v > 1 else None,
            ))
        return record

    def history_for(self, prompt_id: str) -> List[HistoryEntry]:
        return sorted(
            (h for h in self.history if h.prompt_id == prompt_id), key=lambda h: h.version,
        )

    async def load_snapshot(self) -> Dict[str, PromptRecord]:
        return copy.deepcopy(self.prompts)

    async def get_prompt(self, prompt_id: str) -> Optional[PromptRecord]:
        record = self.prompts.get(prompt_id)
        return copy.deepcopy(record) if record else None

    async def list_prompts(
        self, phase=None, active_only=True, offset=0, limit=50,
    ) -> List[PromptRecord]:
        results = sorted(self.prompts.values(), key=lambda r: r.prompt_id)
        if phase is not None:
            results = [r for r in results if r.addie_phase == phase]
        if active_only:
            results = [r for r in results if r.is_active]
        end = None if limit is None else offset + limit
        return copy.deepcopy(results[offset:end])

    async def commit_change(self, item: PlanItem) -> None:
        self.commit_calls.append(item)
        if self.before_commit is not None:
            await self.before_commit(item)
        if self.fail_with is not None:
            raise self.fail_with
        if item.prompt_id in self.fail_for:
            raise self.fail_for[item.prompt_id]

        current = self.prompts.get(item.prompt_id)
        if item.action is Action.INSERT:
            if current is not None:
                raise WriteConflictError(item.prompt_id, item.expected_version)
            self.prompts[item.prompt_id] = copy.deepcopy(item.record)
        else:
            if current is None or current.version != item.expected_version:
                raise WriteConflictError(item.prompt_id, item.expected_version)
            self.prompts[item.prompt_id] = replace(
                copy.deepcopy(item.record),
                usage_count=current.usage_count,
                avg_rating=current.avg_rating,
            )
        self.history.append(item.history_entry)

    async def list_history(self, prompt_id: str) -> List[HistoryEntry]:
        return self.history_for(prompt_id)

    async def record_usage(self, event: UsageEvent) -> Optional[UsageTotals]:
        self.usage.append(event)
        record = self.prompts.get(event.prompt_id)
        if record is None:
            return None
        record.usage_count = (record.usage_count or 0) + 1
        ratings = [
            e.feedback_rating for e in self.usage
            if e.prompt_id == event.prompt_id and e.feedback_rating is not None
        ]
        if ratings:
            record.avg_rating = sum(ratings) / len(ratings)
        return UsageTotals(usage_count=record.usage_count, avg_rating=record.avg_rating)

    async def save_run(self, run: Any) -> Any:
        self.runs.append(run)
        return run


# ── Monitor / Notifier doubles ────────────────────────────────


class RecordingMonitor:
    """Captures health signals without Redis."""

    def __init__(self):
        self.pipeline: List[bool] = []
        self.warehouse: List[bool] = []

    async def record_pipeline_execution(self, success: bool):
        self.pipeline.append(success)

    async def record_warehouse_write(self, success: bool):
        self.warehouse.append(success)


class RecordingNotifier(Notifier):
    def __init__(self, deliver: bool = True):
        self.sent: List[Alert] = []
        self.deliver = deliver

    async def send(self, alert: Alert) -> bool:
        self.sent.append(alert)
        return self.deliver


class FakeClock:
    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── Builders ──────────────────────────────────────────────────

DEFAULT_COLUMNS = [
    "prompt_id", "addie_phase", "sub_category", "prompt_name", "prompt_text", "tags", "author",
]


def make_csv(rows: List[Dict[str, str]], columns: Optional[List[str]] = None) -> bytes:
    """Render rows as CSV bytes with a header line."""
    columns = columns or DEFAULT_COLUMNS
    buf = io.StringIO()
    writer = csv.writer(buf)
    writer.writerow(columns)
    for row in rows:
        writer.writerow([row.get(c, "") for c in columns])
    return buf.getvalue().encode("utf-8")


def make_prompt(prompt_id: str, **overrides: Any) -> PromptRecord:
    values: Dict[str, Any] = dict(
        prompt_id=prompt_id,
        addie_phase=Phase.DESIGN,
        prompt_name=f"Prompt {prompt_id}",
        prompt_text=f"Text of {prompt_id}",
        version=1,
        last_modified_date=T0,
        sub_category="Objectives",
        tags=["bloom"],
        author="a@example.edu",
    )
    values.update(overrides)
    return PromptRecord(**values)


def batch_row(prompt_id: str, **overrides: str) -> Dict[str, str]:
    """A CSV row matching make_prompt(prompt_id) field for field."""
    row = {
        "prompt_id": prompt_id,
        "addie_phase": "Design",
        "sub_category": "Objectives",
        "prompt_name": f"Prompt {prompt_id}",
        "prompt_text": f"Text of {prompt_id}",
        "tags": "bloom",
        "author": "a@example.edu",
    }
    row.update(overrides)
    return row


def build_pipeline(repo, reconciler=None, monitor=None, landing_store=None, max_attempts=3):
    reconciler = reconciler or VersionReconciler()
    writer = CatalogWriter(
        repo=repo,
        reconciler=reconciler,
        retry=RetryManager(RetryPolicy(max_attempts=max_attempts, backoff_base=0.0)),
        health_monitor=monitor,
    )
    return IngestionPipeline(
        parser_registry=ParserRegistry(),
        validator=BatchValidator(),
        reconciler=reconciler,
        writer=writer,
        repo=repo,
        landing_store=landing_store,
        health_monitor=monitor,
    )


# ── Fixtures ──────────────────────────────────────────────────


@pytest.fixture
def mock_repo() -> MockCatalogRepository:
    """Provide an in-memory mock repository."""
    return MockCatalogRepository()


@pytest.fixture
def monitor() -> RecordingMonitor:
    return RecordingMonitor()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_redis():
    """Provide an isolated FakeRedis async instance."""
    return fakeredis.aioredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def pipeline(mock_repo, monitor) -> IngestionPipeline:
    return build_pipeline(mock_repo, monitor=monitor)
