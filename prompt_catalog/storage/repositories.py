# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Catalog Repository — Warehouse access for the prompt catalog.

All methods create their own session and commit within it. Every call is
bounded by the warehouse timeout; infrastructure failures surface as
WarehouseUnavailableError so the invocation fails and the trigger redelivers.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from sqlalchemy import func, select, update
from sqlalchemy.exc import (
    IntegrityError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prompt_catalog.core.errors import (
    WarehouseStatementError,
    WarehouseUnavailableError,
    WriteConflictError,
)
from prompt_catalog.pipeline.reconciler import PlanItem
from prompt_catalog.protocols.records import (
    Action,
    ChangeType,
    HistoryEntry,
    Phase,
    PromptRecord,
    UsageEvent,
    UsageTotals,
)
from prompt_catalog.storage.models import (
    IngestionRun,
    PromptHistoryRow,
    PromptRow,
    PromptUsageRow,
)

logger = logging.getLogger("catalog.repository")

T = TypeVar("T")

# Columns a catalog write may touch; usage aggregates are excluded.
CONTENT_COLUMNS = (
    "addie_phase",
    "sub_category",
    "prompt_name",
    "prompt_text",
    "tags",
    "prerequisites",
    "expected_output",
    "version",
    "version_notes",
    "author",
    "created_date",
    "last_modified_date",
    "is_active",
    "embedding",
)


# ── Row ↔ record conversion ───────────────────────────────────


def row_to_record(row: PromptRow) -> PromptRecord:
    return PromptRecord(
        prompt_id=row.prompt_id,
        addie_phase=Phase(row.addie_phase),
        prompt_name=row.prompt_name,
        prompt_text=row.prompt_text,
        version=row.version,
        last_modified_date=row.last_modified_date,
        is_active=row.is_active,
        sub_category=row.sub_category,
        tags=list(row.tags or []),
        prerequisites=row.prerequisites,
        expected_output=row.expected_output,
        version_notes=row.version_notes,
        author=row.author,
        created_date=row.created_date,
        usage_count=row.usage_count,
        avg_rating=row.avg_rating,
        embedding=list(row.embedding) if row.embedding is not None else None,
    )


def _content_values(record: PromptRecord) -> Dict[str, Any]:
    values = {name: getattr(record, name) for name in CONTENT_COLUMNS}
    values["addie_phase"] = record.addie_phase.value
    return values


def _record_to_row(record: PromptRecord) -> PromptRow:
    return PromptRow(prompt_id=record.prompt_id, **_content_values(record))


def _history_to_row(entry: HistoryEntry) -> PromptHistoryRow:
    return PromptHistoryRow(
        history_id=entry.history_id,
        prompt_id=entry.prompt_id,
        version=entry.version,
        addie_phase=entry.addie_phase.value,
        prompt_text=entry.prompt_text,
        changed_by=entry.changed_by,
        changed_date=entry.changed_date,
        change_type=entry.change_type.value,
        version_notes=entry.version_notes,
        previous_version=entry.previous_version,
    )


def _row_to_history(row: PromptHistoryRow) -> HistoryEntry:
    return HistoryEntry(
        history_id=row.history_id,
        prompt_id=row.prompt_id,
        version=row.version,
        addie_phase=Phase(row.addie_phase),
        prompt_text=row.prompt_text,
        changed_by=row.changed_by,
        changed_date=row.changed_date,
        change_type=ChangeType(row.change_type),
        version_notes=row.version_notes,
        previous_version=row.previous_version,
    )


class CatalogRepository:
    """Prompt catalog data access layer."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: float = 30.0,
    ) -> None:
        self._session_factory = session_factory
        self._timeout = timeout

    async def _run(self, operation: str, coro: Awaitable[T]) -> T:
        """Apply the warehouse timeout and map infrastructure errors."""
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            raise WarehouseUnavailableError(
                f"{operation} timed out after {self._timeout}s"
            ) from e
        except (OperationalError, InterfaceError) as e:
            raise WarehouseUnavailableError(f"{operation} failed: {e}") from e
        except SQLAlchemyError as e:
            raise WarehouseStatementError(f"{operation} rejected: {e}") from e

    # ── Current state ─────────────────────────────────────────

    async def load_snapshot(self) -> Dict[str, PromptRecord]:
        """One consistent read of the whole current-state table."""
        async def _load() -> Dict[str, PromptRecord]:
            async with self._session_factory() as session:
                result = await session.execute(select(PromptRow))
                return {row.prompt_id: row_to_record(row) for row in result.scalars()}

        return await self._run("load_snapshot", _load())

    async def get_prompt(self, prompt_id: str) -> Optional[PromptRecord]:
        async def _get() -> Optional[PromptRecord]:
            async with self._session_factory() as session:
                row = await session.get(PromptRow, prompt_id, populate_existing=True)
                return row_to_record(row) if row else None

        return await self._run("get_prompt", _get())

    async def list_prompts(
        self,
        phase: Optional[Phase] = None,
        active_only: bool = True,
        offset: int = 0,
        limit: Optional[int] = 50,
    ) -> List[PromptRecord]:
        async def _list() -> List[PromptRecord]:
            async with self._session_factory() as session:
                stmt = select(PromptRow).order_by(PromptRow.prompt_id).offset(offset)
                if limit is not None:
                    stmt = stmt.limit(limit)
                if phase is not None:
                    stmt = stmt.where(PromptRow.addie_phase == phase.value)
                if active_only:
                    stmt = stmt.where(PromptRow.is_active.is_(True))
                result = await session.execute(stmt)
                return [row_to_record(row) for row in result.scalars()]

        return await self._run("list_prompts", _list())

    # ── Catalog writes ────────────────────────────────────────

    async def commit_change(self, item: PlanItem) -> None:
        """
        Apply one plan item: prompt upsert + history append in one transaction.

        UPDATE / ARCHIVED are conditional on the version the plan was computed
        from; INSERT relies on the primary key. Either collision raises
        WriteConflictError and nothing is written.
        """
        async def _commit() -> None:
            async with self._session_factory() as session:
                try:
                    async with session.begin():
                        if item.action is Action.INSERT:
                            session.add(_record_to_row(item.record))
                        else:
                            result = await session.execute(
                                update(PromptRow)
                                .where(PromptRow.prompt_id == item.prompt_id)
                                .where(PromptRow.version == item.expected_version)
                                .values(**_content_values(item.record))
                            )
                            if result.rowcount != 1:
                                raise WriteConflictError(item.prompt_id, item.expected_version)
                        session.add(_history_to_row(item.history_entry))
                except IntegrityError as e:
                    raise WriteConflictError(item.prompt_id, item.expected_version) from e

        await self._run("commit_change", _commit())

    async def list_history(self, prompt_id: str) -> List[HistoryEntry]:
        async def _list() -> List[HistoryEntry]:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(PromptHistoryRow)
                    .where(PromptHistoryRow.prompt_id == prompt_id)
                    .order_by(PromptHistoryRow.version)
                )
                return [_row_to_history(row) for row in result.scalars()]

        return await self._run("list_history", _list())

    # ── Usage ─────────────────────────────────────────────────

    async def record_usage(self, event: UsageEvent) -> Optional[UsageTotals]:
        """
        Append a usage event and refresh the prompt's derived aggregates.

        Returns None when the prompt does not exist; the event is kept anyway.
        """
        async def _record() -> Optional[UsageTotals]:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(PromptUsageRow(
                        usage_id=event.usage_id,
                        prompt_id=event.prompt_id,
                        user_email=event.user_email,
                        timestamp=event.timestamp,
                        addie_phase_context=event.addie_phase_context,
                        course_context=event.course_context,
                        feedback_rating=event.feedback_rating,
                        feedback_text=event.feedback_text,
                        generation_successful=event.generation_successful,
                    ))
                    await session.flush()

                    values: Dict[str, Any] = {
                        "usage_count": func.coalesce(PromptRow.usage_count, 0) + 1,
                    }
                    if event.feedback_rating is not None:
                        values["avg_rating"] = (
                            select(func.avg(PromptUsageRow.feedback_rating))
                            .where(PromptUsageRow.prompt_id == event.prompt_id)
                            .where(PromptUsageRow.feedback_rating.is_not(None))
                            .scalar_subquery()
                        )
                    result = await session.execute(
                        update(PromptRow)
                        .where(PromptRow.prompt_id == event.prompt_id)
                        .values(**values)
                        .returning(PromptRow.usage_count, PromptRow.avg_rating)
                    )
                    row = result.first()
                    if row is None:
                        return None
                    avg = float(row.avg_rating) if row.avg_rating is not None else None
                    return UsageTotals(usage_count=row.usage_count, avg_rating=avg)

        return await self._run("record_usage", _record())

    # ── Ingestion audit ───────────────────────────────────────

    async def save_run(self, run: IngestionRun) -> IngestionRun:
        """Persist an ingestion audit row."""
        async def _save() -> IngestionRun:
            async with self._session_factory() as session:
                session.add(run)
                await session.commit()
                await session.refresh(run)
                return run

        return await self._run("save_run", _save())
