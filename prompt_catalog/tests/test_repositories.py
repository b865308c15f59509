# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""Tests for CatalogRepository against a mocked async session factory.

The session factory, session and transaction are stand-ins, so these tests
cover the repository's own logic: the version-conditional write, conflict
mapping, the warehouse timeout and error classification.
"""

import asyncio
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import DataError, IntegrityError, OperationalError

from conftest import make_prompt

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
    UsageEvent,
)
from prompt_catalog.storage.models import PromptHistoryRow, PromptRow
from prompt_catalog.storage.repositories import CatalogRepository


class _AsyncContext:
    def __init__(self, value=None):
        self._value = value

    async def __aenter__(self):
        return self._value

    async def __aexit__(self, exc_type, exc, tb):
        return False


class _Transaction:
    """session.begin() stand-in; commit_error is raised on a clean exit."""

    def __init__(self, commit_error=None):
        self._commit_error = commit_error

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None and self._commit_error is not None:
            raise self._commit_error
        return False


def _session(execute=None, commit_error=None):
    session = MagicMock()
    session.execute = execute or AsyncMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.begin = MagicMock(return_value=_Transaction(commit_error))
    return session


def _repo(session, timeout=5.0):
    factory = MagicMock(return_value=_AsyncContext(session))
    return CatalogRepository(factory, timeout=timeout)


def _update_item(expected_version=1):
    return PlanItem(
        prompt_id="p-1",
        action=Action.UPDATE,
        new_version=expected_version + 1,
        expected_version=expected_version,
        record=make_prompt("p-1", version=expected_version + 1, prompt_text="Revised"),
        history_entry=HistoryEntry(
            prompt_id="p-1",
            version=expected_version + 1,
            addie_phase=Phase.DESIGN,
            prompt_text="Revised",
            change_type=ChangeType.UPDATE,
            previous_version=expected_version,
        ),
    )


def _insert_item():
    return PlanItem(
        prompt_id="p-1",
        action=Action.INSERT,
        new_version=1,
        record=make_prompt("p-1"),
        history_entry=HistoryEntry(
            prompt_id="p-1",
            version=1,
            addie_phase=Phase.DESIGN,
            prompt_text="Text of p-1",
            change_type=ChangeType.INSERT,
        ),
    )


def _integrity_error():
    return IntegrityError("INSERT INTO prompts", {}, Exception("duplicate key value"))


class TestCommitChange:
    @pytest.mark.asyncio
    async def test_update_matching_version_appends_history(self):
        session = _session(execute=AsyncMock(return_value=MagicMock(rowcount=1)))

        await _repo(session).commit_change(_update_item())

        session.execute.assert_awaited_once()
        added = [call.args[0] for call in session.add.call_args_list]
        assert len(added) == 1
        assert isinstance(added[0], PromptHistoryRow)
        assert added[0].version == 2
        assert added[0].previous_version == 1

    @pytest.mark.asyncio
    async def test_update_zero_rowcount_is_conflict(self):
        session = _session(execute=AsyncMock(return_value=MagicMock(rowcount=0)))

        with pytest.raises(WriteConflictError) as exc_info:
            await _repo(session).commit_change(_update_item(expected_version=3))

        assert exc_info.value.prompt_id == "p-1"
        assert exc_info.value.expected_version == 3
        session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_statement_is_version_conditional(self):
        session = _session(execute=AsyncMock(return_value=MagicMock(rowcount=1)))

        await _repo(session).commit_change(_update_item(expected_version=4))

        stmt = session.execute.await_args.args[0]
        where = str(stmt.whereclause.compile(compile_kwargs={"literal_binds": True}))
        assert "prompts.version = 4" in where
        assert "prompts.prompt_id = 'p-1'" in where

    @pytest.mark.asyncio
    async def test_insert_primary_key_collision_is_conflict(self):
        session = _session(commit_error=_integrity_error())

        with pytest.raises(WriteConflictError) as exc_info:
            await _repo(session).commit_change(_insert_item())

        assert exc_info.value.expected_version is None
        added = [call.args[0] for call in session.add.call_args_list]
        assert isinstance(added[0], PromptRow)
        assert isinstance(added[1], PromptHistoryRow)

    @pytest.mark.asyncio
    async def test_bad_data_is_statement_error(self):
        error = DataError("UPDATE prompts", {}, Exception("value too long"))
        session = _session(execute=AsyncMock(side_effect=error))

        with pytest.raises(WarehouseStatementError):
            await _repo(session).commit_change(_update_item())

    @pytest.mark.asyncio
    async def test_connection_loss_is_unavailable(self):
        error = OperationalError("UPDATE prompts", {}, Exception("server closed the connection"))
        session = _session(execute=AsyncMock(side_effect=error))

        with pytest.raises(WarehouseUnavailableError):
            await _repo(session).commit_change(_update_item())


class TestWarehouseTimeout:
    @pytest.mark.asyncio
    async def test_slow_snapshot_is_unavailable(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        session = _session(execute=AsyncMock(side_effect=slow))

        with pytest.raises(WarehouseUnavailableError) as exc_info:
            await _repo(session, timeout=0.01).load_snapshot()

        assert "timed out" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_slow_commit_is_unavailable(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        session = _session(execute=AsyncMock(side_effect=slow))

        with pytest.raises(WarehouseUnavailableError):
            await _repo(session, timeout=0.01).commit_change(_update_item())


class TestRecordUsage:
    @pytest.mark.asyncio
    async def test_returns_refreshed_totals(self):
        result = MagicMock()
        result.first.return_value = SimpleNamespace(usage_count=2, avg_rating=Decimal("4.5"))
        session = _session(execute=AsyncMock(return_value=result))

        totals = await _repo(session).record_usage(UsageEvent(prompt_id="p-1", feedback_rating=5))

        assert totals.usage_count == 2
        assert totals.avg_rating == pytest.approx(4.5)
        session.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unknown_prompt_keeps_event(self):
        result = MagicMock()
        result.first.return_value = None
        session = _session(execute=AsyncMock(return_value=result))

        totals = await _repo(session).record_usage(UsageEvent(prompt_id="ghost"))

        assert totals is None
        session.add.assert_called_once()
