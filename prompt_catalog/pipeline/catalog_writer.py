# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Catalog Writer — Apply a reconciliation plan one prompt_id at a time.

Each write commits the prompt row and its history entry together. When the
conditional write finds a different version than the plan expected, the
writer re-reads that prompt, reclassifies it against the fresh state and
retries within the RetryPolicy budget. Rows are isolated: a conflict or a
rejected statement for one prompt_id never blocks the others. Systemic
warehouse failures propagate and fail the whole invocation.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional

from prompt_catalog.core.errors import (
    WRITE_CONFLICT,
    ErrorReport,
    WarehouseStatementError,
    WarehouseUnavailableError,
    WriteConflictError,
)
from prompt_catalog.pipeline.reconciler import PlanItem, ReconciliationPlan, VersionReconciler
from prompt_catalog.protocols.records import Action
from prompt_catalog.resilience.retry import RetryManager

if TYPE_CHECKING:
    from prompt_catalog.services.health_monitor import HealthMonitor
    from prompt_catalog.storage.repositories import CatalogRepository

logger = logging.getLogger("catalog.writer")


@dataclass
class WriteOutcome:
    prompt_id: str
    action: Action
    version: Optional[int] = None
    attempts: int = 0
    error: Optional[ErrorReport] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class WriteReport:
    outcomes: List[WriteOutcome] = field(default_factory=list)

    @property
    def errors(self) -> List[ErrorReport]:
        return [o.error for o in self.outcomes if o.error is not None]

    def counts(self) -> Dict[str, int]:
        tally = Counter(o.action.value for o in self.outcomes if o.ok)
        counts = {action.value: tally.get(action.value, 0) for action in Action}
        counts["FAILED"] = len(self.errors)
        return counts


class CatalogWriter:
    """
    Usage:
        writer = CatalogWriter(repo, reconciler, RetryManager(policy))
        report = await writer.apply(plan, changed_by="uploader@example.edu")
    """

    def __init__(
        self,
        repo: "CatalogRepository",
        reconciler: VersionReconciler,
        retry: Optional[RetryManager] = None,
        health_monitor: Optional["HealthMonitor"] = None,
    ) -> None:
        self._repo = repo
        self._reconciler = reconciler
        self._retry = retry or RetryManager()
        self._monitor = health_monitor

    async def apply(
        self, plan: ReconciliationPlan, changed_by: Optional[str] = None,
    ) -> WriteReport:
        report = WriteReport()
        for item in plan.items:
            if not item.is_write:
                report.outcomes.append(WriteOutcome(
                    prompt_id=item.prompt_id,
                    action=Action.NONE,
                    version=item.expected_version,
                ))
                continue
            report.outcomes.append(await self._apply_item(item, changed_by))

        logger.info("Catalog write complete: %s", report.counts())
        return report

    async def _apply_item(self, item: PlanItem, changed_by: Optional[str]) -> WriteOutcome:
        attempt = 1
        while True:
            try:
                await self._repo.commit_change(item)
            except WriteConflictError as e:
                if self._retry.handle_conflict(item.prompt_id, attempt, e) == "give_up":
                    return WriteOutcome(
                        prompt_id=item.prompt_id,
                        action=item.action,
                        attempts=attempt,
                        error=ErrorReport(
                            identifier=item.prompt_id,
                            kind=WRITE_CONFLICT,
                            message=f"gave up after {attempt} attempts: {e}",
                            row=item.candidate.row if item.candidate else None,
                        ),
                    )
                await self._retry.wait_before_retry(attempt)
                attempt += 1
                item = await self._reclassify(item, changed_by)
                if not item.is_write:
                    logger.info(
                        "Conflict on %s settled: content already current at v%s",
                        item.prompt_id, item.expected_version,
                        extra={"prompt_id": item.prompt_id},
                    )
                    return WriteOutcome(
                        prompt_id=item.prompt_id,
                        action=Action.NONE,
                        version=item.expected_version,
                        attempts=attempt,
                    )
                continue
            except WarehouseStatementError as e:
                await self._observe(False)
                logger.error(
                    "Write rejected for %s: %s", item.prompt_id, e,
                    extra={"prompt_id": item.prompt_id, "error_kind": e.kind},
                )
                return WriteOutcome(
                    prompt_id=item.prompt_id,
                    action=item.action,
                    attempts=attempt,
                    error=ErrorReport(
                        identifier=item.prompt_id,
                        kind=e.kind,
                        message=str(e),
                        row=item.candidate.row if item.candidate else None,
                    ),
                )
            except WarehouseUnavailableError:
                await self._observe(False)
                raise

            await self._observe(True)
            logger.debug(
                "%s %s → v%d", item.action.value, item.prompt_id, item.new_version,
                extra={"prompt_id": item.prompt_id},
            )
            return WriteOutcome(
                prompt_id=item.prompt_id,
                action=item.action,
                version=item.new_version,
                attempts=attempt,
            )

    async def _reclassify(self, item: PlanItem, changed_by: Optional[str]) -> PlanItem:
        """Recompute one plan item against a fresh read of its prompt."""
        fresh = await self._repo.get_prompt(item.prompt_id)
        if item.candidate is not None:
            return self._reconciler.classify(item.candidate, fresh, changed_by)
        if fresh is None:
            return PlanItem(prompt_id=item.prompt_id, action=Action.NONE)
        return self._reconciler.classify_absent(fresh, changed_by)

    async def _observe(self, success: bool) -> None:
        if self._monitor is not None:
            await self._monitor.record_warehouse_write(success)
