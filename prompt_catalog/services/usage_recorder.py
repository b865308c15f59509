# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Usage Recorder — Append usage/feedback events and refresh derived aggregates.

The event row and the prompt's usage_count / avg_rating change in one
transaction (see CatalogRepository.record_usage). An event for an unknown or
deactivated prompt is still recorded; for an unknown prompt the aggregate
update is skipped and a warning is returned to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional

from prompt_catalog.core.errors import WarehouseStatementError, WarehouseUnavailableError
from prompt_catalog.protocols.records import UsageEvent

if TYPE_CHECKING:
    from prompt_catalog.services.health_monitor import HealthMonitor
    from prompt_catalog.storage.repositories import CatalogRepository

logger = logging.getLogger("catalog.usage")


@dataclass
class UsageResult:
    usage_id: str
    prompt_id: str
    counters_updated: bool
    usage_count: Optional[int] = None
    avg_rating: Optional[float] = None
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "usage_id": self.usage_id,
            "prompt_id": self.prompt_id,
            "counters_updated": self.counters_updated,
            "usage_count": self.usage_count,
            "avg_rating": self.avg_rating,
            "warning": self.warning,
        }


class UsageRecorder:
    """
    Usage:
        recorder = UsageRecorder(repo, health_monitor)
        result = await recorder.record(UsageEvent(prompt_id="p-1", feedback_rating=5))
    """

    def __init__(
        self,
        repo: "CatalogRepository",
        health_monitor: Optional["HealthMonitor"] = None,
    ) -> None:
        self._repo = repo
        self._monitor = health_monitor

    async def record(self, event: UsageEvent) -> UsageResult:
        if event.feedback_rating is not None and not 1 <= event.feedback_rating <= 5:
            raise ValueError(f"feedback_rating must be between 1 and 5, got {event.feedback_rating}")

        try:
            totals = await self._repo.record_usage(event)
        except (WarehouseStatementError, WarehouseUnavailableError):
            await self._observe(False)
            raise
        await self._observe(True)

        if totals is None:
            warning = f"prompt_id {event.prompt_id!r} is not in the catalog; usage recorded without counter update"
            logger.warning(warning, extra={"prompt_id": event.prompt_id})
            return UsageResult(
                usage_id=event.usage_id,
                prompt_id=event.prompt_id,
                counters_updated=False,
                warning=warning,
            )

        logger.debug(
            "Usage recorded for %s: count=%d avg=%s",
            event.prompt_id, totals.usage_count, totals.avg_rating,
            extra={"prompt_id": event.prompt_id},
        )
        return UsageResult(
            usage_id=event.usage_id,
            prompt_id=event.prompt_id,
            counters_updated=True,
            usage_count=totals.usage_count,
            avg_rating=totals.avg_rating,
        )

    async def _observe(self, success: bool) -> None:
        if self._monitor is not None:
            await self._monitor.record_warehouse_write(success)
