# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Ingestion Pipeline — One uploaded batch through the catalog.

Flow: Fetch → Parse → Validate → Snapshot → Reconcile → Write → Audit

Outcomes:
  applied   every candidate reconciled, no errors
  partial   some rows or writes reported errors, the rest committed
  rejected  batch-level error (duplicate prompt_id, unreadable file), nothing committed
  failed    systemic error; the exception propagates so the trigger redelivers

Redelivery of an already-applied batch is harmless: the plan is computed from
current state plus batch content only, so the second run yields only NONE.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from prompt_catalog.core.errors import (
    BatchRejectedError,
    CatalogError,
    ErrorReport,
    SystemicError,
)
from prompt_catalog.parsers.batch_validator import BatchValidator
from prompt_catalog.parsers.registry import ParserRegistry
from prompt_catalog.pipeline.catalog_writer import CatalogWriter
from prompt_catalog.pipeline.reconciler import VersionReconciler
from prompt_catalog.storage.models import IngestionRun

if TYPE_CHECKING:
    from prompt_catalog.services.health_monitor import HealthMonitor
    from prompt_catalog.services.landing_store import LandingStore
    from prompt_catalog.storage.repositories import CatalogRepository

logger = logging.getLogger("catalog.pipeline")

APPLIED = "applied"
PARTIAL = "partial"
REJECTED = "rejected"
FAILED = "failed"


@dataclass
class IngestionResult:
    """Summary of one pipeline invocation."""
    batch_id: str
    status: str
    object_key: str
    bucket: Optional[str] = None
    counts: Dict[str, int] = field(default_factory=dict)
    errors: List[ErrorReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status,
            "bucket": self.bucket,
            "object_key": self.object_key,
            "counts": self.counts,
            "errors": [e.to_dict() for e in self.errors],
        }


class IngestionPipeline:
    """
    Batch ingestion with internal concurrency of one.

    The plan is computed from a single snapshot read and applied row by row;
    concurrent batches are serialized per prompt_id by the writer's
    optimistic version check.
    """

    def __init__(
        self,
        parser_registry: ParserRegistry,
        validator: BatchValidator,
        reconciler: VersionReconciler,
        writer: CatalogWriter,
        repo: "CatalogRepository",
        landing_store: Optional["LandingStore"] = None,
        health_monitor: Optional["HealthMonitor"] = None,
    ) -> None:
        self._parsers = parser_registry
        self._validator = validator
        self._reconciler = reconciler
        self._writer = writer
        self._repo = repo
        self._landing = landing_store
        self._monitor = health_monitor

    async def process_object(
        self,
        bucket: str,
        object_key: str,
        etag: Optional[str] = None,
        uploaded_by: Optional[str] = None,
    ) -> IngestionResult:
        """Fetch a batch file from the landing store and ingest it."""
        if self._landing is None:
            raise RuntimeError("IngestionPipeline has no landing store configured")
        try:
            content = await self._landing.fetch(bucket, object_key)
        except SystemicError as e:
            logger.error("Batch fetch failed: %s/%s — %s", bucket, object_key, e)
            await self._observe(False)
            raise

        return await self.process_content(
            content,
            file_name=object_key.rsplit("/", 1)[-1],
            bucket=bucket,
            object_key=object_key,
            etag=etag,
            uploaded_by=uploaded_by,
        )

    async def process_content(
        self,
        content: bytes,
        file_name: str,
        bucket: Optional[str] = None,
        object_key: Optional[str] = None,
        etag: Optional[str] = None,
        uploaded_by: Optional[str] = None,
    ) -> IngestionResult:
        """
        Ingest raw batch content.

        Raises:
            SystemicError: warehouse unavailable; nothing beyond already
                committed rows is applied and redelivery will finish the job.
        """
        batch_id = str(uuid.uuid4())
        object_key = object_key or file_name
        changed_by = uploaded_by or f"batch:{object_key}"
        log_ctx = {"batch_id": batch_id}
        logger.info("Ingestion started: %s (%d bytes)", object_key, len(content), extra=log_ctx)

        # Step 1-2: parse + validate (pure, never touches the catalog)
        try:
            parser = self._parsers.get_parser(file_name)
            parsed = await parser.parse(content)
            validation = self._validator.validate(parsed)
        except BatchRejectedError as e:
            errors = e.errors or [ErrorReport(identifier=None, kind=e.kind, message=str(e))]
            logger.warning(
                "Batch rejected: %s — %s", object_key, e,
                extra={**log_ctx, "error_kind": e.kind},
            )
            result = IngestionResult(
                batch_id=batch_id,
                status=REJECTED,
                object_key=object_key,
                bucket=bucket,
                errors=errors,
            )
            await self._finish(result, etag, uploaded_by, success=False)
            return result

        for error in validation.errors:
            logger.warning(
                "Row %s skipped: %s", error.row, error.message,
                extra={**log_ctx, "prompt_id": error.identifier, "error_kind": error.kind},
            )

        # Step 3-5: snapshot → reconcile → write
        try:
            snapshot = await self._repo.load_snapshot()
            plan = self._reconciler.reconcile(validation.candidates, snapshot, changed_by)
            report = await self._writer.apply(plan, changed_by)
        except SystemicError as e:
            logger.error(
                "Ingestion failed: %s — %s", object_key, e,
                extra={**log_ctx, "error_kind": e.kind},
            )
            await self._observe(False)
            await self._save_failed_run(batch_id, bucket, object_key, etag, uploaded_by, e)
            raise

        errors = validation.errors + report.errors
        counts = report.counts()
        counts["ROW_ERRORS"] = len(validation.errors)
        result = IngestionResult(
            batch_id=batch_id,
            status=PARTIAL if errors else APPLIED,
            object_key=object_key,
            bucket=bucket,
            counts=counts,
            errors=errors,
        )
        await self._finish(result, etag, uploaded_by, success=True)
        logger.info(
            "Ingestion complete: %s status=%s counts=%s",
            object_key, result.status, counts, extra=log_ctx,
        )
        return result

    # ── Helpers ───────────────────────────────────────────────

    async def _finish(
        self,
        result: IngestionResult,
        etag: Optional[str],
        uploaded_by: Optional[str],
        success: bool,
    ) -> None:
        try:
            await self._repo.save_run(IngestionRun(
                run_id=uuid.UUID(result.batch_id),
                bucket=result.bucket,
                object_key=result.object_key,
                etag=etag,
                uploaded_by=uploaded_by,
                status=result.status,
                counts=result.counts,
                errors=[e.to_dict() for e in result.errors],
            ))
        except SystemicError as e:
            logger.error(
                "Audit write failed: %s — %s", result.object_key, e,
                extra={"batch_id": result.batch_id, "error_kind": e.kind},
            )
            await self._observe(False)
            raise
        await self._observe(success)

    async def _save_failed_run(
        self,
        batch_id: str,
        bucket: Optional[str],
        object_key: str,
        etag: Optional[str],
        uploaded_by: Optional[str],
        error: SystemicError,
    ) -> None:
        """Audit a failed invocation when the warehouse still accepts it."""
        try:
            await self._repo.save_run(IngestionRun(
                run_id=uuid.UUID(batch_id),
                bucket=bucket,
                object_key=object_key,
                etag=etag,
                uploaded_by=uploaded_by,
                status=FAILED,
                counts={},
                errors=[ErrorReport(identifier=None, kind=error.kind, message=str(error)).to_dict()],
            ))
        except CatalogError as e:
            logger.warning("Could not audit failed run %s: %s", batch_id, e)

    async def _observe(self, success: bool) -> None:
        if self._monitor is not None:
            await self._monitor.record_pipeline_execution(success)
