# Copyright (c) 2026 TempoOS Contributors. All Rights Reserved.

"""
Version Reconciler — Classify a batch against the current catalog snapshot.

Every candidate is classified independently:

    prompt_id not in snapshot          → INSERT   (version 1, previous None)
    present, content identical         → NONE     (no write)
    present, content differs           → UPDATE   (version + 1, previous = current)
    in snapshot, missing from batch,
    batch authoritative for its scope  → ARCHIVED (is_active False, version + 1)

The result depends only on (snapshot, candidate). The Catalog Writer calls
classify() / classify_absent() again with a fresh read after a write conflict.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Set

from prompt_catalog.protocols.records import (
    Action,
    CandidateRecord,
    ChangeType,
    HistoryEntry,
    Phase,
    PromptRecord,
    utcnow,
)

logger = logging.getLogger("catalog.reconciler")

# Fields a batch owns. usage_count / avg_rating / timestamps are never compared.
CONTENT_FIELDS = (
    "addie_phase",
    "sub_category",
    "prompt_name",
    "prompt_text",
    "tags",
    "prerequisites",
    "expected_output",
    "version_notes",
    "author",
    "created_date",
)


class ArchivePolicy(str, Enum):
    MERGE = "merge"
    AUTHORITATIVE = "authoritative"


class ArchiveScope(str, Enum):
    PHASES = "phases"
    CATALOG = "catalog"


@dataclass
class PlanItem:
    """One per-identifier decision of a reconciliation plan."""

    prompt_id: str
    action: Action
    new_version: Optional[int] = None
    expected_version: Optional[int] = None
    record: Optional[PromptRecord] = None
    history_entry: Optional[HistoryEntry] = None
    candidate: Optional[CandidateRecord] = None

    @property
    def is_write(self) -> bool:
        return self.action is not Action.NONE


@dataclass
class ReconciliationPlan:
    items: List[PlanItem] = field(default_factory=list)

    @property
    def writes(self) -> List[PlanItem]:
        return [item for item in self.items if item.is_write]

    def counts(self) -> Dict[str, int]:
        tally = Counter(item.action.value for item in self.items)
        return {action.value: tally.get(action.value, 0) for action in Action}


def content_changed(candidate: CandidateRecord, current: PromptRecord) -> bool:
    """Field-by-field comparison of what a batch is allowed to change."""
    if not current.is_active:
        return True
    for name in CONTENT_FIELDS:
        if getattr(candidate, name) != getattr(current, name):
            return True
    if candidate.embedding is not None and candidate.embedding != current.embedding:
        return True
    return False


class VersionReconciler:
    """
    Computes a ReconciliationPlan from one consistent snapshot read.

    Usage:
        reconciler = VersionReconciler(ArchivePolicy.MERGE)
        plan = reconciler.reconcile(candidates, snapshot, changed_by="uploader@x")
    """

    def __init__(
        self,
        archive_policy: ArchivePolicy = ArchivePolicy.MERGE,
        archive_scope: ArchiveScope = ArchiveScope.PHASES,
    ) -> None:
        self.archive_policy = ArchivePolicy(archive_policy)
        self.archive_scope = ArchiveScope(archive_scope)

    def reconcile(
        self,
        candidates: List[CandidateRecord],
        snapshot: Mapping[str, PromptRecord],
        changed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ReconciliationPlan:
        now = now or utcnow()
        plan = ReconciliationPlan()

        for candidate in candidates:
            plan.items.append(
                self.classify(candidate, snapshot.get(candidate.prompt_id), changed_by, now)
            )

        for current in self.archive_targets(candidates, snapshot):
            plan.items.append(self.classify_absent(current, changed_by, now))

        logger.info("Reconciliation plan: %s", plan.counts())
        return plan

    # ── Per-identifier classification ─────────────────────────

    def classify(
        self,
        candidate: CandidateRecord,
        current: Optional[PromptRecord],
        changed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PlanItem:
        now = now or utcnow()

        if current is None:
            record = PromptRecord(
                prompt_id=candidate.prompt_id,
                addie_phase=candidate.addie_phase,
                prompt_name=candidate.prompt_name,
                prompt_text=candidate.prompt_text,
                version=1,
                last_modified_date=now,
                is_active=True,
                sub_category=candidate.sub_category,
                tags=list(candidate.tags),
                prerequisites=candidate.prerequisites,
                expected_output=candidate.expected_output,
                version_notes=candidate.version_notes,
                author=candidate.author,
                created_date=candidate.created_date,
                embedding=candidate.embedding,
            )
            return PlanItem(
                prompt_id=candidate.prompt_id,
                action=Action.INSERT,
                new_version=1,
                expected_version=None,
                record=record,
                history_entry=self._history(record, ChangeType.INSERT, None, changed_by, now),
                candidate=candidate,
            )

        if not content_changed(candidate, current):
            return PlanItem(
                prompt_id=candidate.prompt_id,
                action=Action.NONE,
                expected_version=current.version,
                candidate=candidate,
            )

        new_version = current.version + 1
        record = replace(
            current,
            addie_phase=candidate.addie_phase,
            prompt_name=candidate.prompt_name,
            prompt_text=candidate.prompt_text,
            sub_category=candidate.sub_category,
            tags=list(candidate.tags),
            prerequisites=candidate.prerequisites,
            expected_output=candidate.expected_output,
            version_notes=candidate.version_notes,
            author=candidate.author,
            created_date=candidate.created_date,
            embedding=candidate.embedding if candidate.embedding is not None else current.embedding,
            version=new_version,
            is_active=True,
            last_modified_date=now,
        )
        return PlanItem(
            prompt_id=candidate.prompt_id,
            action=Action.UPDATE,
            new_version=new_version,
            expected_version=current.version,
            record=record,
            history_entry=self._history(
                record, ChangeType.UPDATE, current.version, changed_by, now,
            ),
            candidate=candidate,
        )

    def classify_absent(
        self,
        current: PromptRecord,
        changed_by: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> PlanItem:
        """Classify an in-scope prompt the authoritative batch no longer lists."""
        now = now or utcnow()
        if not current.is_active:
            return PlanItem(
                prompt_id=current.prompt_id,
                action=Action.NONE,
                expected_version=current.version,
            )

        new_version = current.version + 1
        record = replace(
            current,
            version=new_version,
            is_active=False,
            version_notes="Archived: not present in authoritative batch",
            last_modified_date=now,
        )
        return PlanItem(
            prompt_id=current.prompt_id,
            action=Action.ARCHIVED,
            new_version=new_version,
            expected_version=current.version,
            record=record,
            history_entry=self._history(
                record, ChangeType.ARCHIVED, current.version, changed_by, now,
            ),
        )

    # ── Archive scope ─────────────────────────────────────────

    def archive_targets(
        self,
        candidates: List[CandidateRecord],
        snapshot: Mapping[str, PromptRecord],
    ) -> List[PromptRecord]:
        """Active snapshot records that an authoritative batch implicitly drops."""
        if self.archive_policy is not ArchivePolicy.AUTHORITATIVE:
            return []
        if not candidates:
            logger.warning("Empty authoritative batch: archiving skipped")
            return []

        present = {c.prompt_id for c in candidates}
        phases = self._declared_phases(candidates)
        return [
            snapshot[pid]
            for pid in sorted(snapshot)
            if pid not in present
            and snapshot[pid].is_active
            and self.in_scope(snapshot[pid], phases)
        ]

    def in_scope(self, current: PromptRecord, phases: Set[Phase]) -> bool:
        if self.archive_scope is ArchiveScope.CATALOG:
            return True
        return current.addie_phase in phases

    @staticmethod
    def _declared_phases(candidates: Iterable[CandidateRecord]) -> Set[Phase]:
        return {c.addie_phase for c in candidates}

    # ── Helpers ───────────────────────────────────────────────

    @staticmethod
    def _history(
        record: PromptRecord,
        change_type: ChangeType,
        previous_version: Optional[int],
        changed_by: Optional[str],
        now: datetime,
    ) -> HistoryEntry:
        return HistoryEntry(
            prompt_id=record.prompt_id,
            version=record.version,
            addie_phase=record.addie_phase,
            prompt_text=record.prompt_text,
            change_type=change_type,
            changed_by=changed_by or record.author,
            changed_date=now,
            version_notes=record.version_notes,
            previous_version=previous_version,
        )
